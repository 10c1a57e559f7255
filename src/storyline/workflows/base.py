"""
Contains base class for pipeline stages
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    At most one run in flight; callers arriving while it runs await and
    share its result.
    """

    def __init__(self, name: str):
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, factory: Callable[[], Awaitable[Any]]) -> Any:
        if self.running:
            logger.info(f"[{self.name}] Run already in progress, joining it")
        else:
            self._task = asyncio.ensure_future(factory())
        # Shielded so a cancelled caller does not cancel the shared run.
        return await asyncio.shield(self._task)


class PipelineStage(ABC):
    """
    One stage of the news pipeline (ingestion, enrichment or digest).
    """

    name: str

    def __init__(self) -> None:
        self._flight = SingleFlight(self.name)

    @abstractmethod
    async def run(self) -> Any:
        """
        Execute the stage and return its small result summary.
        Must never raise uncaught exceptions.
        """
        raise NotImplementedError

    async def trigger(self) -> Any:
        """Run the stage unless it is already running, in which case join it."""
        return await self._flight.run(self.run)
