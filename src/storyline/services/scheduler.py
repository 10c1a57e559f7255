import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def next_run_time(hour: int = 6, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if run <= now:
        run += timedelta(days=1)
    return run


async def _sync_loop(pipeline: Any, interval_minutes: int) -> None:
    while True:
        await asyncio.sleep(interval_minutes * 60)
        logger.info("Running scheduled feed sync")
        await pipeline.run_sync()
        if pipeline.enrichment_available():
            await pipeline.run_enrichment()


async def _digest_loop(pipeline: Any, hour: int) -> None:
    while True:
        run_at = next_run_time(hour)
        delay = (run_at - datetime.now(timezone.utc)).total_seconds()
        logger.info(f"Next digest run at {run_at.isoformat()}")
        await asyncio.sleep(max(delay, 0))
        await pipeline.run_digest()


async def run_forever(
    pipeline: Any,
    *,
    sync_interval_minutes: int = 30,
    digest_hour: int = 6,
    run_on_start: bool = True,
) -> None:
    """
    Feed sync (+ enrichment) every `sync_interval_minutes`, digest daily at
    `digest_hour` UTC. The pipeline's stage guards keep a scheduled run from
    overlapping a manual one.
    """
    if run_on_start:
        logger.info("Running initial pipeline pass")
        await pipeline.run_all()

    await asyncio.gather(
        _sync_loop(pipeline, sync_interval_minutes),
        _digest_loop(pipeline, digest_hour),
    )
