import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from storyline.core.entities import utc_now
from storyline.processing.summarizer import DigestTopic, compose_digest, template_digest
from storyline.services.database import Database
from storyline.services.llm import OllamaClient
from storyline.workflows.base import PipelineStage

logger = logging.getLogger(__name__)


class DigestPipeline(PipelineStage):
    """
    Writes at most one digest per UTC calendar day over the top clusters of
    the trailing window. Falls back to a templated digest whenever the text
    generator is missing or fails.
    """

    name = "digest"

    def __init__(
        self,
        database: Database,
        llm: Optional[OllamaClient] = None,
        *,
        cluster_limit: int = 10,
        window_hours: int = 24,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__()
        self.db = database
        self.llm = llm
        self.cluster_limit = cluster_limit
        self.window_hours = window_hours
        self.clock = clock

    async def run(self) -> bool:
        now = self.clock()
        today = now.date().isoformat()

        try:
            if await self.db.digest_exists(today):
                logger.info(f"[{self.name}] Digest already exists for {today}")
                return False

            since = now - timedelta(hours=self.window_hours)
            clusters = await self.db.get_top_clusters_since(since, self.cluster_limit)
            if not clusters:
                logger.info(f"[{self.name}] No clusters for digest")
                return False

            cluster_count, article_count = await self.db.get_window_totals(since)

            topics = [
                DigestTopic(topic=c.topic or "", summary=c.summary, article_count=c.article_count)
                for c in clusters
            ]
            text = await self._compose(topics)

            digest_id = await self.db.add_digest(
                digest_date=today,
                summary=text,
                key_topics=[t.topic for t in topics if t.topic],
                cluster_count=cluster_count,
                article_count=article_count,
            )
        except Exception as e:
            logger.exception(f"[{self.name}] Digest generation failed: {e}")
            return False

        if digest_id is None:
            logger.info(f"[{self.name}] Digest for {today} was created by another run")
            return False

        logger.info(
            f"[{self.name}] Daily digest generated for {today}",
            extra={"stage": self.name, "clusters": cluster_count, "articles": article_count},
        )
        return True

    async def _compose(self, topics: Sequence[DigestTopic]) -> str:
        if self.llm is not None and self.llm.available():
            try:
                text = await compose_digest(llm=self.llm, topics=topics)
                if text:
                    return text
                logger.warning(f"[{self.name}] Empty digest from text generator, using template")
            except Exception as e:
                logger.warning(f"[{self.name}] Text generator failed, using template: {e}")
        return template_digest(topics)
