import logging
from datetime import datetime
from typing import Callable, Optional

from storyline.core.entities import Cluster, utc_now
from storyline.processing.framing import analyze_bias, partition_by_bias
from storyline.processing.summarizer import summarize_cluster
from storyline.services.database import Database
from storyline.services.llm import OllamaClient
from storyline.workflows.base import PipelineStage

logger = logging.getLogger(__name__)


class EnrichmentPipeline(PipelineStage):
    """
    Backfills summary and bias analysis on the biggest unsummarized
    clusters. Only clusters with a NULL summary are selected, so a cluster
    is enriched at most once.
    """

    name = "enrichment"

    def __init__(
        self,
        database: Database,
        llm: Optional[OllamaClient],
        *,
        min_articles: int = 3,
        batch_size: int = 10,
        article_limit: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__()
        self.db = database
        self.llm = llm
        self.min_articles = min_articles
        self.batch_size = batch_size
        self.article_limit = article_limit
        self.clock = clock

    def available(self) -> bool:
        return self.llm is not None and self.llm.available()

    async def run(self) -> int:
        if not self.available():
            logger.info(f"[{self.name}] Text generator not configured, skipping enrichment")
            return 0

        try:
            clusters = await self.db.get_clusters_for_enrichment(
                min_articles=self.min_articles,
                limit=self.batch_size,
            )
        except Exception as e:
            logger.exception(f"[{self.name}] Could not select clusters: {e}")
            return 0

        logger.info(f"[{self.name}] Enriching {len(clusters)} clusters")

        enriched = 0
        for cluster in clusters:
            try:
                if await self._enrich(cluster):
                    enriched += 1
                    logger.info(f"[{self.name}] Enriched cluster {cluster.id}: {(cluster.topic or '')[:50]}")
            except Exception as e:
                logger.error(f"[{self.name}] Enrichment error for cluster {cluster.id}: {e}")

        logger.info(
            f"[{self.name}] Enrichment complete: {enriched} clusters enriched",
            extra={"stage": self.name, "enriched": enriched},
        )
        return enriched

    async def _enrich(self, cluster: Cluster) -> bool:
        members = await self.db.get_cluster_members(
            cluster.id,
            newest_first=True,
            limit=self.article_limit,
        )
        if not members:
            logger.warning(f"[{self.name}] Cluster {cluster.id} has no articles")
            return False

        headlines = [m.title for m in members]
        summary = await summarize_cluster(
            llm=self.llm,
            headlines=headlines,
            descriptions=[m.description for m in members],
        )
        if not summary:
            logger.warning(f"[{self.name}] Empty summary for cluster {cluster.id}, leaving it for a later run")
            return False

        buckets = partition_by_bias(members)
        analysis = await analyze_bias(
            llm=self.llm,
            topic=cluster.topic or headlines[0],
            left=buckets["left"],
            center=buckets["center"],
            right=buckets["right"],
        )

        return await self.db.save_enrichment(
            cluster.id,
            summary=summary,
            bias_analysis=analysis.model_dump(by_alias=True),
            generated_at=self.clock(),
        )
