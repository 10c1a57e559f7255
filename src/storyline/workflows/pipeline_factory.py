"""
Pipeline Factory - Wires the pipeline stages from configuration.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from storyline.core.entities import utc_now
from storyline.ingestion.base import FeedFetcher
from storyline.ingestion.rss import RSSFeedFetcher
from storyline.processing.cluster_stats import ClusterStatsAggregator
from storyline.processing.clustering import ClusteringEngine
from storyline.services.config import Config
from storyline.services.database import Database
from storyline.services.llm import OllamaClient
from storyline.workflows.digest import DigestPipeline
from storyline.workflows.enrichment import EnrichmentPipeline
from storyline.workflows.ingestion import IngestionPipeline, SyncResult

logger = logging.getLogger(__name__)


class NewsPipeline:
    """
    Entry points consumed by the CLI and the scheduler. Each stage is
    single-flight: triggering a stage that is already running joins the
    in-flight run.
    """

    def __init__(
        self,
        database: Database,
        ingestion: IngestionPipeline,
        enrichment: EnrichmentPipeline,
        digest: DigestPipeline,
    ):
        self.db = database
        self.ingestion = ingestion
        self.enrichment = enrichment
        self.digest = digest

    async def initialize(self) -> None:
        await self.db.init_tables()

    def enrichment_available(self) -> bool:
        return self.enrichment.available()

    async def run_sync(self) -> SyncResult:
        return await self.ingestion.trigger()

    async def run_enrichment(self) -> int:
        return await self.enrichment.trigger()

    async def run_digest(self) -> bool:
        return await self.digest.trigger()

    async def run_all(self) -> Dict[str, Any]:
        """Sync, then digest, then enrichment (the startup order)."""
        sync = await self.run_sync()
        created = await self.run_digest()
        enriched = await self.run_enrichment() if self.enrichment_available() else 0
        return {"sync": sync.to_dict(), "digest_created": created, "enriched": enriched}


def create_llm(config: Config) -> OllamaClient:
    return OllamaClient(
        base_url=config.OLLAMA_BASE_URL,
        model=config.OLLAMA_MODEL,
        enabled=config.LLM_ENABLED,
    )


def create_pipeline(
    config: Config,
    *,
    database: Optional[Database] = None,
    llm: Optional[OllamaClient] = None,
    fetcher: Optional[FeedFetcher] = None,
    clock: Callable[[], datetime] = utc_now,
) -> NewsPipeline:
    """
    Build the full pipeline. Collaborators not passed in are created from
    the configuration.
    """
    database = database or Database(config.DATABASE_PATH)
    llm = llm if llm is not None else create_llm(config)
    fetcher = fetcher or RSSFeedFetcher(timeout=config.FETCH_TIMEOUT)

    clustering = ClusteringEngine(
        database,
        ClusterStatsAggregator(database),
        similarity_threshold=config.clustering.similarity_threshold,
        window_hours=config.clustering.window_hours,
        candidate_limit=config.clustering.candidate_limit,
        min_tokens=config.clustering.min_tokens,
        clock=clock,
    )

    pipeline = NewsPipeline(
        database=database,
        ingestion=IngestionPipeline(
            database,
            fetcher,
            clustering,
            fetch_concurrency=config.FETCH_CONCURRENCY,
            clock=clock,
        ),
        enrichment=EnrichmentPipeline(
            database,
            llm,
            min_articles=config.enrichment.min_articles,
            batch_size=config.enrichment.batch_size,
            article_limit=config.enrichment.article_limit,
            clock=clock,
        ),
        digest=DigestPipeline(
            database,
            llm,
            cluster_limit=config.digest.cluster_limit,
            window_hours=config.digest.window_hours,
            clock=clock,
        ),
    )
    logger.info(
        f"Created pipeline (database={config.DATABASE_PATH}, llm_available={llm.available()})"
    )
    return pipeline
