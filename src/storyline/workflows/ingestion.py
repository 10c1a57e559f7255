import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from storyline.core.entities import Article, ArticleState, Source, utc_now
from storyline.core.errors import DuplicateArticleError
from storyline.core.scoring import score_content
from storyline.ingestion.base import FeedFetcher, FeedItem
from storyline.processing.clustering import ClusteringEngine
from storyline.processing.text import extract_keywords
from storyline.services.database import Database
from storyline.workflows.base import PipelineStage

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    fetched: int = 0
    new: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class IngestionPipeline(PipelineStage):
    """
    fetch -> dedup -> score -> store -> cluster -> mark processed, for every
    active source. A failing source or item is counted and skipped; the run
    itself never raises.
    """

    name = "ingestion"

    def __init__(
        self,
        database: Database,
        fetcher: FeedFetcher,
        clustering: ClusteringEngine,
        *,
        fetch_concurrency: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__()
        self.db = database
        self.fetcher = fetcher
        self.clustering = clustering
        self.fetch_concurrency = max(1, fetch_concurrency)
        self.clock = clock

    async def run(self) -> SyncResult:
        result = SyncResult()
        logger.info(f"[{self.name}] Starting feed sync")

        await self._resume_unfinished(result)

        try:
            sources = await self.db.get_active_sources()
        except Exception as e:
            logger.exception(f"[{self.name}] Could not load sources: {e}")
            result.errors += 1
            return result

        logger.info(f"[{self.name}] Found {len(sources)} active sources")

        for source, items in await self._fetch_all(sources):
            if items is None:
                result.errors += 1
                continue

            result.fetched += len(items)
            for item in items:
                await self._ingest_item(source, item, result)

            try:
                await self.db.mark_source_fetched(source.id, self.clock())
            except Exception as e:
                result.errors += 1
                logger.error(f"[{self.name}] Could not stamp source {source.name}: {e}")

        logger.info(
            f"[{self.name}] Sync complete: fetched={result.fetched}, new={result.new}, errors={result.errors}",
            extra={"stage": self.name, **result.to_dict()},
        )
        return result

    async def _fetch_all(
        self, sources: Sequence[Source]
    ) -> List[Tuple[Source, Optional[List[FeedItem]]]]:
        """Fetch sources concurrently; results keep the order of `sources`."""
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def fetch(source: Source) -> Tuple[Source, Optional[List[FeedItem]]]:
            async with semaphore:
                try:
                    return source, await self.fetcher.fetch(source.feed_url)
                except Exception as e:
                    logger.error(f"[{self.name}] Error fetching source {source.name}/{source.feed_url}: {e}")
                    return source, None

        return list(await asyncio.gather(*(fetch(source) for source in sources)))

    async def _ingest_item(self, source: Source, item: FeedItem, result: SyncResult) -> None:
        try:
            if await self.db.link_exists(item.link):
                return

            text = f"{item.title} {item.description}"
            score = score_content(text)

            article = await self.db.insert_article(
                source_id=source.id,
                title=item.title,
                description=item.description,
                link=item.link,
                published_at=item.published_at,
                fetched_at=self.clock(),
                heat_score=score.heat,
                substance_score=score.substance,
                keywords=extract_keywords(text),
                image_url=item.image_url,
            )
        except DuplicateArticleError:
            logger.debug(f"[{self.name}] Duplicate link skipped: {item.link}")
            return
        except Exception as e:
            result.errors += 1
            logger.error(f"[{self.name}] Error storing article {item.title[:50]!r}: {e}")
            return

        result.new += 1

        try:
            await self.advance(article)
        except Exception as e:
            result.errors += 1
            logger.error(f"[{self.name}] Error processing article {article.id} {article.title[:50]!r}: {e}")

    async def advance(self, article: Article) -> Article:
        """
        Drive a stored article to PROCESSED. Every step is safe to repeat,
        so an article left behind by a crashed run can be resumed.
        """
        if article.state is ArticleState.SCORED:
            cluster_id = await self.clustering.assign(article)
            await self.db.advance_article_state(
                article.id, ArticleState.SCORED, ArticleState.CLUSTERED
            )
            article = replace(article, cluster_id=cluster_id, state=ArticleState.CLUSTERED)

        if article.state is ArticleState.CLUSTERED:
            await self.db.advance_article_state(
                article.id, ArticleState.CLUSTERED, ArticleState.PROCESSED
            )
            article = replace(article, state=ArticleState.PROCESSED)

        return article

    async def _resume_unfinished(self, result: SyncResult) -> None:
        try:
            pending = await self.db.get_unfinished_articles()
        except Exception as e:
            result.errors += 1
            logger.error(f"[{self.name}] Could not load unfinished articles: {e}")
            return

        if pending:
            logger.info(f"[{self.name}] Resuming {len(pending)} unfinished articles")

        for article in pending:
            try:
                await self.advance(article)
            except Exception as e:
                result.errors += 1
                logger.error(f"[{self.name}] Error resuming article {article.id}: {e}")
