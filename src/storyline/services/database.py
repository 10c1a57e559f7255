import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import aiosqlite

from storyline.core.entities import (
    Article,
    ArticleState,
    Cluster,
    ClusterMember,
    ClusterStats,
    DailyDigest,
    Source,
)
from storyline.core.errors import DuplicateArticleError

logger = logging.getLogger(__name__)

DEFAULT_CLOSING_LINE = "You're caught up."


def to_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO string so timestamps compare correctly as text."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _article(row: aiosqlite.Row) -> Article:
    return Article(
        id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        description=row["description"] or "",
        link=row["link"],
        published_at=from_timestamp(row["published_at"]),
        fetched_at=from_timestamp(row["fetched_at"]),
        heat_score=row["heat_score"] or 0.0,
        substance_score=row["substance_score"] or 0.0,
        keywords=json.loads(row["keywords"]) if row["keywords"] else [],
        cluster_id=row["cluster_id"],
        state=ArticleState(row["state"]),
        image_url=row["image_url"],
    )


def _source(row: aiosqlite.Row) -> Source:
    return Source(
        id=row["id"],
        name=row["name"],
        feed_url=row["feed_url"],
        bias_label=row["bias_label"],
        is_active=bool(row["is_active"]),
        last_fetched_at=from_timestamp(row["last_fetched_at"]),
    )


def _cluster(row: aiosqlite.Row) -> Cluster:
    return Cluster(
        id=row["id"],
        topic=row["topic"],
        topic_slug=row["topic_slug"],
        representative_headline=row["representative_headline"],
        first_article_at=from_timestamp(row["first_article_at"]),
        last_article_at=from_timestamp(row["last_article_at"]),
        summary=row["summary"],
        bias_analysis=json.loads(row["bias_analysis"]) if row["bias_analysis"] else None,
        article_count=row["article_count"],
        source_count=row["source_count"],
        left_count=row["left_count"],
        center_count=row["center_count"],
        right_count=row["right_count"],
        international_count=row["international_count"],
        avg_heat=row["avg_heat_score"] or 0.0,
        avg_substance=row["avg_substance_score"] or 0.0,
        is_active=bool(row["is_active"]),
        summary_generated_at=from_timestamp(row["summary_generated_at"]),
    )


def _member(row: aiosqlite.Row) -> ClusterMember:
    return ClusterMember(
        article_id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        description=row["description"] or "",
        bias_label=row["bias_label"],
        published_at=from_timestamp(row["published_at"]),
        heat_score=row["heat_score"] or 0.0,
        substance_score=row["substance_score"] or 0.0,
    )


class Database:
    """
    SQLite store for sources, articles, clusters and daily digests.
    The unique keys on articles.link, sources.feed_url and
    daily_digests.digest_date are the only guard against overlapping runs.
    """

    def __init__(self, path: str):
        self.path = path

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS sources (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    feed_url TEXT NOT NULL UNIQUE,
                    bias_label TEXT NOT NULL DEFAULT 'center',
                    is_active BOOLEAN DEFAULT 1,
                    last_fetched_at TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS clusters (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    topic TEXT,
                    topic_slug TEXT,
                    representative_headline TEXT,
                    summary TEXT,
                    summary_generated_at TEXT,
                    bias_analysis TEXT,
                    avg_heat_score REAL DEFAULT 0,
                    avg_substance_score REAL DEFAULT 0,
                    article_count INTEGER DEFAULT 0,
                    source_count INTEGER DEFAULT 0,
                    left_count INTEGER DEFAULT 0,
                    center_count INTEGER DEFAULT 0,
                    right_count INTEGER DEFAULT 0,
                    international_count INTEGER DEFAULT 0,
                    first_article_at TEXT NOT NULL,
                    last_article_at TEXT NOT NULL,
                    is_active BOOLEAN DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id INTEGER NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    link TEXT NOT NULL UNIQUE,
                    image_url TEXT,
                    published_at TEXT NOT NULL,
                    fetched_at TEXT,
                    heat_score REAL,
                    substance_score REAL,
                    keywords TEXT,
                    cluster_id INTEGER REFERENCES clusters(id),
                    state TEXT NOT NULL DEFAULT 'scored',
                    is_processed BOOLEAN DEFAULT 0
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_digests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    digest_date TEXT NOT NULL UNIQUE,
                    summary TEXT NOT NULL,
                    key_topics TEXT,
                    closing_line TEXT DEFAULT 'You''re caught up.',
                    cluster_count INTEGER,
                    article_count INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            for statement in (
                "CREATE INDEX IF NOT EXISTS idx_articles_source ON articles(source_id)",
                "CREATE INDEX IF NOT EXISTS idx_articles_cluster ON articles(cluster_id)",
                "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at)",
                "CREATE INDEX IF NOT EXISTS idx_articles_state ON articles(state)",
                "CREATE INDEX IF NOT EXISTS idx_clusters_active ON clusters(is_active)",
                "CREATE INDEX IF NOT EXISTS idx_clusters_article_count ON clusters(article_count)",
                "CREATE INDEX IF NOT EXISTS idx_clusters_last_article ON clusters(last_article_at)",
                "CREATE INDEX IF NOT EXISTS idx_sources_active ON sources(is_active)",
            ):
                await conn.execute(statement)
            await conn.commit()
            logger.info("Database tables initialized")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def add_source(
        self,
        name: str,
        feed_url: str,
        bias_label: str,
        is_active: bool = True,
    ) -> Optional[int]:
        """Insert a source; returns None when the feed URL is already known."""
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO sources (name, feed_url, bias_label, is_active)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(feed_url) DO NOTHING
                """,
                (name, feed_url, bias_label, int(is_active)),
            )
            await conn.commit()
            return cursor.lastrowid if cursor.rowcount else None

    async def get_active_sources(self) -> List[Source]:
        rows = await self.fetchall(
            "SELECT * FROM sources WHERE is_active = 1 ORDER BY id"
        )
        return [_source(row) for row in rows]

    async def get_sources(self) -> List[Source]:
        rows = await self.fetchall("SELECT * FROM sources ORDER BY id")
        return [_source(row) for row in rows]

    async def mark_source_fetched(self, source_id: int, fetched_at: datetime) -> None:
        await self.execute(
            "UPDATE sources SET last_fetched_at = ? WHERE id = ?",
            (to_timestamp(fetched_at), source_id),
        )

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    async def link_exists(self, link: str) -> bool:
        row = await self.fetchone("SELECT 1 FROM articles WHERE link = ?", (link,))
        return row is not None

    async def insert_article(
        self,
        *,
        source_id: int,
        title: str,
        description: str,
        link: str,
        published_at: datetime,
        fetched_at: datetime,
        heat_score: float,
        substance_score: float,
        keywords: Sequence[str],
        image_url: Optional[str] = None,
    ) -> Article:
        """
        Store a scored article.

        Raises:
            DuplicateArticleError: if the link is already stored
        """
        async with self.connect() as conn:
            try:
                cursor = await conn.execute(
                    """
                    INSERT INTO articles
                    (source_id, title, description, link, image_url, published_at,
                     fetched_at, heat_score, substance_score, keywords, state)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        source_id, title, description, link, image_url,
                        to_timestamp(published_at), to_timestamp(fetched_at),
                        heat_score, substance_score, json.dumps(list(keywords)),
                        ArticleState.SCORED.value,
                    ),
                )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                if "articles.link" in str(e):
                    raise DuplicateArticleError(link) from e
                raise
            article_id = cursor.lastrowid

        article = await self.get_article(article_id)
        if article is None:
            raise RuntimeError(f"Inserted article {article_id} could not be read back")
        return article

    async def get_article(self, article_id: int) -> Optional[Article]:
        row = await self.fetchone("SELECT * FROM articles WHERE id = ?", (article_id,))
        return _article(row) if row else None

    async def get_unfinished_articles(self) -> List[Article]:
        """Articles a previous run stored but did not finish processing."""
        rows = await self.fetchall(
            "SELECT * FROM articles WHERE state IN (?, ?) ORDER BY id",
            (ArticleState.SCORED.value, ArticleState.CLUSTERED.value),
        )
        return [_article(row) for row in rows]

    async def advance_article_state(
        self,
        article_id: int,
        from_state: ArticleState,
        to_state: ArticleState,
    ) -> bool:
        """Move an article forward; a no-op if it already left from_state."""
        rowcount = await self.execute(
            "UPDATE articles SET state = ?, is_processed = ? WHERE id = ? AND state = ?",
            (
                to_state.value,
                int(to_state is ArticleState.PROCESSED),
                article_id,
                from_state.value,
            ),
        )
        return rowcount > 0

    async def get_cluster_candidates(
        self,
        *,
        since: datetime,
        exclude_article_id: int,
        limit: int,
    ) -> List[Article]:
        """Most recently published clustered articles after `since`."""
        rows = await self.fetchall(
            """
            SELECT * FROM articles
            WHERE published_at > ? AND id != ? AND cluster_id IS NOT NULL
            ORDER BY published_at DESC, id DESC
            LIMIT ?
            """,
            (to_timestamp(since), exclude_article_id, limit),
        )
        return [_article(row) for row in rows]

    # ------------------------------------------------------------------
    # Clusters
    # ------------------------------------------------------------------

    async def create_cluster_for_article(
        self,
        *,
        article_id: int,
        topic: str,
        representative_headline: str,
        first_article_at: datetime,
    ) -> Optional[int]:
        """
        Create a cluster and attach the seeding article in one transaction.
        Returns None, creating nothing, if the article already has a cluster.
        """
        ts = to_timestamp(first_article_at)
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO clusters
                (topic, representative_headline, first_article_at, last_article_at)
                VALUES (?, ?, ?, ?)
                """,
                (topic, representative_headline, ts, ts),
            )
            cluster_id = cursor.lastrowid
            cursor = await conn.execute(
                "UPDATE articles SET cluster_id = ? WHERE id = ? AND cluster_id IS NULL",
                (cluster_id, article_id),
            )
            if cursor.rowcount == 0:
                await conn.rollback()
                return None
            await conn.commit()
            return cluster_id

    async def set_article_cluster(self, article_id: int, cluster_id: int) -> bool:
        """Attach an unclustered article; False if it already has a cluster."""
        rowcount = await self.execute(
            "UPDATE articles SET cluster_id = ? WHERE id = ? AND cluster_id IS NULL",
            (cluster_id, article_id),
        )
        return rowcount > 0

    async def get_cluster(self, cluster_id: int) -> Optional[Cluster]:
        row = await self.fetchone("SELECT * FROM clusters WHERE id = ?", (cluster_id,))
        return _cluster(row) if row else None

    async def get_cluster_members(
        self,
        cluster_id: int,
        *,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> List[ClusterMember]:
        order = "DESC" if newest_first else "ASC"
        query = f"""
            SELECT a.id, a.source_id, a.title, a.description, a.published_at,
                   a.heat_score, a.substance_score, s.bias_label
            FROM articles a
            JOIN sources s ON a.source_id = s.id
            WHERE a.cluster_id = ?
            ORDER BY a.published_at {order}, a.id {order}
        """
        params: Tuple[Any, ...] = (cluster_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (cluster_id, limit)
        rows = await self.fetchall(query, params)
        return [_member(row) for row in rows]

    async def count_cluster_articles(self, cluster_id: int) -> int:
        row = await self.fetchone(
            "SELECT COUNT(*) FROM articles WHERE cluster_id = ?", (cluster_id,)
        )
        return row[0]

    async def update_cluster_stats(
        self,
        cluster_id: int,
        *,
        stats: ClusterStats,
        topic_slug: str,
    ) -> None:
        await self.execute(
            """
            UPDATE clusters SET
                article_count = ?,
                source_count = ?,
                left_count = ?,
                center_count = ?,
                right_count = ?,
                international_count = ?,
                avg_heat_score = ?,
                avg_substance_score = ?,
                first_article_at = ?,
                last_article_at = ?,
                representative_headline = ?,
                topic_slug = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (
                stats.article_count,
                stats.source_count,
                stats.left_count,
                stats.center_count,
                stats.right_count,
                stats.international_count,
                stats.avg_heat,
                stats.avg_substance,
                to_timestamp(stats.first_article_at),
                to_timestamp(stats.last_article_at),
                stats.representative_headline,
                topic_slug,
                cluster_id,
            ),
        )

    async def get_clusters_for_enrichment(self, *, min_articles: int, limit: int) -> List[Cluster]:
        """Largest active clusters that have no summary yet."""
        rows = await self.fetchall(
            """
            SELECT * FROM clusters
            WHERE is_active = 1 AND article_count >= ? AND summary IS NULL
            ORDER BY article_count DESC, id ASC
            LIMIT ?
            """,
            (min_articles, limit),
        )
        return [_cluster(row) for row in rows]

    async def save_enrichment(
        self,
        cluster_id: int,
        *,
        summary: str,
        bias_analysis: Dict[str, str],
        generated_at: datetime,
    ) -> bool:
        """
        Write summary and bias analysis together.
        Returns False if the cluster was summarized in the meantime.
        """
        rowcount = await self.execute(
            """
            UPDATE clusters
            SET summary = ?, bias_analysis = ?, summary_generated_at = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND summary IS NULL
            """,
            (summary, json.dumps(bias_analysis), to_timestamp(generated_at), cluster_id),
        )
        return rowcount > 0

    async def get_top_clusters_since(self, since: datetime, limit: int) -> List[Cluster]:
        rows = await self.fetchall(
            """
            SELECT * FROM clusters
            WHERE is_active = 1 AND last_article_at > ?
            ORDER BY article_count DESC, id ASC
            LIMIT ?
            """,
            (to_timestamp(since), limit),
        )
        return [_cluster(row) for row in rows]

    async def get_window_totals(self, since: datetime) -> Tuple[int, int]:
        """(distinct clusters, articles) for clusters active since `since`."""
        row = await self.fetchone(
            """
            SELECT COUNT(DISTINCT c.id), COUNT(a.id)
            FROM clusters c
            JOIN articles a ON a.cluster_id = c.id
            WHERE c.is_active = 1 AND c.last_article_at > ?
            """,
            (to_timestamp(since),),
        )
        return row[0] or 0, row[1] or 0

    # ------------------------------------------------------------------
    # Digests
    # ------------------------------------------------------------------

    async def digest_exists(self, digest_date: str) -> bool:
        row = await self.fetchone(
            "SELECT 1 FROM daily_digests WHERE digest_date = ?", (digest_date,)
        )
        return row is not None

    async def add_digest(
        self,
        *,
        digest_date: str,
        summary: str,
        key_topics: Sequence[str],
        cluster_count: int,
        article_count: int,
        closing_line: str = DEFAULT_CLOSING_LINE,
    ) -> Optional[int]:
        """Insert the digest for a date; None if one already exists."""
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO daily_digests
                (digest_date, summary, key_topics, closing_line, cluster_count, article_count)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(digest_date) DO NOTHING
                """,
                (
                    digest_date, summary, json.dumps(list(key_topics)),
                    closing_line, cluster_count, article_count,
                ),
            )
            await conn.commit()
            return cursor.lastrowid if cursor.rowcount else None

    async def get_digest(self, digest_date: str) -> Optional[DailyDigest]:
        row = await self.fetchone(
            "SELECT * FROM daily_digests WHERE digest_date = ?", (digest_date,)
        )
        if row is None:
            return None
        return DailyDigest(
            id=row["id"],
            digest_date=row["digest_date"],
            summary=row["summary"],
            key_topics=json.loads(row["key_topics"]) if row["key_topics"] else [],
            closing_line=row["closing_line"],
            cluster_count=row["cluster_count"] or 0,
            article_count=row["article_count"] or 0,
        )

    async def get_counts(self) -> Dict[str, int]:
        counts = {}
        for table in ("sources", "articles", "clusters", "daily_digests"):
            row = await self.fetchone(f"SELECT COUNT(*) FROM {table}")
            counts[table] = row[0]
        return counts
