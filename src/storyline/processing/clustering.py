"""
Incremental lexical clustering of articles into stories.

Each new article is compared against recent clustered articles with
plain term-frequency cosine similarity and joins the cluster of the single
best match above the threshold, or seeds a new cluster. Assignments are
greedy and final: clusters are never merged, split or re-evaluated.
"""
import logging
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from storyline.core.entities import Article, utc_now
from storyline.core.errors import CandidateQueryError
from storyline.processing.cluster_stats import ClusterStatsAggregator
from storyline.processing.text import extract_topic, tokenize
from storyline.services.database import Database

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.35
CLUSTER_WINDOW_HOURS = 72
CANDIDATE_LIMIT = 500
MIN_TOKENS = 3

TermVector = Dict[str, float]


@dataclass(frozen=True)
class ClusterMatch:
    cluster_id: int
    article_id: int
    similarity: float


def build_tf_vector(tokens: List[str]) -> TermVector:
    """Term frequency (count / token count), no IDF weighting."""
    length = len(tokens) or 1
    return {term: count / length for term, count in Counter(tokens).items()}


def cosine_similarity(a: TermVector, b: TermVector) -> float:
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for term in set(a) | set(b):
        va = a.get(term, 0.0)
        vb = b.get(term, 0.0)
        dot += va * vb
        norm_a += va * va
        norm_b += vb * vb
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def best_match(
    vector: TermVector,
    candidates: Iterable[Article],
    threshold: float = SIMILARITY_THRESHOLD,
) -> Optional[ClusterMatch]:
    """
    Highest-similarity candidate strictly above the threshold.
    Ties go to the candidate seen first.
    """
    best: Optional[ClusterMatch] = None
    for candidate in candidates:
        if candidate.cluster_id is None:
            continue
        similarity = cosine_similarity(vector, build_tf_vector(tokenize(candidate.text)))
        if similarity > threshold and (best is None or similarity > best.similarity):
            best = ClusterMatch(
                cluster_id=candidate.cluster_id,
                article_id=candidate.id,
                similarity=similarity,
            )
    return best


class ClusteringEngine:
    """
    Assigns stored articles to story clusters.
    """

    def __init__(
        self,
        database: Database,
        stats: ClusterStatsAggregator,
        *,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        window_hours: int = CLUSTER_WINDOW_HOURS,
        candidate_limit: int = CANDIDATE_LIMIT,
        min_tokens: int = MIN_TOKENS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = database
        self.stats = stats
        self.similarity_threshold = similarity_threshold
        self.window_hours = window_hours
        self.candidate_limit = candidate_limit
        self.min_tokens = min_tokens
        self.clock = clock

    async def assign(self, article: Article) -> Optional[int]:
        """
        Returns the cluster id the article now belongs to, or None when the
        article has too few meaningful tokens to compare.

        Raises:
            CandidateQueryError: if recent candidates could not be loaded
        """
        if article.cluster_id is not None:
            # Already assigned by an interrupted run; stats may be stale.
            await self.stats.recompute(article.cluster_id)
            return article.cluster_id

        tokens = tokenize(article.text)
        if len(tokens) < self.min_tokens:
            logger.debug(f"Too few tokens to cluster article {article.id}: {article.title!r}")
            return None

        vector = build_tf_vector(tokens)
        since = self.clock() - timedelta(hours=self.window_hours)

        try:
            candidates = await self.db.get_cluster_candidates(
                since=since,
                exclude_article_id=article.id,
                limit=self.candidate_limit,
            )
        except Exception as e:
            raise CandidateQueryError(
                f"Candidate search failed for article {article.id}: {e}"
            ) from e

        match = best_match(vector, candidates, self.similarity_threshold)

        if match is not None:
            cluster_id: Optional[int] = match.cluster_id
            if await self.db.set_article_cluster(article.id, match.cluster_id):
                logger.debug(
                    f"Article {article.id} joined cluster {cluster_id} "
                    f"(similarity {match.similarity:.3f} to article {match.article_id})"
                )
            else:
                cluster_id = None
        else:
            cluster_id = await self.db.create_cluster_for_article(
                article_id=article.id,
                topic=extract_topic(article.title),
                representative_headline=article.title,
                first_article_at=article.published_at,
            )
            if cluster_id is not None:
                logger.debug(f"Article {article.id} seeded cluster {cluster_id}")

        if cluster_id is None:
            cluster_id = await self._stored_cluster(article)
            if cluster_id is None:
                return None

        await self.stats.recompute(cluster_id)
        return cluster_id

    async def _stored_cluster(self, article: Article) -> Optional[int]:
        """Cluster another run attached the article to while this one was deciding."""
        stored = await self.db.get_article(article.id)
        cluster_id = stored.cluster_id if stored else None
        logger.info(f"Article {article.id} was already clustered elsewhere (cluster {cluster_id})")
        return cluster_id
