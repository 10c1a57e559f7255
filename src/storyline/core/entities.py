from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

# Source bias label -> coverage bucket on a cluster
BIAS_BUCKETS: Dict[str, str] = {
    "left": "left",
    "center-left": "left",
    "center": "center",
    "center-right": "right",
    "right": "right",
    "international": "international",
}


def bias_bucket(label: Optional[str]) -> Optional[str]:
    if not label:
        return None
    return BIAS_BUCKETS.get(label)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ArticleState(str, Enum):
    """
    Lifecycle of a stored article. A fetched feed item is a FeedItem until
    it is scored and inserted; every row starts at SCORED and moves forward
    one step at a time.
    """
    SCORED = "scored"
    CLUSTERED = "clustered"
    PROCESSED = "processed"


@dataclass(frozen=True)
class Source:
    """
    A feed the pipeline pulls from.
    """
    id: int
    name: str
    feed_url: str
    bias_label: str
    is_active: bool = True
    last_fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class Article:
    """
    Canonical representation of a stored article.
    """
    id: int
    source_id: int
    title: str
    description: str
    link: str
    published_at: datetime
    fetched_at: Optional[datetime]
    heat_score: float
    substance_score: float
    keywords: List[str] = field(default_factory=list)
    cluster_id: Optional[int] = None
    state: ArticleState = ArticleState.SCORED
    image_url: Optional[str] = None

    @property
    def text(self) -> str:
        return f"{self.title} {self.description or ''}"

    @property
    def is_processed(self) -> bool:
        return self.state is ArticleState.PROCESSED


@dataclass(frozen=True)
class ClusterMember:
    """
    An article row joined with its owning source's bias label.
    """
    article_id: int
    source_id: int
    title: str
    description: str
    bias_label: Optional[str]
    published_at: datetime
    heat_score: float
    substance_score: float


@dataclass
class Cluster:
    """
    Live aggregate of articles covering the same story.
    """
    id: int
    topic: Optional[str]
    topic_slug: Optional[str]
    representative_headline: Optional[str]
    first_article_at: datetime
    last_article_at: datetime
    summary: Optional[str] = None
    bias_analysis: Optional[Dict[str, str]] = None
    article_count: int = 0
    source_count: int = 0
    left_count: int = 0
    center_count: int = 0
    right_count: int = 0
    international_count: int = 0
    avg_heat: float = 0.0
    avg_substance: float = 0.0
    is_active: bool = True
    summary_generated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DailyDigest:
    """
    Once-per-day narrative over the day's top clusters.
    """
    id: int
    digest_date: str
    summary: str
    key_topics: List[str]
    closing_line: str
    cluster_count: int
    article_count: int


@dataclass(frozen=True)
class ClusterStats:
    """
    Derived fields of a cluster, recomputed from all of its members.
    """
    article_count: int
    source_count: int
    left_count: int
    center_count: int
    right_count: int
    international_count: int
    avg_heat: float
    avg_substance: float
    first_article_at: datetime
    last_article_at: datetime
    representative_headline: str
