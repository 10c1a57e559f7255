"""
Full recompute of a cluster's derived fields from its members
"""
import logging
from typing import Optional, Sequence

from storyline.core.entities import ClusterMember, ClusterStats, bias_bucket
from storyline.processing.text import slugify
from storyline.services.database import Database

logger = logging.getLogger(__name__)


def aggregate_members(members: Sequence[ClusterMember]) -> Optional[ClusterStats]:
    """
    Bias buckets count member articles, not distinct sources, so the four
    buckets may add up to more than source_count.
    """
    if not members:
        return None

    buckets = {"left": 0, "center": 0, "right": 0, "international": 0}
    for member in members:
        bucket = bias_bucket(member.bias_label)
        if bucket is not None:
            buckets[bucket] += 1

    earliest = members[0]
    for member in members[1:]:
        if member.published_at < earliest.published_at:
            earliest = member

    count = len(members)
    return ClusterStats(
        article_count=count,
        source_count=len({m.source_id for m in members}),
        left_count=buckets["left"],
        center_count=buckets["center"],
        right_count=buckets["right"],
        international_count=buckets["international"],
        avg_heat=sum(m.heat_score for m in members) / count,
        avg_substance=sum(m.substance_score for m in members) / count,
        first_article_at=min(m.published_at for m in members),
        last_article_at=max(m.published_at for m in members),
        representative_headline=earliest.title,
    )


class ClusterStatsAggregator:
    """
    Recomputes cluster aggregates on every assignment. O(cluster size),
    which is fine for event-sized clusters of tens of articles.
    """

    def __init__(self, database: Database):
        self.db = database

    async def recompute(self, cluster_id: int) -> Optional[ClusterStats]:
        members = await self.db.get_cluster_members(cluster_id)
        stats = aggregate_members(members)
        if stats is None:
            logger.warning(f"Cluster {cluster_id} has no members, leaving stats untouched")
            return None

        cluster = await self.db.get_cluster(cluster_id)
        topic = (cluster.topic if cluster else None) or stats.representative_headline
        await self.db.update_cluster_stats(
            cluster_id,
            stats=stats,
            topic_slug=slugify(topic),
        )
        return stats
