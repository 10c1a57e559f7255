"""Tests for processing.clustering and processing.cluster_stats modules."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, fixed_clock
from storyline.core.entities import Article, ClusterMember
from storyline.core.errors import CandidateQueryError
from storyline.processing.cluster_stats import ClusterStatsAggregator, aggregate_members
from storyline.processing.clustering import (
    ClusteringEngine,
    best_match,
    build_tf_vector,
    cosine_similarity,
)
from storyline.processing.text import tokenize


def _article(article_id: int, title: str, cluster_id=None) -> Article:
    return Article(
        id=article_id,
        source_id=1,
        title=title,
        description="",
        link=f"https://example.com/{article_id}",
        published_at=NOW,
        fetched_at=NOW,
        heat_score=0.0,
        substance_score=0.0,
        cluster_id=cluster_id,
    )


def _member(article_id: int, source_id: int, bias: str, hours_ago: float, title: str = "t") -> ClusterMember:
    return ClusterMember(
        article_id=article_id,
        source_id=source_id,
        title=title,
        description="",
        bias_label=bias,
        published_at=NOW - timedelta(hours=hours_ago),
        heat_score=0.2,
        substance_score=0.6,
    )


def _engine(db) -> ClusteringEngine:
    return ClusteringEngine(db, ClusterStatsAggregator(db), clock=fixed_clock)


async def _store(db, source_id: int, title: str, link: str, hours_ago: float = 1):
    return await db.insert_article(
        source_id=source_id,
        title=title,
        description="",
        link=link,
        published_at=NOW - timedelta(hours=hours_ago),
        fetched_at=NOW,
        heat_score=0.1,
        substance_score=0.3,
        keywords=[],
    )


class TestTfVector:
    def test_term_frequency(self) -> None:
        assert build_tf_vector(["a", "b", "a", "c"]) == {"a": 0.5, "b": 0.25, "c": 0.25}

    def test_empty(self) -> None:
        assert build_tf_vector([]) == {}


class TestCosineSimilarity:
    def test_identical(self) -> None:
        v = build_tf_vector(["senate", "budget", "vote"])
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_disjoint(self) -> None:
        assert cosine_similarity({"a": 1.0}, {"b": 1.0}) == 0.0

    def test_empty_vector(self) -> None:
        assert cosine_similarity({}, {"a": 1.0}) == 0.0

    def test_senate_headlines(self) -> None:
        a = build_tf_vector(tokenize("Senate passes $1.2 trillion budget bill, 58–42"))
        b = build_tf_vector(tokenize("Senate approves budget package by 58–42 vote"))
        assert cosine_similarity(a, b) == pytest.approx(0.4)


class TestBestMatch:
    def test_picks_highest(self) -> None:
        vector = build_tf_vector(tokenize("senate budget vote passes"))
        candidates = [
            _article(1, "senate budget weather storm", cluster_id=10),
            _article(2, "senate budget vote passes", cluster_id=20),
        ]
        match = best_match(vector, candidates)
        assert match.cluster_id == 20
        assert match.article_id == 2

    def test_first_candidate_wins_ties(self) -> None:
        vector = build_tf_vector(tokenize("senate budget vote"))
        candidates = [
            _article(1, "senate budget vote", cluster_id=10),
            _article(2, "senate budget vote", cluster_id=20),
        ]
        assert best_match(vector, candidates).cluster_id == 10

    def test_threshold_is_strict(self) -> None:
        vector = build_tf_vector(tokenize("senate budget vote"))
        candidates = [_article(1, "senate budget vote", cluster_id=10)]
        assert best_match(vector, candidates, threshold=1.0) is None

    def test_skips_unclustered_candidates(self) -> None:
        vector = build_tf_vector(tokenize("senate budget vote"))
        assert best_match(vector, [_article(1, "senate budget vote")]) is None


class TestAggregateMembers:
    def test_empty(self) -> None:
        assert aggregate_members([]) is None

    def test_counts_and_averages(self) -> None:
        stats = aggregate_members([
            _member(1, 1, "center-left", hours_ago=3, title="first"),
            _member(2, 2, "right", hours_ago=1, title="second"),
            _member(3, 3, "international", hours_ago=2, title="third"),
        ])
        assert stats.article_count == 3
        assert stats.source_count == 3
        assert (stats.left_count, stats.center_count, stats.right_count, stats.international_count) == (1, 0, 1, 1)
        assert stats.avg_heat == pytest.approx(0.2)
        assert stats.first_article_at == NOW - timedelta(hours=3)
        assert stats.last_article_at == NOW - timedelta(hours=1)
        assert stats.representative_headline == "first"

    def test_buckets_count_articles_not_sources(self) -> None:
        stats = aggregate_members([
            _member(1, 1, "left", hours_ago=1),
            _member(2, 1, "left", hours_ago=2),
            _member(3, 2, "center", hours_ago=3),
        ])
        assert stats.source_count == 2
        assert stats.left_count == 2
        assert stats.left_count + stats.center_count > stats.source_count


class TestClusteringEngine:
    def test_similar_headlines_share_a_cluster(self, db, sources) -> None:
        async def scenario():
            engine = _engine(db)
            first = await _store(db, sources[0].id, "Senate passes $1.2 trillion budget bill, 58–42", "https://a/1")
            second = await _store(db, sources[1].id, "Senate approves budget package by 58–42 vote", "https://b/1")
            return await engine.assign(first), await engine.assign(second)

        first_cluster, second_cluster = asyncio.run(scenario())
        assert first_cluster is not None
        assert first_cluster == second_cluster

        cluster = asyncio.run(db.get_cluster(first_cluster))
        assert cluster.article_count == 2
        assert cluster.source_count == 2
        assert cluster.left_count == 1
        assert cluster.center_count == 1
        assert cluster.topic == "Senate passes $1.2 trillion budget bill, 58–42"
        assert cluster.topic_slug == "senate-passes-12-trillion-budget-bill-5842"

    def test_unrelated_headlines_split(self, db, sources) -> None:
        async def scenario():
            engine = _engine(db)
            first = await _store(db, sources[0].id, "Senate passes budget bill after long debate", "https://a/1")
            second = await _store(db, sources[1].id, "Wildfire forces evacuations across northern California", "https://b/1")
            return await engine.assign(first), await engine.assign(second)

        first_cluster, second_cluster = asyncio.run(scenario())
        assert first_cluster != second_cluster

    def test_too_few_tokens_left_unclustered(self, db, sources) -> None:
        async def scenario():
            article = await _store(db, sources[0].id, "Live: the news", "https://a/1")
            return await _engine(db).assign(article)

        assert asyncio.run(scenario()) is None

    def test_already_assigned_article_keeps_cluster(self, db, sources) -> None:
        async def scenario():
            engine = _engine(db)
            article = await _store(db, sources[0].id, "Senate passes budget bill after long debate", "https://a/1")
            cluster_id = await engine.assign(article)
            reloaded = await db.get_article(article.id)
            again = await engine.assign(reloaded)
            return cluster_id, again, await db.get_cluster(cluster_id)

        cluster_id, again, cluster = asyncio.run(scenario())
        assert again == cluster_id
        assert cluster.article_count == 1

    def test_newer_cluster_wins_equal_similarity(self, db, sources) -> None:
        async def scenario():
            engine = _engine(db)
            clusters = []
            for hours_ago, link in ((30, "https://a/old"), (5, "https://b/new")):
                article = await _store(db, sources[0].id, "Senate budget vote delayed", link, hours_ago=hours_ago)
                clusters.append(await db.create_cluster_for_article(
                    article_id=article.id,
                    topic=article.title,
                    representative_headline=article.title,
                    first_article_at=article.published_at,
                ))
            latest = await _store(db, sources[1].id, "Senate budget vote delayed", "https://c/1")
            return clusters, await engine.assign(latest)

        (older, newer), assigned = asyncio.run(scenario())
        assert older != newer
        assert assigned == newer

    def test_join_yields_to_concurrent_assignment(self, db, sources) -> None:
        async def scenario():
            engine = _engine(db)
            first = await _store(db, sources[0].id, "Senate passes budget bill after long debate", "https://a/1")
            joined = await engine.assign(first)
            stale = await _store(db, sources[1].id, "Senate passes budget bill after long debate", "https://b/1")
            elsewhere = await db.create_cluster_for_article(
                article_id=stale.id,
                topic=stale.title,
                representative_headline=stale.title,
                first_article_at=stale.published_at,
            )
            assigned = await engine.assign(stale)
            return joined, elsewhere, assigned, await db.get_cluster(joined), await db.get_cluster(elsewhere)

        joined, elsewhere, assigned, first_cluster, other_cluster = asyncio.run(scenario())
        assert assigned == elsewhere
        assert first_cluster.article_count == 1
        assert other_cluster.article_count == 1

    def test_seed_yields_to_concurrent_assignment(self, db, sources) -> None:
        async def scenario():
            stale = await _store(db, sources[0].id, "Wildfire forces evacuations across northern California", "https://a/1")
            existing = await db.create_cluster_for_article(
                article_id=stale.id,
                topic=stale.title,
                representative_headline=stale.title,
                first_article_at=stale.published_at,
            )
            assigned = await _engine(db).assign(stale)
            return existing, assigned, await db.get_counts()

        existing, assigned, counts = asyncio.run(scenario())
        assert assigned == existing
        assert counts["clusters"] == 1

    def test_candidate_failure_is_wrapped(self) -> None:
        class BrokenDatabase:
            async def get_cluster_candidates(self, **kwargs):
                raise RuntimeError("database is locked")

        engine = ClusteringEngine(BrokenDatabase(), None, clock=fixed_clock)
        article = _article(1, "Senate passes budget bill after long debate")
        with pytest.raises(CandidateQueryError):
            asyncio.run(engine.assign(article))
