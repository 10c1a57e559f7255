"""Tests for processing.framing and processing.summarizer modules."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta

from conftest import NOW, FakeLLM
from storyline.core.entities import ClusterMember
from storyline.core.schemas import PENDING_ANALYSIS, BiasAnalysis
from storyline.processing.framing import analyze_bias, parse_bias_analysis, partition_by_bias
from storyline.processing.summarizer import DigestTopic, summarize_cluster, template_digest

ANALYSIS = {
    "leftEmphasizes": "Social spending.",
    "rightEmphasizes": "Deficit concerns.",
    "consistentAcrossAll": "The vote count.",
    "whatsMissing": "Long-term cost estimates.",
}


def _member(article_id: int, bias, title: str, description: str = "") -> ClusterMember:
    return ClusterMember(
        article_id=article_id,
        source_id=article_id,
        title=title,
        description=description,
        bias_label=bias,
        published_at=NOW - timedelta(hours=article_id),
        heat_score=0.0,
        substance_score=0.0,
    )


class TestParseBiasAnalysis:
    def test_plain_json(self) -> None:
        result = parse_bias_analysis(json.dumps(ANALYSIS))
        assert result.left_emphasizes == "Social spending."
        assert result.whats_missing == "Long-term cost estimates."

    def test_markdown_fence(self) -> None:
        content = "```json\n" + json.dumps(ANALYSIS) + "\n```"
        assert parse_bias_analysis(content).right_emphasizes == "Deficit concerns."

    def test_surrounding_prose(self) -> None:
        content = "Here is the analysis: " + json.dumps(ANALYSIS) + " Hope this helps."
        assert parse_bias_analysis(content).consistent_across_all == "The vote count."

    def test_garbage_gives_placeholder(self) -> None:
        result = parse_bias_analysis("I cannot answer that.")
        assert result.left_emphasizes == PENDING_ANALYSIS
        assert result.right_emphasizes == PENDING_ANALYSIS
        assert result.consistent_across_all == PENDING_ANALYSIS
        assert result.whats_missing == PENDING_ANALYSIS

    def test_missing_field_gives_placeholder(self) -> None:
        partial = {k: v for k, v in ANALYSIS.items() if k != "whatsMissing"}
        assert parse_bias_analysis(json.dumps(partial)).left_emphasizes == PENDING_ANALYSIS

    def test_dumps_with_camel_case_keys(self) -> None:
        dumped = BiasAnalysis.model_validate(ANALYSIS).model_dump(by_alias=True)
        assert dumped == ANALYSIS


class TestPartitionByBias:
    def test_buckets(self) -> None:
        buckets = partition_by_bias([
            _member(1, "center-left", "A", "x" * 300),
            _member(2, "center", "B", "desc"),
            _member(3, "center-right", "C"),
            _member(4, "international", "D"),
            _member(5, None, "E"),
        ])
        assert buckets["left"] == ["A: " + "x" * 150]
        assert buckets["center"] == ["B: desc"]
        assert buckets["right"] == ["C: "]
        assert "international" not in buckets


class TestAnalyzeBias:
    def test_empty_bucket_marked_no_coverage(self) -> None:
        llm = FakeLLM()
        result = asyncio.run(analyze_bias(
            llm=llm, topic="Budget vote", left=["A: a"], center=[], right=["C: c"],
        ))
        assert result.left_emphasizes == "Social spending."
        assert '"Budget vote"' in llm.prompts[0]
        assert "Center coverage:\nNo coverage" in llm.prompts[0]

    def test_only_three_texts_per_bucket(self) -> None:
        llm = FakeLLM()
        left = [f"L{i}: text" for i in range(5)]
        asyncio.run(analyze_bias(llm=llm, topic="t", left=left, center=[], right=[]))
        assert "L2: text" in llm.prompts[0]
        assert "L3: text" not in llm.prompts[0]


class TestSummarizeCluster:
    def test_limits_articles_and_snippets(self) -> None:
        llm = FakeLLM(summary="  A short summary.  ")
        headlines = [f"Headline {i}" for i in range(12)]
        descriptions = ["y" * 500] * 12
        summary = asyncio.run(summarize_cluster(llm=llm, headlines=headlines, descriptions=descriptions))
        assert summary == "A short summary."
        prompt = llm.prompts[0]
        assert "Headline 9" in prompt
        assert "Headline 10" not in prompt
        assert "y" * 201 not in prompt


class TestTemplateDigest:
    def test_format(self) -> None:
        text = template_digest([
            DigestTopic(topic="Budget vote", summary="The Senate passed it.", article_count=5),
            DigestTopic(topic="", summary=None, article_count=3),
        ])
        assert text == (
            "Today's top stories:\n\n"
            "1. Budget vote (5 sources): The Senate passed it.\n\n"
            "2. Developing story (3 sources)\n\n"
            "2 stories tracked today."
        )
