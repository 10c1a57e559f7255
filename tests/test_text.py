"""Tests for processing.text module."""

from __future__ import annotations

from storyline.processing.text import extract_keywords, extract_topic, slugify, tokenize


class TestTokenize:
    def test_drops_short_tokens_and_stopwords(self) -> None:
        assert tokenize("The Senate and the House vote on it") == ["senate", "house", "vote"]

    def test_strips_punctuation(self) -> None:
        assert tokenize("Budget-bill: passes, 58–42!") == ["budget", "bill", "passes"]

    def test_empty(self) -> None:
        assert tokenize("") == []


class TestExtractKeywords:
    def test_ranked_by_frequency(self) -> None:
        text = "budget senate budget vote budget senate"
        assert extract_keywords(text) == ["budget", "senate", "vote"]

    def test_ties_keep_first_appearance(self) -> None:
        assert extract_keywords("zebra apple mango") == ["zebra", "apple", "mango"]

    def test_limit(self) -> None:
        text = " ".join(f"word{i}" for i in range(20))
        assert len(extract_keywords(text)) == 10

    def test_skips_short_words(self) -> None:
        assert extract_keywords("tax cut for all") == []


class TestExtractTopic:
    def test_strips_leading_label(self) -> None:
        assert extract_topic("BREAKING: Fire at the docks") == "Fire at the docks"

    def test_strips_outlet_suffix(self) -> None:
        assert extract_topic("Fire at the docks - Daily Planet") == "Fire at the docks"
        assert extract_topic("Fire at the docks | Daily Planet") == "Fire at the docks"
        assert extract_topic("Fire at the docks – Daily Planet") == "Fire at the docks"

    def test_keeps_hyphenated_words(self) -> None:
        assert extract_topic("Year-over-year inflation cools") == "Year-over-year inflation cools"

    def test_truncates(self) -> None:
        assert len(extract_topic("a" * 300)) == 120


class TestSlugify:
    def test_basic(self) -> None:
        assert slugify("Senate passes $1.2T budget!") == "senate-passes-12t-budget"

    def test_truncates(self) -> None:
        assert len(slugify("word " * 50)) == 80
