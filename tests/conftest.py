"""Shared fixtures: a real SQLite store per test and in-memory fakes."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from storyline.core.entities import Source
from storyline.ingestion.base import FeedFetcher, FeedItem
from storyline.processing.framing import FRAMING_SYSTEM
from storyline.services.database import Database

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def make_item(title: str, link: str, description: str = "", hours_ago: float = 1) -> FeedItem:
    return FeedItem(
        title=title,
        description=description,
        link=link,
        published_at=NOW - timedelta(hours=hours_ago),
    )


class FakeFetcher(FeedFetcher):
    """Serves canned items per feed URL; URLs listed in `failing` raise."""

    def __init__(self, feeds: Optional[Dict[str, List[FeedItem]]] = None, failing=()):
        self.feeds = feeds or {}
        self.failing = set(failing)
        self.calls: List[str] = []

    async def fetch(self, url: str) -> List[FeedItem]:
        self.calls.append(url)
        if url in self.failing:
            raise ConnectionError(f"cannot reach {url}")
        return list(self.feeds.get(url, []))


class FakeLLM:
    """Stands in for OllamaClient. Framing prompts get `analysis`, everything else `summary`."""

    def __init__(
        self,
        summary: str = "Lawmakers approved the budget.",
        analysis: Optional[str] = None,
        enabled: bool = True,
        error: Optional[Exception] = None,
    ):
        self.summary = summary
        self.analysis = analysis if analysis is not None else json.dumps({
            "leftEmphasizes": "Social spending.",
            "rightEmphasizes": "Deficit concerns.",
            "consistentAcrossAll": "The vote count.",
            "whatsMissing": "Long-term cost estimates.",
        })
        self.enabled = enabled
        self.error = error
        self.prompts: List[str] = []

    def available(self) -> bool:
        return self.enabled

    async def chat(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if system_prompt == FRAMING_SYSTEM:
            return self.analysis
        return self.summary


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(str(tmp_path / "storyline.db"))
    asyncio.run(database.init_tables())
    return database


@pytest.fixture
def sources(db) -> List[Source]:
    async def seed() -> List[Source]:
        await db.add_source("Left Wire", "https://left.example/rss", "left")
        await db.add_source("Center Daily", "https://center.example/rss", "center")
        await db.add_source("Right Post", "https://right.example/rss", "center-right")
        return await db.get_sources()

    return asyncio.run(seed())
