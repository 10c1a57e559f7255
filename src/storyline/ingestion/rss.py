"""
Ingestion from RSS/Atom feeds
"""
import html
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import httpx
from pydantic import BaseModel

from storyline.ingestion.base import FeedFetcher, FeedItem

logger = logging.getLogger(__name__)

USER_AGENT = "storyline/1.0 RSS Reader"
ACCEPT = "application/rss+xml, application/xml, text/xml, */*"
MAX_DESCRIPTION_LENGTH = 1000
MAX_SAMPLE_HEADLINES = 10

_TAGS = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


class FeedValidation(BaseModel):
    valid: bool
    item_count: int = 0
    title: Optional[str] = None
    error: Optional[str] = None
    sample_headlines: List[str] = []


def clean_description(text: str) -> str:
    """Strip tags, decode entities, collapse whitespace, cap the length."""
    text = _TAGS.sub("", text or "")
    text = html.unescape(text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:MAX_DESCRIPTION_LENGTH]


def _entry_published(entry: Any) -> datetime:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return datetime.now(timezone.utc)


def _entry_description(entry: Any) -> str:
    if entry.get("summary"):
        return entry["summary"]
    for content in entry.get("content") or []:
        if content.get("value"):
            return content["value"]
    return ""


def extract_image_url(entry: Any) -> Optional[str]:
    for media in entry.get("media_content") or []:
        if media.get("url") and media.get("medium") == "image":
            return media["url"]
    for media in entry.get("media_content") or []:
        if media.get("url"):
            return media["url"]

    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            return thumb["url"]

    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("href") and (enclosure.get("type") or "").startswith("image/"):
            return enclosure["href"]

    for content in entry.get("content") or []:
        match = _IMG_SRC.search(content.get("value") or "")
        if match:
            return match.group(1)

    return None


def parse_entries(feed: Any) -> List[FeedItem]:
    items: List[FeedItem] = []
    for entry in feed.entries:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            continue

        items.append(
            FeedItem(
                title=title,
                description=clean_description(_entry_description(entry)),
                link=link,
                published_at=_entry_published(entry),
                image_url=extract_image_url(entry),
            )
        )
    return items


class RSSFeedFetcher(FeedFetcher):
    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent, "Accept": ACCEPT}
        self.transport = transport

    async def _download(self, url: str) -> Any:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            resp = await client.get(url)
            resp.raise_for_status()

        feed = feedparser.parse(resp.content)
        if feed.bozo and not feed.entries:
            raise ValueError(f"Unparseable feed: {feed.get('bozo_exception')}")
        return feed

    async def fetch(self, url: str) -> List[FeedItem]:
        try:
            feed = await self._download(url)
            return parse_entries(feed)
        except Exception as e:
            logger.error(f"Failed to fetch {url}: {e}")
            return []

    async def validate(self, url: str) -> FeedValidation:
        try:
            feed = await self._download(url)
        except Exception as e:
            return FeedValidation(valid=False, error=str(e))

        headlines = [
            entry.get("title", "") for entry in feed.entries[:MAX_SAMPLE_HEADLINES]
        ]
        return FeedValidation(
            valid=True,
            item_count=len(feed.entries),
            title=feed.feed.get("title"),
            sample_headlines=[h for h in headlines if h],
        )
