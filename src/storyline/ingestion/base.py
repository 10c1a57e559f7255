"""
Base classes for feed ingestion
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class FeedItem(BaseModel):
    """
    Normalized candidate article from a feed.
    """
    title: str
    description: str = ""
    link: str
    published_at: datetime
    image_url: Optional[str] = None


class FeedFetcher(ABC):
    """
    Base interface for feed fetchers.
    """

    @abstractmethod
    async def fetch(self, url: str) -> List[FeedItem]:
        """
        Fetch and normalize the items of one feed.
        Must NEVER raise; returns an empty list on any failure.
        """
        raise NotImplementedError
