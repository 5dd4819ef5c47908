from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..datamodels import Article, FeedQuery


class FeedSource(ABC):
    """Abstract base class for a news feed source."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abstractmethod
    def fetch(self, query: FeedQuery) -> List[Article]:
        """Return the raw articles for a query, raising FeedError on failure."""
        pass
