from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, List

from .config import REMOVED_SENTINEL
from .datamodels import Article, FeedQuery, FeedResult
from .errors import FeedError
from .sources.base import FeedSource

logger = logging.getLogger("newsspeak")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _present(value) -> bool:
    return bool(value) and value != REMOVED_SENTINEL


def is_valid_article(article: Article) -> bool:
    """Title, description and url must all be present and not removed placeholders."""
    return (
        _present(article.title)
        and _present(article.description)
        and _present(article.url)
    )


def dedupe_by_url(articles: Iterable[Article]) -> List[Article]:
    seen = set()
    out: List[Article] = []
    for a in articles:
        if a.url not in seen:
            seen.add(a.url)
            out.append(a)
    return out


def published_key(article: Article) -> datetime:
    return article.published_at or EPOCH


def sort_newest_first(articles: Iterable[Article]) -> List[Article]:
    return sorted(articles, key=published_key, reverse=True)


def normalize(articles: Iterable[Article]) -> List[Article]:
    """Validity filter, then first-wins dedup, then newest first."""
    return sort_newest_first(dedupe_by_url(a for a in articles if is_valid_article(a)))


class FeedPipeline:
    """Runs one fetch per query and tags each result with a generation.

    Only the most recently issued generation is current; results from older
    generations are stale and must not replace what is on screen.
    """

    def __init__(self, source: FeedSource):
        self.source = source
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def run(self, query: FeedQuery, generation: int) -> FeedResult:
        try:
            raw = self.source.fetch(query)
        except FeedError as e:
            logger.error("Feed request %d failed: %s", generation, e)
            return FeedResult(generation=generation, query=query, error=e)

        articles = normalize(raw)
        logger.info(
            "Feed request %d: %d of %d articles kept", generation, len(articles), len(raw)
        )
        return FeedResult(generation=generation, query=query, articles=articles)
