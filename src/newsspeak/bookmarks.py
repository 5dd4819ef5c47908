from __future__ import annotations

import json
import logging
from typing import Callable, List

from .config import BOOKMARKS_KEY
from .datamodels import Article, Bookmark
from .storage import KeyValueStorage, StorageEvent

logger = logging.getLogger("newsspeak")

BookmarksListener = Callable[[List[Bookmark]], None]


class BookmarkStore:
    """Bookmarks kept as one JSON array in a single storage slot.

    Each mutation re-reads the slot, edits the whole list and writes it back.
    """

    def __init__(self, storage: KeyValueStorage, key: str = BOOKMARKS_KEY):
        self.storage = storage
        self.key = key
        self._listeners: List[BookmarksListener] = []
        self._bookmarks: List[Bookmark] = self._load()
        self._unsubscribe = storage.subscribe(self._on_storage_event)

    def _load(self) -> List[Bookmark]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error("Bookmarks slot %s is not valid JSON: %s", self.key, e)
            return []
        if not isinstance(data, list):
            logger.error("Bookmarks slot %s does not hold a list", self.key)
            return []

        bookmarks: List[Bookmark] = []
        seen = set()
        for item in data:
            url = item.get("url") if isinstance(item, dict) else None
            if not isinstance(url, str) or not url or url in seen:
                continue
            seen.add(url)
            bookmarks.append(Bookmark.from_dict(item))
        return bookmarks

    def _save(self, bookmarks: List[Bookmark]) -> None:
        self.storage.set(self.key, json.dumps([b.to_dict() for b in bookmarks]))
        self._bookmarks = bookmarks
        self._emit()

    def _emit(self) -> None:
        snapshot = self.list()
        for listener in list(self._listeners):
            listener(snapshot)

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self.key:
            return
        logger.debug("Bookmarks changed externally; reloading")
        self._bookmarks = self._load()
        self._emit()

    def subscribe(self, listener: BookmarksListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()

    def is_bookmarked(self, url: str) -> bool:
        return any(b.url == url for b in self._bookmarks)

    def add(self, article: Article) -> None:
        bookmarks = self._load()
        if any(b.url == article.url for b in bookmarks):
            self._bookmarks = bookmarks
            return
        bookmarks.append(Bookmark.from_article(article))
        self._save(bookmarks)
        logger.info("Bookmarked %s", article.url)

    def remove(self, url: str) -> None:
        bookmarks = self._load()
        remaining = [b for b in bookmarks if b.url != url]
        if len(remaining) == len(bookmarks):
            self._bookmarks = bookmarks
            return
        self._save(remaining)
        logger.info("Removed bookmark %s", url)

    def toggle(self, article: Article) -> bool:
        """Flip the bookmark for an article; returns True when it is now bookmarked."""
        if self.is_bookmarked(article.url):
            self.remove(article.url)
            return False
        self.add(article)
        return True

    def clear(self) -> None:
        self._save([])
        logger.info("Cleared all bookmarks")

    def list(self) -> List[Bookmark]:
        return list(self._bookmarks)
