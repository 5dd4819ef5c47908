from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup


class Category(str, Enum):
    BUSINESS = "business"
    ENTERTAINMENT = "entertainment"
    GENERAL = "general"
    HEALTH = "health"
    SCIENCE = "science"
    SPORTS = "sports"
    TECHNOLOGY = "technology"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: Any) -> Optional["Category"]:
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown category: {value!r}") from None


class QueryMode(str, Enum):
    SEARCH = "search"
    CATEGORY = "category"
    DEFAULT = "default"


class SortField(str, Enum):
    PUBLISHED_AT = "publishedAt"
    TITLE = "title"
    SOURCE = "source"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by NewsAPI; None when missing or bad."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def strip_html(text: Optional[str]) -> Optional[str]:
    if not text or "<" not in text:
        return text
    return BeautifulSoup(text, "lxml").get_text(" ", strip=True)


# --- Data models ---
@dataclass(frozen=True)
class Article:
    title: str
    url: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    source_name: Optional[str] = None
    author: Optional[str] = None
    content: Optional[str] = None

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> "Article":
        source = record.get("source") or {}
        if not isinstance(source, dict):
            source = {}
        return cls(
            title=_text(record.get("title")) or "",
            url=_text(record.get("url")) or "",
            description=strip_html(_text(record.get("description"))),
            image_url=_text(record.get("urlToImage")),
            published_at=parse_timestamp(record.get("publishedAt")),
            source_name=_text(source.get("name")),
            author=_text(record.get("author")),
            content=_text(record.get("content")),
        )

    @property
    def published_iso(self) -> Optional[str]:
        if self.published_at is None:
            return None
        return self.published_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Bookmark:
    title: str
    url: str
    published_at: Optional[str] = None
    source_name: Optional[str] = None

    @classmethod
    def from_article(cls, article: Article) -> "Bookmark":
        return cls(
            title=article.title,
            url=article.url,
            published_at=article.published_iso,
            source_name=article.source_name,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bookmark":
        return cls(
            title=_text(data.get("title")) or "",
            url=data["url"],
            published_at=_text(data.get("publishedAt")),
            source_name=_text(data.get("source")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "publishedAt": self.published_at,
            "source": self.source_name,
        }


@dataclass(frozen=True)
class FeedQuery:
    mode: QueryMode
    term: Optional[str] = None
    category: Optional[Category] = None
    from_time: Optional[datetime] = None
    sort_by: str = "publishedAt"
    page_size: int = 50


@dataclass
class FeedResult:
    generation: int
    query: FeedQuery
    articles: List[Article] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None
