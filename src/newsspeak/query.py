from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

from .config import (
    DEFAULT_COUNTRY,
    DEFAULT_LANGUAGE,
    NEWS_API_BASE,
    PAGE_SIZE,
    SEARCH_LOOKBACK_HOURS,
)
from .datamodels import Category, FeedQuery, QueryMode

SEARCH_SORT = "popularity"
HEADLINES_SORT = "publishedAt"


def build_query(
    search_term: Optional[str] = None,
    category: Union[Category, str, None] = None,
    now: Optional[datetime] = None,
) -> FeedQuery:
    """Derive the feed query from navigation state.

    A non-empty search term beats a category, and a category beats the
    default headlines.
    """
    term = (search_term or "").strip()
    if term:
        now = now or datetime.now(timezone.utc)
        return FeedQuery(
            mode=QueryMode.SEARCH,
            term=term,
            from_time=now - timedelta(hours=SEARCH_LOOKBACK_HOURS),
            sort_by=SEARCH_SORT,
            page_size=PAGE_SIZE,
        )

    parsed = Category.parse(category)
    if parsed is not None:
        return FeedQuery(
            mode=QueryMode.CATEGORY,
            category=parsed,
            sort_by=HEADLINES_SORT,
            page_size=PAGE_SIZE,
        )

    return FeedQuery(mode=QueryMode.DEFAULT, sort_by=HEADLINES_SORT, page_size=PAGE_SIZE)


def build_request(
    query: FeedQuery,
    api_key: str,
    country: str = DEFAULT_COUNTRY,
    language: str = DEFAULT_LANGUAGE,
    base_url: str = NEWS_API_BASE,
) -> Tuple[str, Dict[str, Any]]:
    """Return the NewsAPI endpoint and query parameters for a feed query."""
    params: Dict[str, Any] = {"apiKey": api_key, "language": language}

    if query.mode is QueryMode.SEARCH:
        params["q"] = query.term
        if query.from_time is not None:
            params["from"] = query.from_time.astimezone(timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%S"
            )
        params["sortBy"] = query.sort_by
        params["pageSize"] = query.page_size
        return f"{base_url}/everything", params

    params["country"] = country
    if query.mode is QueryMode.CATEGORY and query.category is not None:
        params["category"] = query.category.value
    params["sortBy"] = query.sort_by
    params["pageSize"] = query.page_size
    return f"{base_url}/top-headlines", params


def describe_query(query: FeedQuery) -> str:
    if query.mode is QueryMode.SEARCH:
        return f'Search Results for "{query.term}"'
    if query.mode is QueryMode.CATEGORY and query.category is not None:
        return f"{query.category.label} News"
    return "Latest Headlines"
