from __future__ import annotations

import locale
import unicodedata
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .datamodels import Article, SortField, SortOrder, parse_timestamp
from .pipeline import is_valid_article, published_key


def _text_key(value: Optional[str]) -> Tuple[str, str]:
    """Collation key: base letters first, accents only break ties."""
    folded = (value or "").casefold()
    base = "".join(
        c for c in unicodedata.normalize("NFKD", folded) if not unicodedata.combining(c)
    )
    return locale.strxfrm(base), locale.strxfrm(folded)


SORT_KEYS: Dict[SortField, Callable[[Article], object]] = {
    SortField.PUBLISHED_AT: published_key,
    SortField.TITLE: lambda a: _text_key(a.title),
    SortField.SOURCE: lambda a: _text_key(a.source_name),
}


def present(
    articles: Iterable[Article],
    sort_field: Union[SortField, str] = SortField.PUBLISHED_AT,
    sort_order: Union[SortOrder, str] = SortOrder.DESC,
) -> List[Article]:
    """Order valid articles for display.

    The sort is stable in both directions, so articles with equal keys keep
    their input order.
    """
    field = SortField(sort_field)
    order = SortOrder(sort_order)
    valid = [a for a in articles if is_valid_article(a)]
    return sorted(valid, key=SORT_KEYS[field], reverse=order is SortOrder.DESC)


def filter_articles(articles: Iterable[Article], text: str) -> List[Article]:
    query = (text or "").strip().lower()
    if not query:
        return list(articles)
    return [
        a
        for a in articles
        if query in a.title.lower()
        or (a.description and query in a.description.lower())
        or (a.source_name and query in a.source_name.lower())
    ]


def format_relative_date(
    value: Union[datetime, str, None], now: Optional[datetime] = None
) -> str:
    if isinstance(value, str):
        value = parse_timestamp(value)
    if value is None:
        return "Unknown date"

    now = now or datetime.now(timezone.utc)
    diff = abs((now - value).total_seconds())
    hours = int(diff // 3600)
    days = int(diff // 86400)

    if hours < 1:
        return "Just now"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"

    label = f"{value.strftime('%b')} {value.day}"
    if value.year != now.year:
        label += f", {value.year}"
    return label
