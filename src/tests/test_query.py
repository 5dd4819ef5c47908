from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from newsspeak.datamodels import Category, QueryMode
from newsspeak.query import build_query, build_request, describe_query

NOW = datetime(2024, 1, 2, 12, 0, 0, tzinfo=timezone.utc)


def test_search_term_wins_over_category():
    query = build_query("  election  ", "sports", now=NOW)
    assert query.mode is QueryMode.SEARCH
    assert query.term == "election"
    assert query.category is None
    assert query.from_time == NOW - timedelta(hours=24)
    assert query.sort_by == "popularity"
    assert query.page_size == 50


def test_blank_search_falls_back_to_category():
    query = build_query("   ", "Technology", now=NOW)
    assert query.mode is QueryMode.CATEGORY
    assert query.category is Category.TECHNOLOGY
    assert query.sort_by == "publishedAt"
    assert query.page_size == 50


def test_default_query():
    query = build_query(None, None)
    assert query.mode is QueryMode.DEFAULT
    assert query.sort_by == "publishedAt"
    assert query.page_size == 50


def test_unknown_category_is_rejected():
    with pytest.raises(ValueError):
        build_query(None, "weather")


def test_search_request_parameters():
    url, params = build_request(build_query("mars", now=NOW), "key")
    assert url == "https://newsapi.org/v2/everything"
    assert params == {
        "apiKey": "key",
        "language": "en",
        "q": "mars",
        "from": "2024-01-01T12:00:00",
        "sortBy": "popularity",
        "pageSize": 50,
    }


def test_category_request_parameters():
    url, params = build_request(build_query(category=Category.HEALTH), "key")
    assert url == "https://newsapi.org/v2/top-headlines"
    assert params["category"] == "health"
    assert params["country"] == "us"
    assert params["language"] == "en"
    assert params["sortBy"] == "publishedAt"
    assert "q" not in params


def test_default_request_has_no_category():
    url, params = build_request(build_query(), "key", country="gb")
    assert url.endswith("/top-headlines")
    assert "category" not in params
    assert params["country"] == "gb"


def test_describe_query():
    assert describe_query(build_query("mars")) == 'Search Results for "mars"'
    assert describe_query(build_query(category="science")) == "Science News"
    assert describe_query(build_query()) == "Latest Headlines"
