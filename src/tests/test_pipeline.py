from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import pytest

from newsspeak.datamodels import Article, FeedQuery
from newsspeak.errors import NetworkError
from newsspeak.pipeline import (
    FeedPipeline,
    dedupe_by_url,
    is_valid_article,
    normalize,
)
from newsspeak.query import build_query
from newsspeak.sources.base import FeedSource


def make_article(url, title="Title", description="Desc", day=None, source=None):
    published = datetime(2024, 1, day, tzinfo=timezone.utc) if day else None
    return Article(
        title=title,
        url=url,
        description=description,
        published_at=published,
        source_name=source,
    )


class StaticSource(FeedSource):
    def __init__(self, articles=None, error=None):
        super().__init__({})
        self.articles = articles or []
        self.error = error
        self.calls: List[FeedQuery] = []

    def fetch(self, query):
        self.calls.append(query)
        if self.error:
            raise self.error
        return list(self.articles)


@pytest.mark.parametrize(
    "article, valid",
    [
        (make_article("u"), True),
        (make_article("u", title="[Removed]"), False),
        (make_article("u", description="[Removed]"), False),
        (make_article("[Removed]"), False),
        (make_article("u", description=None), False),
        (make_article("u", title=""), False),
        (make_article(""), False),
    ],
)
def test_is_valid_article(article, valid):
    assert is_valid_article(article) is valid


def test_dedupe_keeps_first_occurrence():
    first = make_article("dup", title="First", day=1)
    second = make_article("dup", title="Second", day=5)
    out = normalize([first, make_article("other", day=3), second])
    dups = [a for a in out if a.url == "dup"]
    assert len(dups) == 1
    assert dups[0].title == "First"


def test_dedupe_is_idempotent():
    articles = [make_article("a"), make_article("b"), make_article("a"), make_article("c")]
    once = dedupe_by_url(articles)
    assert dedupe_by_url(once) == once
    assert [a.url for a in once] == ["a", "b", "c"]


def test_normalize_sorts_newest_first_with_undated_last():
    articles = [
        make_article("old", day=1),
        make_article("undated"),
        make_article("new", day=9),
        make_article("mid", day=4),
    ]
    assert [a.url for a in normalize(articles)] == ["new", "mid", "old", "undated"]


def test_normalize_keeps_input_order_for_equal_dates():
    articles = [make_article("a", day=2), make_article("b", day=2), make_article("c", day=2)]
    assert [a.url for a in normalize(articles)] == ["a", "b", "c"]


def test_run_performs_exactly_one_fetch():
    source = StaticSource([make_article("a", day=1)])
    pipeline = FeedPipeline(source)
    result = pipeline.run(build_query(), pipeline.begin())
    assert len(source.calls) == 1
    assert result.ok
    assert [a.url for a in result.articles] == ["a"]


def test_run_converts_feed_errors_into_results():
    pipeline = FeedPipeline(StaticSource(error=NetworkError("offline")))
    result = pipeline.run(build_query(), pipeline.begin())
    assert not result.ok
    assert isinstance(result.error, NetworkError)
    assert result.articles == []


def test_older_generation_is_stale_once_a_newer_query_starts():
    pipeline = FeedPipeline(StaticSource([make_article("a", day=1)]))
    first = pipeline.begin()
    second = pipeline.begin()

    newer = pipeline.run(build_query("mars"), second)
    older = pipeline.run(build_query(), first)

    assert pipeline.is_current(newer.generation)
    assert not pipeline.is_current(older.generation)


def test_non_string_fields_from_api_count_as_missing():
    bad = Article.from_api(
        {"title": 123, "description": "Desc", "url": ["https://example.com/x"], "source": "Wire"}
    )
    assert bad.title == ""
    assert bad.url == ""
    assert bad.source_name is None
    assert not is_valid_article(bad)

    odd_source = Article.from_api(
        {"title": "T", "description": "D", "url": "https://example.com/y", "source": {"name": 7}}
    )
    assert odd_source.source_name is None
    assert normalize([bad, odd_source]) == [odd_source]
