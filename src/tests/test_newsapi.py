from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from newsspeak.errors import MalformedResponseError, NetworkError, RemoteApiError
from newsspeak.pipeline import FeedPipeline
from newsspeak.query import build_query
from newsspeak.sources.newsapi import NewsApiSource, parse_envelope, parse_feed_response


def relay_response(payload, status_code=200, http_code=200, raw_contents=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.reason = "Too Many Requests" if status_code == 429 else "OK"
    contents = raw_contents if raw_contents is not None else json.dumps(payload)
    resp.content = json.dumps(
        {"contents": contents, "status": {"http_code": http_code}}
    ).encode()
    resp.json.side_effect = ValueError("not json")
    return resp


@pytest.fixture
def source():
    return NewsApiSource({}, api_key="test-key")


def test_default_query_keeps_only_valid_article(source):
    payload = {
        "status": "ok",
        "articles": [
            {"title": "[Removed]", "description": "[Removed]", "url": "https://removed.com"},
            {
                "title": "X",
                "description": "Y",
                "url": "u1",
                "publishedAt": "2024-01-02T00:00:00Z",
                "source": {"id": None, "name": "Wire"},
            },
        ],
    }
    with patch.object(source.session, "get", return_value=relay_response(payload)):
        result = FeedPipeline(source).run(build_query(), 1)

    assert result.ok
    assert [a.url for a in result.articles] == ["u1"]
    assert result.articles[0].source_name == "Wire"
    assert result.articles[0].published_at.year == 2024


def test_request_goes_through_relay(source):
    payload = {"status": "ok", "articles": []}
    with patch.object(source.session, "get", return_value=relay_response(payload)) as mock_get:
        source.fetch(build_query(category="science"))

    args, kwargs = mock_get.call_args
    assert args[0] == "https://api.allorigins.win/get"
    target = kwargs["params"]["url"]
    assert target.startswith("https://newsapi.org/v2/top-headlines?")
    assert "category=science" in target
    assert "language=en" in target
    assert "apiKey=test-key" in target
    assert "pageSize=50" in target


def test_relay_rate_limited(source):
    with patch.object(source.session, "get", return_value=relay_response({}, status_code=429)):
        with pytest.raises(RemoteApiError) as exc_info:
            source.fetch(build_query())

    assert exc_info.value.status == 429
    assert "Too many requests" in exc_info.value.user_message


def test_pipeline_reports_rate_limit_as_result(source):
    with patch.object(source.session, "get", return_value=relay_response({}, status_code=429)):
        result = FeedPipeline(source).run(build_query(), 3)

    assert not result.ok
    assert result.generation == 3
    assert isinstance(result.error, RemoteApiError)
    assert result.error.status == 429


@pytest.mark.parametrize("exc", [requests.ConnectionError("down"), requests.Timeout("slow")])
def test_transport_failures_are_network_errors(source, exc):
    with patch.object(source.session, "get", side_effect=exc):
        with pytest.raises(NetworkError) as exc_info:
            source.fetch(build_query())
    assert "internet connection" in exc_info.value.user_message


def test_inner_error_uses_envelope_status(source):
    payload = {"status": "error", "code": "apiKeyInvalid", "message": "Your API key is invalid."}
    with patch.object(source.session, "get", return_value=relay_response(payload, http_code=401)):
        with pytest.raises(RemoteApiError) as exc_info:
            source.fetch(build_query())

    err = exc_info.value
    assert err.status == 401
    assert err.code == "apiKeyInvalid"
    assert err.message == "Your API key is invalid."
    assert err.user_message == "Invalid API key. Please check your configuration."


def test_inner_error_without_status_falls_back_to_code():
    with pytest.raises(RemoteApiError) as exc_info:
        parse_feed_response(json.dumps({"status": "error", "code": "rateLimited", "message": "x"}))
    assert exc_info.value.status == 429


def test_missing_articles_is_malformed(source):
    with patch.object(source.session, "get", return_value=relay_response({"status": "ok"})):
        with pytest.raises(MalformedResponseError) as exc_info:
            source.fetch(build_query())
    assert exc_info.value.user_message == "Invalid response format: No articles found."


def test_contents_not_json_is_malformed(source):
    resp = relay_response(None, raw_contents="<html>blocked</html>")
    with patch.object(source.session, "get", return_value=resp):
        with pytest.raises(MalformedResponseError):
            source.fetch(build_query())


def test_envelope_without_contents_is_malformed():
    with pytest.raises(MalformedResponseError):
        parse_envelope(b'{"status": {"http_code": 200}}')
    with pytest.raises(MalformedResponseError):
        parse_envelope(b"not json at all")


def test_envelope_reads_http_code():
    envelope = parse_envelope({"contents": "{}", "status": {"http_code": 426}})
    assert envelope.contents == "{}"
    assert envelope.http_code == 426


def test_remote_error_messages():
    assert "upgrade" in RemoteApiError("x", status=426).user_message
    assert RemoteApiError("boom", status=500).user_message == "API Error (500): boom"
    assert RemoteApiError(None, status=503).user_message == "API Error (503): Unknown error"


def test_description_html_is_stripped(source):
    payload = {
        "status": "ok",
        "articles": [
            {
                "title": "T",
                "description": "<p>Hello <b>world</b></p>",
                "url": "u",
                "publishedAt": "2024-01-02T00:00:00Z",
            }
        ],
    }
    with patch.object(source.session, "get", return_value=relay_response(payload)):
        articles = source.fetch(build_query())
    assert articles[0].description == "Hello world"
