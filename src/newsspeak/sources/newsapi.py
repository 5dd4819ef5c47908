from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    DEFAULT_COUNTRY,
    DEFAULT_LANGUAGE,
    HTTP_TIMEOUT,
    RELAY_URL,
    REQUEST_HEADERS,
)
from ..datamodels import Article, FeedQuery
from ..errors import MalformedResponseError, NetworkError, RemoteApiError
from ..query import build_request
from .base import FeedSource

logger = logging.getLogger("newsspeak")

# NewsAPI error codes mapped to the HTTP status the API documents for them.
ERROR_CODE_STATUS = {
    "apiKeyDisabled": 401,
    "apiKeyExhausted": 429,
    "apiKeyInvalid": 401,
    "apiKeyMissing": 401,
    "rateLimited": 429,
}


@dataclass
class RelayEnvelope:
    contents: str
    http_code: Optional[int] = None


def parse_envelope(body: Any) -> RelayEnvelope:
    """First parse stage: the relay wraps the real response as a JSON string."""
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"Relay response is not JSON: {e}") from e
    if not isinstance(body, dict):
        raise MalformedResponseError("Relay response is not an object")
    contents = body.get("contents")
    if not isinstance(contents, str):
        raise MalformedResponseError("Relay response has no contents")

    http_code = None
    status = body.get("status")
    if isinstance(status, dict) and isinstance(status.get("http_code"), int):
        http_code = status["http_code"]
    return RelayEnvelope(contents=contents, http_code=http_code)


def parse_feed_response(contents: str, http_code: Optional[int] = None) -> List[Dict[str, Any]]:
    """Second parse stage: decode the NewsAPI payload and return its article records."""
    try:
        data = json.loads(contents)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Feed payload is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError("Feed payload is not an object")

    if data.get("status") == "error":
        code = data.get("code")
        status = http_code if http_code and http_code >= 400 else ERROR_CODE_STATUS.get(code)
        raise RemoteApiError(data.get("message") or "API Error", status=status, code=code)

    articles = data.get("articles")
    if not isinstance(articles, list):
        raise MalformedResponseError("Invalid response format: No articles found.")
    return [a for a in articles if isinstance(a, dict)]


class NewsApiSource(FeedSource):
    def __init__(self, config: Dict[str, Any], api_key: str = ""):
        super().__init__(config)
        self.api_key = api_key
        self.relay_url = config.get("relay_url") or RELAY_URL
        self.country = config.get("country") or DEFAULT_COUNTRY
        self.language = config.get("language") or DEFAULT_LANGUAGE
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(REQUEST_HEADERS)
        # One request per query: failures go straight back to the user.
        adapter = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        return s

    def _relay_get(self, target_url: str) -> requests.Response:
        try:
            resp = self.session.get(
                self.relay_url, params={"url": target_url}, timeout=HTTP_TIMEOUT
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("Network failure fetching via relay: %s", e)
            raise NetworkError(str(e)) from e
        except requests.RequestException as e:
            logger.warning("Request failed via relay: %s", e)
            raise NetworkError(str(e)) from e

        if resp.status_code >= 400:
            message = resp.reason
            try:
                payload = resp.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = payload["message"]
            except ValueError:
                pass
            logger.warning("Relay answered HTTP %d: %s", resp.status_code, message)
            raise RemoteApiError(message, status=resp.status_code)
        return resp

    def fetch(self, query: FeedQuery) -> List[Article]:
        url, params = build_request(
            query, self.api_key, country=self.country, language=self.language
        )
        logger.debug(
            "Fetching %s (%s)",
            url,
            ", ".join(f"{k}={v}" for k, v in params.items() if k != "apiKey"),
        )
        resp = self._relay_get(f"{url}?{urlencode(params)}")

        envelope = parse_envelope(resp.content)
        records = parse_feed_response(envelope.contents, envelope.http_code)
        logger.debug("Fetched %d raw articles for %s", len(records), query.mode.value)
        return [Article.from_api(r) for r in records]
