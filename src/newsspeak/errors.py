from __future__ import annotations

from typing import Optional


class FeedError(Exception):
    """Base class for failures of a single feed request."""

    default_message = "Failed to load news articles."

    @property
    def user_message(self) -> str:
        return self.default_message


class NetworkError(FeedError):
    default_message = "Network error. Please check your internet connection."


class RemoteApiError(FeedError):
    """The news API (or the relay in front of it) answered with an error."""

    STATUS_MESSAGES = {
        401: "Invalid API key. Please check your configuration.",
        426: "API upgrade required. Please check your API plan.",
        429: "Too many requests. Please try again later.",
    }

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message or "API Error")
        self.message = message
        self.status = status
        self.code = code

    @property
    def user_message(self) -> str:
        if self.status in self.STATUS_MESSAGES:
            return self.STATUS_MESSAGES[self.status]
        if self.status is None:
            return f"API Error: {self.message or 'Unknown error'}"
        return f"API Error ({self.status}): {self.message or 'Unknown error'}"


class MalformedResponseError(FeedError):
    default_message = "Invalid response format: No articles found."


class UnsupportedCapability(Exception):
    """A platform capability (speech recognition, synthesis) is not available."""

    def __init__(self, capability: str):
        super().__init__(f"{capability} is not supported on this system.")
        self.capability = capability
