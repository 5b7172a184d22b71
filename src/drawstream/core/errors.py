from __future__ import annotations
from typing import Optional


class DrawstreamError(Exception):
    """Base class for all drawstream failures."""


class RequestBuildError(DrawstreamError):
    """
    The generation request is incomplete (missing config, empty user input,
    unknown provider kind). Raised before any upstream call is made.
    """


class ProviderError(DrawstreamError):
    """Base class for provider-level failures."""


class ProviderClientError(ProviderError):
    """
    Non-retryable: caller/config issue (4xx invalid request, auth, unknown model,
    unsupported parameter, etc.). The fix is change input/config, not retry.
    """


class ProviderTransientError(ProviderError):
    """
    Retryable: rate limits, timeouts, network hiccups, 5xx, etc.
    Retrying with backoff is appropriate.
    """


class UpstreamHTTPError(ProviderError):
    """Non-success status from the provider before streaming started."""

    def __init__(self, provider: str, status: int, body: str = ""):
        self.provider = provider
        self.status = int(status)
        self.body = body
        super().__init__(f"{provider} API error: {self.status} {body}".rstrip())

    @property
    def transient(self) -> bool:
        return self.status == 429 or 500 <= self.status <= 599


class MidStreamFailure(ProviderError):
    """The provider connection failed after deltas were already delivered."""


class StreamDecodeError(DrawstreamError):
    """A single SSE line could not be decoded. Always recovered locally."""

    def __init__(self, line: str, reason: Optional[str] = None):
        self.line = line
        super().__init__(reason or f"Malformed stream line: {line[:80]!r}")


class GenerationError(DrawstreamError):
    """Client side: the relay reported a failure for the current request."""
