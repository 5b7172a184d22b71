from __future__ import annotations
import logging
import time, random
from typing import List

from drawstream.core.errors import ProviderClientError, ProviderTransientError, UpstreamHTTPError
from drawstream.core.models import ChatMessage
from drawstream.core.ports import Provider
from drawstream.providers.sse import DeltaStream

logger = logging.getLogger(__name__)


class ResiliencePolicy:
    def __init__(self, max_retries=2, base_delay=0.5, max_delay=8.0, total_timeout=30.0,
                 retry_exceptions=(TimeoutError,)):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.total_timeout = total_timeout
        self.retry_exceptions = tuple(retry_exceptions)

    def compute_backoff(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)) + random.random() * 0.1)


class ResilientProvider:
    """
    Retries opening the upstream stream. Once a DeltaStream is handed out nothing
    is retried: deltas may already be on their way to the browser.
    """

    def __init__(self, inner: Provider, policy: ResiliencePolicy):
        self.inner = inner
        self.policy = policy
        self.model = getattr(inner, "model", "unknown")

    def _should_retry(self, exc: Exception) -> bool:
        if isinstance(exc, UpstreamHTTPError):
            return exc.transient
        if isinstance(exc, ProviderClientError):
            return False
        if isinstance(exc, ProviderTransientError):
            return True
        # Fallback on configured transient types (e.g., TimeoutError)
        return isinstance(exc, self.policy.retry_exceptions)

    def open_stream(self, messages: List[ChatMessage]) -> DeltaStream:
        start = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.inner.open_stream(messages)
            except KeyboardInterrupt:
                raise
            except Exception as e:
                if not self._should_retry(e) or attempt > self.policy.max_retries or (time.monotonic() - start) > self.policy.total_timeout:
                    raise
                delay = self.policy.compute_backoff(attempt)
                logger.warning("Opening stream failed (attempt %d): %s; retrying in %.2fs", attempt, e, delay)
                time.sleep(delay)

    def list_models(self):
        return self.inner.list_models()
