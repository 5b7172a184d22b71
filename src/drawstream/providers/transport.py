from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from drawstream.core.errors import ProviderTransientError, UpstreamHTTPError
from drawstream.providers.sse import DeltaExtractor, DeltaStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpSettings:
    """
    Timeouts for upstream calls. read_timeout=None waits on a silent provider forever.
    `transport` lets tests swap in httpx.MockTransport.
    """
    connect_timeout: float = 10.0
    read_timeout: Optional[float] = 120.0
    transport: Optional[httpx.BaseTransport] = None

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.connect_timeout,
            pool=self.connect_timeout,
        )

    def client(self) -> httpx.Client:
        kwargs: Dict[str, Any] = {"timeout": self.timeout(), "follow_redirects": True}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.Client(**kwargs)


def open_event_stream(
    http: HttpSettings,
    *,
    provider: str,
    url: str,
    headers: Dict[str, str],
    body: Dict[str, Any],
    extract: DeltaExtractor,
    stop_on_done: bool = True,
) -> DeltaStream:
    """
    POST a streaming request and return its DeltaStream once the status is known.
    A non-success status raises UpstreamHTTPError with the response body; nothing
    has been decoded at that point.
    """
    client = http.client()
    try:
        response = client.send(client.build_request("POST", url, headers=headers, json=body), stream=True)
    except httpx.TimeoutException as e:
        client.close()
        raise ProviderTransientError(f"{provider} request timed out: {e}") from e
    except httpx.HTTPError as e:
        client.close()
        raise ProviderTransientError(f"{provider} request failed: {e}") from e

    if not response.is_success:
        try:
            response.read()
            detail = response.text
        except httpx.HTTPError as e:
            detail = f"<unreadable body: {e}>"
        finally:
            response.close()
            client.close()
        logger.error("%s rejected the request: %s", provider, response.status_code)
        raise UpstreamHTTPError(provider, response.status_code, detail)

    logger.debug("%s stream opened (%s)", provider, url)

    def _close() -> None:
        response.close()
        client.close()

    return DeltaStream(
        response.iter_bytes(),
        extract,
        provider=provider,
        stop_on_done=stop_on_done,
        on_close=_close,
    )
