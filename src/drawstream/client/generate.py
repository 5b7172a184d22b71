from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from drawstream.client.canvas import DiagramCanvas
from drawstream.client.reader import GenerationTracker, StreamReader
from drawstream.core.errors import GenerationError, RequestBuildError
from drawstream.core.models import ProviderConfig
from drawstream.providers.transport import HttpSettings

logger = logging.getLogger(__name__)

INPUT_SUFFIXES = (".md", ".txt")
MAX_INPUT_BYTES = 1024 * 1024


def load_input_file(path: Path) -> str:
    """Read an uploaded description: .md or .txt, at most 1 MB, not empty."""
    path = Path(path)
    if path.suffix.lower() not in INPUT_SUFFIXES:
        raise RequestBuildError("Please choose a .md or .txt file")
    if not path.is_file():
        raise RequestBuildError(f"File not found: {path}")
    if path.stat().st_size > MAX_INPUT_BYTES:
        raise RequestBuildError("File must not exceed 1MB")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raise RequestBuildError("File is not valid UTF-8 text") from None
    if not text.strip():
        raise RequestBuildError("File is empty")
    return text


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or fallback
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return fallback


class GenerationClient:
    """
    Talks to the relay the way the browser page does: one POST per request,
    then reads the event stream into a shared canvas.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        *,
        http: Optional[HttpSettings] = None,
        canvas: Optional[DiagramCanvas] = None,
        tracker: Optional[GenerationTracker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http or HttpSettings()
        self.canvas = canvas or DiagramCanvas()
        self.tracker = tracker or GenerationTracker()
        self._lock = threading.Lock()
        self._active: Optional[httpx.Response] = None

    def _supersede(self) -> int:
        """Start a new request id and close the response of the one it replaces."""
        with self._lock:
            request_id = self.tracker.begin()
            previous, self._active = self._active, None
        if previous is not None:
            logger.info("Closing superseded relay response before request %d", request_id)
            previous.close()
        return request_id

    def _register(self, request_id: int, response: httpx.Response) -> bool:
        with self._lock:
            if not self.tracker.is_current(request_id):
                return False
            self._active = response
            return True

    def _release(self, response: httpx.Response) -> None:
        with self._lock:
            if self._active is response:
                self._active = None

    def generate(
        self,
        config: ProviderConfig,
        user_input: str,
        *,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> Optional[List[Any]]:
        """
        Stream one generation. Returns the applied element list, or None when the
        final text never parsed or a newer request took over. Starting a request
        closes the transport of any request still in flight on this client.
        """
        if not config.is_valid():
            raise RequestBuildError("Configure your LLM provider first")
        request_id = self._supersede()
        reader = StreamReader(self.canvas, tracker=self.tracker, request_id=request_id, on_delta=on_delta)
        payload: Dict[str, Any] = {"config": config.to_dict(), "userInput": user_input}
        try:
            with self.http.client() as client:
                with client.stream("POST", f"{self.base_url}/api/generate", json=payload) as response:
                    if not self._register(request_id, response):
                        return None
                    try:
                        if not response.is_success:
                            response.read()
                            raise GenerationError(_error_message(response, "Failed to generate code"))
                        result = reader.read(response.iter_bytes())
                    finally:
                        self._release(response)
        except (httpx.HTTPError, httpx.StreamError) as e:
            if reader.superseded:
                logger.info("Request %d transport closed after being superseded", request_id)
                return None
            raise GenerationError(f"Relay request failed: {e}") from e
        logger.info("Request %d finished: %d chars, %s", request_id, len(reader.text),
                    "applied" if result is not None else "not applied")
        return result

    def list_models(self, kind: str, base_url: str, api_key: str) -> List[Dict[str, str]]:
        params = {"type": kind, "baseUrl": base_url, "apiKey": api_key}
        try:
            with self.http.client() as client:
                response = client.get(f"{self.base_url}/api/models", params=params)
        except httpx.HTTPError as e:
            raise GenerationError(f"Relay request failed: {e}") from e
        if not response.is_success:
            raise GenerationError(_error_message(response, "Failed to load models"))
        return list(response.json().get("models") or [])
