from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from drawstream.bootstrap import build_app
from drawstream.core.errors import ProviderError, RequestBuildError
from drawstream.core.models import ProviderConfig
from drawstream.core.relay import GenerationRelay

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class GenerateRequest(BaseModel):
    # camelCase to match what the page sends
    config: Optional[Dict[str, Any]] = None
    userInput: Optional[str] = None


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def create_app(
    config_path: Optional[Path] = None,
    *,
    relay: Optional[GenerationRelay] = None,
) -> FastAPI:
    cfg: Dict[str, Any] = {}
    if relay is None:
        ctx = build_app(Path(config_path or "config/default.yaml"))
        cfg = ctx["cfg"]
        relay = ctx["relay"]

    app = FastAPI(title="drawstream", description="Natural language to Excalidraw diagrams")
    app.state.cfg = cfg
    app.state.relay = relay

    @app.exception_handler(RequestValidationError)
    async def _bad_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, f"Invalid request body: {exc.errors()}")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/generate")
    def api_generate(req: GenerateRequest):
        if not req.config or not req.userInput:
            return _error(400, "Missing required parameters: config, userInput")
        try:
            config = ProviderConfig.from_dict(req.config)
            session = app.state.relay.start(config, req.userInput)
        except RequestBuildError as e:
            return _error(400, str(e))
        except ProviderError as e:
            logger.error("Generation failed to start: %s", e)
            return _error(502, str(e))
        except Exception as e:
            logger.exception("Error generating code")
            return _error(500, str(e) or "Failed to generate code")

        return StreamingResponse(session.sse(), media_type="text/event-stream", headers=SSE_HEADERS)

    @app.get("/api/models")
    def api_models(type: Optional[str] = None, baseUrl: Optional[str] = None, apiKey: Optional[str] = None):
        if not type or not baseUrl or not apiKey:
            return _error(400, "Missing required parameters: type, baseUrl, apiKey")
        config = ProviderConfig.from_dict({"type": type, "baseUrl": baseUrl, "apiKey": apiKey})
        try:
            models = app.state.relay.list_models(config)
        except KeyError:
            return _error(400, f"Unsupported provider type: {config.kind}")
        except Exception as e:
            logger.error("Failed to fetch models for %s: %s", config.kind, e)
            return _error(500, str(e) or "Failed to fetch models")
        return {"models": models}

    return app


def run(
    *,
    config: Path,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:
    import uvicorn

    app = create_app(config)
    server = app.state.cfg["server"]
    uvicorn.run(app, host=host or server["host"], port=port or server["port"])
