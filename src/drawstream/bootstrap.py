from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from .config_loader import load_config
from .core.relay import GenerationRelay, load_prompts
from .providers.registry import ProviderRegistry
from .providers.transport import HttpSettings
from .resilience.resilient_provider import ResiliencePolicy

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    level = os.getenv("DRAWSTREAM_LOG_LEVEL", level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


def http_settings(cfg: Dict[str, Any]) -> HttpSettings:
    http = cfg["http"]
    read_timeout = http.get("read_timeout")
    return HttpSettings(
        connect_timeout=float(http["connect_timeout"]),
        read_timeout=float(read_timeout) if read_timeout is not None else None,
    )


def build_app(config_path: Path, *, http: Optional[HttpSettings] = None) -> Dict[str, Any]:
    """
    Composition root: load .env and YAML, configure logging, build the relay.
    Returns: dict with cfg, http, relay.
    """
    load_dotenv()
    cfg = load_config(config_path)
    configure_logging(cfg["logging"]["level"])

    ProviderRegistry.ensure_imports()  # make sure built-ins register

    http = http or http_settings(cfg)
    res = cfg["resilience"]
    policy = ResiliencePolicy(
        max_retries=res["max_retries"],
        base_delay=res["base_delay"],
        total_timeout=res["total_timeout"],
    )
    relay = GenerationRelay(
        http=http,
        policy=policy,
        prompts=load_prompts(),
        options={"anthropic": dict(cfg["anthropic"])},
    )
    return {"cfg": cfg, "http": http, "relay": relay}
