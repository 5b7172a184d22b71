# src/drawstream/config_loader.py

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict
import yaml


class ConfigError(ValueError):
    pass


def _require(d: Dict[str, Any], dotted: str, typ: type, *, nullable: bool = False) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigError(f"Missing config key: {dotted}")
        cur = cur[k]
    if cur is None and nullable:
        return cur
    if typ is bool and not isinstance(cur, bool):
        raise ConfigError(f"'{dotted}' must be a boolean")
    if typ is str and not isinstance(cur, str):
        raise ConfigError(f"'{dotted}' must be a string")
    if typ is int and (isinstance(cur, bool) or not isinstance(cur, int)):
        raise ConfigError(f"'{dotted}' must be an integer")
    if typ is float and (isinstance(cur, bool) or not isinstance(cur, (int, float))):
        raise ConfigError(f"'{dotted}' must be a number")
    return cur


def _optional(d: Dict[str, Any], dotted: str, typ: type, default: Any) -> Any:
    cur: Any = d
    for k in dotted.split("."):
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return _require(d, dotted, typ, nullable=default is None)


def load_config(path: Path) -> Dict[str, Any]:
    if not path or not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"Config is empty or invalid YAML: {path}")

    _require(raw, "server.host", str)
    _require(raw, "server.port", int)
    _require(raw, "http.connect_timeout", float)
    _require(raw, "http.read_timeout", float, nullable=True)  # null = wait forever
    _require(raw, "logging.level", str)

    # optional blocks
    raw["anthropic"] = {"max_tokens": _optional(raw, "anthropic.max_tokens", int, 4096)}
    raw["resilience"] = {
        "max_retries": _optional(raw, "resilience.max_retries", int, 2),
        "base_delay": float(_optional(raw, "resilience.base_delay", float, 0.5)),
        "total_timeout": float(_optional(raw, "resilience.total_timeout", float, 30.0)),
    }
    if raw["anthropic"]["max_tokens"] <= 0:
        raise ConfigError("'anthropic.max_tokens' must be positive")

    raw["logging"]["level"] = str(raw["logging"]["level"]).upper()
    return raw
