# src/drawstream/secrets/sources.py

from __future__ import annotations
from typing import Iterable, List, Optional, Protocol, Union
import logging
import os

import keyring

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "drawstream"


class SecretSource(Protocol):
    def get(self, kind: str) -> Optional[str]: ...


class EnvSource:
    """OPENAI_API_KEY / ANTHROPIC_API_KEY style variables."""

    def get(self, kind: str) -> Optional[str]:
        val = os.getenv(f"{kind.upper()}_API_KEY")
        return val.strip() if val and val.strip() else None


class SystemKeyringSource:
    """
    Looks under the `drawstream` service with the provider kind as account,
    then under a service named after the kind itself.
    """

    def __init__(self, service: str = KEYRING_SERVICE):
        self.service = service

    def _lookup(self, service: str, account: str) -> Optional[str]:
        try:
            val = keyring.get_password(service, account)
        except Exception as e:
            logger.debug("keyring lookup failed for %s/%s: %s", service, account, e)
            return None
        return val.strip() if val and val.strip() else None

    def get(self, kind: str) -> Optional[str]:
        return self._lookup(self.service, kind) or self._lookup(kind, "api_key")

    def store(self, kind: str, api_key: str) -> None:
        keyring.set_password(self.service, kind, api_key)


_SOURCES = {"env": EnvSource, "keyring": SystemKeyringSource}


def build_secret_sources(method: Union[str, Iterable[str]]) -> List[SecretSource]:
    names = [method] if isinstance(method, str) else list(method)
    sources: List[SecretSource] = []
    seen = set()
    for name in names:
        key = str(name).strip().lower()
        if key not in _SOURCES:
            raise ValueError(f"Unknown secrets method '{name}'. Allowed: {sorted(_SOURCES)}")
        if key not in seen:
            seen.add(key)
            sources.append(_SOURCES[key]())
    return sources


class SecretsResolver:
    """Finds an API key for a provider kind when the stored config has none."""

    def __init__(self, method: Union[str, Iterable[str]] = ("env", "keyring")):
        self._sources = build_secret_sources(method)

    def api_key(self, kind: str) -> Optional[str]:
        for src in self._sources:
            val = src.get(kind)
            if val:
                return val
        return None
