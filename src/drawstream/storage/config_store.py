from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from drawstream.core.models import ProviderConfig

logger = logging.getLogger(__name__)

CONFIG_KEY = "smart-excalidraw-config"
DEFAULT_STATE_PATH = Path.home() / ".drawstream" / "state.json"


class ConfigStore:
    """
    Persisted client state: a JSON document with the provider config under
    a single well-known key, the same shape the browser keeps in localStorage.
    """

    def __init__(self, path: Optional[Path] = None, key: str = CONFIG_KEY):
        self._path = Path(path) if path else DEFAULT_STATE_PATH
        self._key = key

    @property
    def path(self) -> Path:
        return self._path

    def _read_state(self) -> Dict[str, Any]:
        if not self._path.exists() or self._path.stat().st_size == 0:
            return {}
        try:
            state = json.loads(self._path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning("Failed to load config from %s: %s", self._path, e)
            return {}
        return state if isinstance(state, dict) else {}

    def load(self) -> Optional[ProviderConfig]:
        raw = self._read_state().get(self._key)
        if raw is None:
            return None
        if isinstance(raw, str):
            # stored the localStorage way: a JSON string under the key
            try:
                raw = json.loads(raw)
            except ValueError as e:
                logger.warning("Stored config under '%s' is not JSON: %s", self._key, e)
                return None
        if not isinstance(raw, dict):
            return None
        return ProviderConfig.from_dict(raw)

    def save(self, config: ProviderConfig) -> None:
        state = self._read_state()
        state[self._key] = config.to_dict()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(state, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")

    def clear(self) -> None:
        state = self._read_state()
        if state.pop(self._key, None) is not None:
            self._path.write_text(json.dumps(state, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
