from __future__ import annotations
from importlib import import_module
from typing import Any, Callable, Dict, List, Optional, Type

from drawstream.core.models import ProviderConfig

BUILTIN_ADAPTERS = (
    "drawstream.providers.openai_adapter",
    "drawstream.providers.anthropic_adapter",
)


class ProviderRegistry:
    """Adapter classes keyed by provider kind (case-insensitive)."""

    _adapters: Dict[str, Type] = {}

    @classmethod
    def register(cls, kind: str) -> Callable[[Type], Type]:
        def deco(adapter: Type) -> Type:
            cls._adapters[kind.lower()] = adapter
            return adapter
        return deco

    @classmethod
    def get(cls, kind: str) -> Type:
        try:
            return cls._adapters[kind.lower()]
        except KeyError:
            raise KeyError(f"Unsupported provider type: {kind}") from None

    @classmethod
    def kinds(cls) -> List[str]:
        return sorted(cls._adapters)

    @classmethod
    def ensure_imports(cls) -> None:
        # importing runs the @register decorators
        for module in BUILTIN_ADAPTERS:
            import_module(module)

    @classmethod
    def create(cls, config: ProviderConfig, *, options: Optional[Dict[str, Any]] = None, **kwargs: Any):
        """Build a fresh adapter for one request; `options` is keyed by kind."""
        cls.ensure_imports()
        adapter = cls.get(config.kind)
        return adapter.create(config, options=(options or {}).get(config.kind) or {}, **kwargs)
