from __future__ import annotations
import logging
from typing import Any, Callable, List, Optional

from drawstream.core.repair import post_process, try_parse_elements

logger = logging.getLogger(__name__)

Renderer = Callable[[List[Any]], None]


class DiagramCanvas:
    """
    Client-side diagram state: the editable code preview plus the element list
    last handed to the renderer.

    auto_apply=True pushes every successful intermediate parse to the renderer
    while streaming. With auto_apply=False the preview still updates but the
    renderer only sees explicit apply() calls.
    """

    def __init__(self, renderer: Optional[Renderer] = None, *, auto_apply: bool = True):
        self.renderer = renderer
        self.auto_apply = auto_apply
        self.code: str = ""
        self.elements: List[Any] = []
        self._rendered: Optional[List[Any]] = None

    def update(self, accumulated: str) -> Optional[List[Any]]:
        """Refresh the preview from the accumulated buffer; auto-apply if enabled."""
        self.code = post_process(accumulated) or ""
        if not self.auto_apply:
            return None
        return self._apply_code(self.code, quiet=True)

    def apply(self, code: Optional[str] = None) -> Optional[List[Any]]:
        """Parse the given code (or the current preview) and render it on success."""
        return self._apply_code(self.code if code is None else code, quiet=False)

    def commit(self, code: str) -> Optional[List[Any]]:
        """Final apply at the end of a stream; skips re-rendering an identical list."""
        return self._apply_code(code, quiet=False, skip_same=True)

    def set_code(self, code: str) -> None:
        """Manual edit of the preview, as from the code editor."""
        self.code = code

    def clear(self) -> None:
        self.code = ""

    def _apply_code(self, code: str, *, quiet: bool, skip_same: bool = False) -> Optional[List[Any]]:
        parsed = try_parse_elements(code)
        if parsed is None:
            if not quiet:
                logger.warning("Failed to parse generated code; keeping %d applied elements", len(self.elements))
            return None
        self.elements = parsed
        if skip_same and parsed == self._rendered:
            return parsed
        self._rendered = parsed
        if self.renderer is not None:
            self.renderer(parsed)
        return parsed
