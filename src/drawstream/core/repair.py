"""
Best-effort cleanup of model output into parseable JSON.

Runs on every accumulated buffer while a response streams in, so every
function here must accept incomplete text and never raise on it.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json|javascript|js)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")

# A quote followed by one of these (after whitespace) closes the string.
_STRUCTURAL = frozenset(":,}]")


class ScanState(enum.Enum):
    OUTSIDE = "outside-string"
    INSIDE = "inside-string"
    ESCAPE = "escape-pending"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def parse_json(text: str) -> Any:
    """json.loads without the NaN/Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


def is_valid_json(text: str) -> bool:
    try:
        parse_json(text)
    except (ValueError, RecursionError):
        return False
    return True


def strip_fences(code: str) -> str:
    """Trim, then drop one leading ```json/```javascript/```js/``` opener and one trailing ``` closer.

    Only one pair is removed per call, so doubly fenced text keeps its inner
    fences; extract_array still finds the array inside them.
    """
    processed = code.strip()
    processed = _FENCE_OPEN.sub("", processed, count=1)
    processed = _FENCE_CLOSE.sub("", processed, count=1)
    return processed.strip()


def _next_significant(text: str, start: int) -> str:
    i = start
    n = len(text)
    while i < n and text[i].isspace():
        i += 1
    return text[i] if i < n else ""


def fix_unescaped_quotes(text: str) -> str:
    """
    Escape literal double quotes inside JSON string values.

    A quote met inside a string closes it only when the next non-whitespace
    character is one of `: , } ]` or the end of input; any other quote there is
    content and is rewritten as `\\"`. Backslash sequences pass through untouched.
    """
    out: List[str] = []
    state = ScanState.OUTSIDE
    resume = ScanState.OUTSIDE

    for i, ch in enumerate(text):
        if state is ScanState.ESCAPE:
            out.append(ch)
            state = resume
            continue

        if ch == "\\":
            out.append(ch)
            resume = state
            state = ScanState.ESCAPE
            continue

        if ch != '"':
            out.append(ch)
            continue

        if state is ScanState.OUTSIDE:
            state = ScanState.INSIDE
            out.append(ch)
            continue

        nxt = _next_significant(text, i + 1)
        if nxt == "" or nxt in _STRUCTURAL:
            state = ScanState.OUTSIDE
            out.append(ch)
        else:
            out.append('\\"')

    return "".join(out)


def post_process(code: Any) -> Any:
    """
    Strip fences and, only if the result is not already valid JSON, repair
    unescaped quotes. Non-string or empty input is returned unchanged.
    """
    if not code or not isinstance(code, str):
        return code
    processed = strip_fences(code)
    if is_valid_json(processed):
        return processed
    return fix_unescaped_quotes(processed)


def extract_array(code: str) -> Optional[str]:
    """Greedy span from the first `[` to the last `]`, or None."""
    start = code.find("[")
    end = code.rfind("]")
    if start == -1 or end < start:
        return None
    return code[start:end + 1]


def try_parse_elements(code: Any) -> Optional[List[Any]]:
    """
    Parse already post-processed code into an element list.
    Returns None while the text is not (yet) a complete JSON array.
    """
    if not code or not isinstance(code, str):
        return None
    candidate = extract_array(code.strip())
    if candidate is None:
        logger.debug("No array found in generated code")
        return None
    try:
        parsed = parse_json(candidate)
    except (ValueError, RecursionError) as e:
        logger.debug("Generated code not parseable yet: %s", e)
        return None
    if not isinstance(parsed, list):
        return None
    return parsed
