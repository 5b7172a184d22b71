# tests/unit/test_sse_decoder.py

from __future__ import annotations
import json
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from drawstream.core.errors import MidStreamFailure  # type: ignore
from drawstream.providers.anthropic_adapter import extract_anthropic_delta  # type: ignore
from drawstream.providers.openai_adapter import extract_openai_delta  # type: ignore
from drawstream.providers.sse import DeltaStream, LineBuffer  # type: ignore


def openai_frame(text: str) -> str:
    return f"data: {json.dumps({'choices': [{'delta': {'content': text}}]}, ensure_ascii=False)}\n"


OPENAI_BYTES = (
    'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n'
    + openai_frame("[{\"type\": ")
    + "\n"
    + openai_frame("\"text\", \"text\": \"héllo ✓\"}]")
    + "\n"
    + "data: not json\n\n"
    + 'data: {"choices":[]}\n\n'
    + "data: [DONE]\n\n"
).encode("utf-8")


def deltas_for(chunks, extract=extract_openai_delta, **kw):
    stream = DeltaStream(chunks, extract, **kw)
    return list(stream), stream.text


def test_line_buffer_holds_partial_line():
    buf = LineBuffer()
    assert buf.feed(b"data: a\ndata: b") == ["data: a"]
    assert buf.pending == "data: b"
    assert buf.feed(b"\r\n") == ["data: b"]
    assert buf.pending == ""


def test_line_buffer_split_multibyte_character():
    data = "data: ✓\n".encode("utf-8")
    buf = LineBuffer()
    lines = []
    for i in range(len(data)):
        lines += buf.feed(data[i:i + 1])
    assert lines == ["data: ✓"]


def test_two_frame_stream_hello_world():
    raw = (
        b'data: {"choices":[{"delta":{"content":"Hello"}}]}\n'
        b'data: {"choices":[{"delta":{"content":" world"}}]}\n'
        b"data: [DONE]\n"
    )
    deltas, text = deltas_for([raw])
    assert deltas == ["Hello", " world"]
    assert text == "Hello world"


def test_concatenation_equals_terminal_text():
    deltas, text = deltas_for([OPENAI_BYTES])
    assert "".join(deltas) == text == '[{"type": "text", "text": "héllo ✓"}]'


def test_split_at_every_byte_boundary_is_identical():
    expected, _ = deltas_for([OPENAI_BYTES])
    for cut in range(1, len(OPENAI_BYTES)):
        got, _ = deltas_for([OPENAI_BYTES[:cut], OPENAI_BYTES[cut:]])
        assert got == expected, f"split at byte {cut}"


def test_single_byte_chunks():
    expected, _ = deltas_for([OPENAI_BYTES])
    got, _ = deltas_for([OPENAI_BYTES[i:i + 1] for i in range(len(OPENAI_BYTES))])
    assert got == expected


def test_done_stops_reading_further_chunks():
    consumed = []

    def chunks():
        for c in (openai_frame("a").encode(), b"data: [DONE]\n", openai_frame("late").encode()):
            consumed.append(c)
            yield c

    deltas, _ = deltas_for(chunks())
    assert deltas == ["a"]
    assert len(consumed) == 2


def test_incomplete_trailing_line_is_dropped():
    raw = openai_frame("kept").encode() + b'data: {"choices":[{"delta":{"content":"lost"}}]}'
    deltas, text = deltas_for([raw])
    assert deltas == ["kept"]
    assert text == "kept"


def test_anthropic_only_content_block_delta_counts():
    raw = (
        b'event: message_start\ndata: {"type":"message_start","message":{}}\n\n'
        b'event: content_block_start\ndata: {"type":"content_block_start","index":0}\n\n'
        b'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"type":"text_delta","text":"[1,"}}\n\n'
        b'event: ping\ndata: {"type":"ping"}\n\n'
        b'event: content_block_delta\ndata: {"type":"content_block_delta","delta":{"type":"text_delta","text":"2]"}}\n\n'
        b'event: message_stop\ndata: {"type":"message_stop"}\n\n'
    )
    deltas, text = deltas_for([raw], extract_anthropic_delta, stop_on_done=False)
    assert deltas == ["[1,", "2]"]
    assert text == "[1,2]"


def test_anthropic_error_event_fails_stream():
    raw = (
        b'data: {"type":"content_block_delta","delta":{"text":"par"}}\n'
        b'data: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}\n'
    )
    stream = DeltaStream([raw], extract_anthropic_delta, stop_on_done=False)
    it = iter(stream)
    assert next(it) == "par"
    with pytest.raises(MidStreamFailure):
        next(it)
    assert stream.closed


def test_stream_is_single_use_and_closes():
    closed = []
    stream = DeltaStream([openai_frame("x").encode()], extract_openai_delta, on_close=lambda: closed.append(1))
    assert stream.collect() == "x"
    assert closed == [1]
    with pytest.raises(RuntimeError):
        list(stream)


def test_collect_invokes_callback_per_delta():
    seen = []
    stream = DeltaStream([OPENAI_BYTES], extract_openai_delta)
    full = stream.collect(seen.append)
    assert "".join(seen) == full
    assert len(seen) == 2


def test_non_string_delta_values_are_skipped():
    raw = (
        b'data: {"choices":[{"delta":{"content":123}}]}\n'
        b'data: {"choices":[{"delta":{"content":["x"]}}]}\n'
        + openai_frame("ok").encode()
    )
    assert deltas_for([raw]) == (["ok"], "ok")

    anthropic = (
        b'data: {"type":"content_block_delta","delta":{"text":{"nested":1}}}\n'
        b'data: {"type":"content_block_delta","delta":{"text":"fine"}}\n'
    )
    assert deltas_for([anthropic], extract_anthropic_delta, stop_on_done=False) == (["fine"], "fine")
