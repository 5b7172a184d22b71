# tests/unit/test_reader.py

from __future__ import annotations
import json
import sys
from pathlib import Path
import pytest

# Make "src" importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from drawstream.client.canvas import DiagramCanvas  # type: ignore
from drawstream.client.reader import GenerationTracker, StreamReader  # type: ignore
from drawstream.core.errors import GenerationError  # type: ignore
from drawstream.core.models import StreamEvent  # type: ignore

ELEMENTS = [{"type": "rectangle", "x": 0, "y": 0, "label": {"text": 'the "core"'}}]


def relay_bytes(*deltas: str, done: bool = True) -> bytes:
    out = "".join(StreamEvent.content(d).to_sse() for d in deltas)
    if done:
        out += StreamEvent.done().to_sse()
    return out.encode("utf-8")


def test_accumulates_and_applies_final():
    rendered = []
    canvas = DiagramCanvas(rendered.append)
    text = json.dumps(ELEMENTS)
    reader = StreamReader(canvas)
    result = reader.read([relay_bytes(text[:10], text[10:25], text[25:])])
    assert reader.text == text
    assert result == ELEMENTS
    assert canvas.elements == ELEMENTS
    assert rendered[-1] == ELEMENTS


def test_split_event_boundaries():
    data = relay_bytes("[1,", " 2]")
    canvas = DiagramCanvas()
    reader = StreamReader(canvas)
    result = reader.read(data[i:i + 3] for i in range(0, len(data), 3))
    assert reader.text == "[1, 2]"
    assert result == [1, 2]


def test_live_preview_and_auto_apply_during_stream():
    rendered = []
    canvas = DiagramCanvas(rendered.append)
    reader = StreamReader(canvas)
    reader.feed(relay_bytes("```json\n[1, ", done=False))
    assert canvas.code == "[1,"
    assert rendered == []
    reader.feed(relay_bytes("2]", done=False))
    assert canvas.code == "[1, 2]"
    assert rendered == [[1, 2]]
    reader.feed(relay_bytes("\n```"))
    assert reader.finished
    assert reader.finish() == [1, 2]
    # final apply of an identical list does not re-render
    assert rendered == [[1, 2]]


def test_preview_mode_applies_only_at_the_end():
    rendered = []
    canvas = DiagramCanvas(rendered.append, auto_apply=False)
    reader = StreamReader(canvas)
    reader.feed(relay_bytes("[1]", done=False))
    assert canvas.code == "[1]"
    assert rendered == []
    reader.read([relay_bytes()])
    assert rendered == [[1]]


def test_quote_repair_applies():
    canvas = DiagramCanvas()
    result = StreamReader(canvas).read([relay_bytes('[{"text": "He said "hi" today"}]')])
    assert result == [{"text": 'He said "hi" today'}]


def test_error_event_raises_and_stops():
    canvas = DiagramCanvas()
    reader = StreamReader(canvas)
    data = StreamEvent.content("[1").to_sse() + StreamEvent.error("OpenAI API error: 500").to_sse()
    with pytest.raises(GenerationError, match="500"):
        reader.feed(data.encode())
    assert reader.finished
    assert reader.feed(relay_bytes("]")) is False
    assert reader.text == "[1"


def test_malformed_event_skipped():
    canvas = DiagramCanvas()
    reader = StreamReader(canvas)
    data = b"data: {broken\n\n" + relay_bytes("[]")
    assert reader.read([data]) == []
    assert reader.skipped == 1


def test_transport_closure_without_done_still_finishes():
    result = StreamReader(DiagramCanvas()).read([relay_bytes("[true]", done=False)])
    assert result == [True]


def test_unparseable_final_keeps_previous_elements():
    canvas = DiagramCanvas()
    canvas.elements = ["old"]
    assert StreamReader(canvas).read([relay_bytes("no diagram here")]) is None
    assert canvas.elements == ["old"]
    assert canvas.code == "no diagram here"


def test_superseded_reader_stops_and_never_applies():
    rendered = []
    canvas = DiagramCanvas(rendered.append)
    tracker = GenerationTracker()
    old = StreamReader(canvas, tracker=tracker, request_id=tracker.begin())
    old.feed(relay_bytes("[1", done=False))

    new = StreamReader(canvas, tracker=tracker, request_id=tracker.begin())
    assert old.superseded and not new.superseded

    assert old.feed(relay_bytes("]")) is False
    assert old.finish() is None
    assert rendered == []

    assert new.read([relay_bytes("[2]")]) == [2]
    assert rendered == [[2]]


def test_tracker_ids_increase():
    tracker = GenerationTracker()
    ids = [tracker.begin() for _ in range(3)]
    assert ids == [1, 2, 3]
    assert tracker.is_current(3) and not tracker.is_current(2)


def test_manual_apply_from_edited_code():
    rendered = []
    canvas = DiagramCanvas(rendered.append)
    canvas.set_code('[{"type": "ellipse"}]')
    assert canvas.apply() == [{"type": "ellipse"}]
    assert canvas.apply("garbage") is None
    assert canvas.elements == [{"type": "ellipse"}]
    canvas.clear()
    assert canvas.code == ""


def test_deeply_nested_partial_does_not_break_reading():
    canvas = DiagramCanvas()
    reader = StreamReader(canvas)
    assert reader.feed(StreamEvent.content("[" * 100_000).to_sse().encode()) is True
    assert canvas.elements == []


def test_commit_renders_changed_list_again():
    rendered = []
    canvas = DiagramCanvas(rendered.append)
    canvas.commit("[1]")
    canvas.commit("[1]")
    canvas.commit("[1, 2]")
    assert rendered == [[1], [1, 2]]
