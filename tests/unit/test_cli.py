# tests/unit/test_cli.py

from __future__ import annotations
import json
import sys
from pathlib import Path
from typer.testing import CliRunner

# Ensure "src" is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import drawstream.cli as cli  # type: ignore
from drawstream.cli import app  # Typer app
from drawstream.core.relay import GenerationRelay, Prompts  # type: ignore
from drawstream.providers.sse import DeltaStream  # type: ignore
from drawstream.storage.config_store import ConfigStore  # type: ignore


class _FakeProvider:
    model = "fake"

    def __init__(self, text: str):
        self.text = text

    def open_stream(self, _messages):
        # two chunks, split mid-record
        raw = "".join(f"data: {json.dumps({'t': p})}\n" for p in (self.text[:5], self.text[5:])).encode()
        return DeltaStream([raw[:7], raw[7:]], lambda rec: rec.get("t"))

    def list_models(self):
        return []


def _configure(runner: CliRunner, state: Path) -> None:
    result = runner.invoke(app, [
        "configure", "--type", "openai", "--base-url", "https://llm.test/v1",
        "--model", "gpt-test", "--api-key", "sk-test", "--state", str(state),
    ])
    assert result.exit_code == 0, result.output


def test_configure_writes_state(tmp_path: Path):
    state = tmp_path / "state.json"
    _configure(CliRunner(), state)
    stored = ConfigStore(state).load()
    assert stored.model == "gpt-test"
    assert stored.api_key == "sk-test"


def test_configure_rejects_unknown_type(tmp_path: Path):
    result = CliRunner().invoke(app, [
        "configure", "--type", "gemini", "--base-url", "u", "--model", "m", "--state", str(tmp_path / "s.json"),
    ])
    assert result.exit_code == 1


def test_generate_local_roundtrip(tmp_path: Path, monkeypatch):
    state = tmp_path / "state.json"
    runner = CliRunner()
    _configure(runner, state)

    elements = [{"type": "rectangle", "x": 0, "y": 0, "label": {"text": 'say "hi"'}}]
    # unescaped inner quotes exercise the repair path end to end
    text = json.dumps(elements).replace('\\"', '"')
    relay = GenerationRelay(prompts=Prompts("SYS", "{user_input}"), provider_factory=lambda cfg: _FakeProvider(text))
    monkeypatch.setattr(cli, "build_app", lambda _config: {"relay": relay})

    out = tmp_path / "diagram.json"
    result = runner.invoke(app, ["generate", "a box", "--local", "--state", str(state), "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert json.loads(out.read_text(encoding="utf-8")) == elements


def test_generate_without_config(tmp_path: Path):
    result = CliRunner().invoke(app, ["generate", "x", "--state", str(tmp_path / "none.json")])
    assert result.exit_code == 1


def test_generate_unparseable_output(tmp_path: Path, monkeypatch):
    state = tmp_path / "state.json"
    runner = CliRunner()
    _configure(runner, state)
    relay = GenerationRelay(prompts=Prompts("SYS", "{user_input}"), provider_factory=lambda cfg: _FakeProvider("I cannot draw that."))
    monkeypatch.setattr(cli, "build_app", lambda _config: {"relay": relay})

    result = runner.invoke(app, ["generate", "x", "--local", "--state", str(state)])
    assert result.exit_code == 2
    assert "I cannot draw that." in result.stdout


def test_generate_rejects_bad_file(tmp_path: Path):
    bad = tmp_path / "notes.pdf"
    bad.write_text("x", encoding="utf-8")
    result = CliRunner().invoke(app, ["generate", "--file", str(bad), "--state", str(tmp_path / "s.json")])
    assert result.exit_code == 1


def test_configure_keyring_keeps_key_out_of_state(tmp_path: Path, monkeypatch):
    stored = {}

    class FakeKeyringSource:
        def store(self, kind, api_key):
            stored[kind] = api_key

    monkeypatch.setattr(cli, "SystemKeyringSource", FakeKeyringSource)
    state = tmp_path / "state.json"
    result = CliRunner().invoke(app, [
        "configure", "--type", "Anthropic", "--base-url", "https://api.anthropic.test/v1",
        "--model", "claude", "--api-key", "ak-secret", "--keyring", "--state", str(state),
    ])
    assert result.exit_code == 0, result.output
    assert stored == {"anthropic": "ak-secret"}
    assert ConfigStore(state).load().api_key == ""
    assert "ak-secret" not in state.read_text()
