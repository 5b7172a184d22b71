from __future__ import annotations
import dataclasses
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from .bootstrap import build_app
from .client.canvas import DiagramCanvas
from .client.generate import GenerationClient, load_input_file
from .client.reader import StreamReader
from .core.errors import DrawstreamError
from .core.models import PROVIDER_KINDS, ProviderConfig
from .secrets.sources import SecretsResolver, SystemKeyringSource
from .storage.config_store import ConfigStore, DEFAULT_STATE_PATH

app = typer.Typer(add_completion=False, help="Describe a diagram, get Excalidraw elements back.")
console = Console(stderr=True)

DEFAULT_CONFIG = Path("config/default.yaml")
DEFAULT_RELAY = "http://127.0.0.1:8000"


def _stored_config(state: Path) -> ProviderConfig:
    config = ConfigStore(state).load()
    if config is None:
        console.print("[red]No provider configured.[/red] Run `drawstream configure` first.")
        raise typer.Exit(1)
    if not config.api_key:
        key = SecretsResolver().api_key(config.kind)
        if key:
            config = dataclasses.replace(config, api_key=key)
    if not config.is_valid():
        console.print(f"[red]Stored provider config is incomplete:[/red] {', '.join(config.missing_fields()) or config.kind}")
        raise typer.Exit(1)
    return config


@app.command()
def serve(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config"),
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Run the relay server."""
    from .web.app import run

    run(config=config, host=host, port=port)


@app.command()
def configure(
    kind: str = typer.Option(..., "--type", help="openai or anthropic"),
    base_url: str = typer.Option(..., "--base-url"),
    model: str = typer.Option(..., "--model"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Omit to resolve from env/keyring at run time"),
    name: str = typer.Option("", "--name"),
    state: Path = typer.Option(DEFAULT_STATE_PATH, "--state"),
    use_keyring: bool = typer.Option(False, "--keyring", help="Keep --api-key in the system keyring, not the state file"),
):
    """Save the provider config used by `generate` and `models`."""
    config = ProviderConfig.from_dict(
        {"type": kind, "baseUrl": base_url, "apiKey": api_key or "", "model": model, "name": name}
    )
    if config.kind not in PROVIDER_KINDS:
        console.print(f"[red]Unsupported provider type:[/red] {config.kind}")
        raise typer.Exit(1)
    if use_keyring and config.api_key:
        SystemKeyringSource().store(config.kind, config.api_key)
        config = dataclasses.replace(config, api_key="")
    store = ConfigStore(state)
    store.save(config)
    console.print(f"Saved [bold]{config.label}[/bold] to {store.path}")


@app.command()
def models(
    relay: str = typer.Option(DEFAULT_RELAY, "--relay"),
    state: Path = typer.Option(DEFAULT_STATE_PATH, "--state"),
):
    """List the models the configured provider offers."""
    config = _stored_config(state)
    try:
        found = GenerationClient(relay).list_models(config.kind, config.base_url, config.api_key)
    except DrawstreamError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    for m in found:
        marker = "*" if m.get("id") == config.model else " "
        typer.echo(f"{marker} {m.get('id')}\t{m.get('name')}")


@app.command()
def generate(
    text: Optional[str] = typer.Argument(None, help="What to draw"),
    file: Optional[Path] = typer.Option(None, "--file", help=".md or .txt file to draw"),
    relay: str = typer.Option(DEFAULT_RELAY, "--relay"),
    local: bool = typer.Option(False, "--local", help="Run the relay in-process instead of over HTTP"),
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", help="Relay config for --local"),
    state: Path = typer.Option(DEFAULT_STATE_PATH, "--state"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the element list here"),
    live: bool = typer.Option(True, "--live/--no-live", help="Apply intermediate parses while streaming"),
):
    """Generate a diagram and print its element list as JSON."""
    try:
        user_input = load_input_file(file) if file else (text or "")
    except DrawstreamError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if not user_input.strip():
        console.print("[red]Nothing to draw:[/red] pass text or --file")
        raise typer.Exit(1)

    provider_config = _stored_config(state)
    canvas = DiagramCanvas(auto_apply=live)
    received = {"chars": 0}

    def on_delta(delta: str) -> None:
        received["chars"] += len(delta)

    try:
        with console.status(f"Generating with {provider_config.label}..."):
            if local:
                relay_obj = build_app(config)["relay"]
                session = relay_obj.start(provider_config, user_input)
                reader = StreamReader(canvas, on_delta=on_delta)
                elements = reader.read(chunk.encode("utf-8") for chunk in session.sse())
            else:
                client = GenerationClient(relay, canvas=canvas)
                elements = client.generate(provider_config, user_input, on_delta=on_delta)
    except DrawstreamError as e:
        console.print(f"[red]Generation failed:[/red] {e}")
        raise typer.Exit(1)

    if elements is None:
        console.print(f"[yellow]Received {received['chars']} chars but no valid element array.[/yellow]")
        if canvas.code:
            typer.echo(canvas.code)
        raise typer.Exit(2)

    rendered = json.dumps(elements, ensure_ascii=False, indent=2)
    if out:
        out.write_text(rendered + "\n", encoding="utf-8")
        console.print(f"Wrote {len(elements)} elements to {out}")
    else:
        typer.echo(rendered)
