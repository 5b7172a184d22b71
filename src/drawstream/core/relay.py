"""Bridges one browser request to one provider stream, re-emitted as relay events."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from drawstream.core.errors import ProviderError, RequestBuildError
from drawstream.core.models import ChatMessage, ProviderConfig, StreamEvent
from drawstream.core.ports import Provider
from drawstream.providers.registry import ProviderRegistry
from drawstream.providers.sse import DeltaStream
from drawstream.providers.transport import HttpSettings
from drawstream.resilience.resilient_provider import ResiliencePolicy, ResilientProvider

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"


@dataclass(frozen=True)
class Prompts:
    system: str
    user_template: str

    def user(self, user_input: str) -> str:
        return self.user_template.replace("{user_input}", user_input)


def load_prompts(prompts_dir: Optional[Path] = None) -> Prompts:
    prompts_dir = Path(prompts_dir) if prompts_dir else PROMPTS_DIR
    sys_path = prompts_dir / "system.txt"
    user_path = prompts_dir / "user.txt"
    system = sys_path.read_text(encoding="utf-8") if sys_path.exists() else "You draw Excalidraw diagrams as JSON."
    template = (
        user_path.read_text(encoding="utf-8").rstrip("\n")
        if user_path.exists()
        else "Create an Excalidraw diagram for the following content:\n\n{user_input}"
    )
    return Prompts(system=system, user_template=template)


def build_messages(user_input: str, prompts: Optional[Prompts] = None) -> List[ChatMessage]:
    prompts = prompts or load_prompts()
    return [
        ChatMessage(role="system", content=prompts.system),
        ChatMessage(role="user", content=prompts.user(user_input)),
    ]


class RelaySession:
    """
    One in-flight generation. `events()` yields a content event per delta, at
    most one error event, then exactly one terminal event.
    """

    def __init__(self, stream: DeltaStream, label: str = ""):
        self.stream = stream
        self.label = label

    @property
    def text(self) -> str:
        return self.stream.text

    def events(self) -> Iterator[StreamEvent]:
        t0 = time.perf_counter()
        count = 0
        try:
            for delta in self.stream:
                count += 1
                yield StreamEvent.content(delta)
        except ProviderError as e:
            logger.error("Stream failed after %d deltas (%s): %s", count, self.label, e)
            yield StreamEvent.error(str(e))
        except Exception as e:
            logger.exception("Unexpected stream failure after %d deltas (%s)", count, self.label)
            yield StreamEvent.error(str(e) or e.__class__.__name__)
        finally:
            self.stream.close()
        logger.info(
            "Stream complete (%s): %d deltas, %d chars, %.2fs",
            self.label, count, len(self.stream.text), time.perf_counter() - t0,
        )
        yield StreamEvent.done()

    def sse(self) -> Iterator[str]:
        for event in self.events():
            yield event.to_sse()

    def close(self) -> None:
        self.stream.close()


class GenerationRelay:
    """
    Stateless across requests: every start() builds its own adapter and stream.
    """

    def __init__(
        self,
        *,
        http: Optional[HttpSettings] = None,
        policy: Optional[ResiliencePolicy] = None,
        prompts: Optional[Prompts] = None,
        options: Optional[Dict[str, Any]] = None,
        provider_factory: Optional[Callable[[ProviderConfig], Provider]] = None,
    ):
        self.http = http or HttpSettings()
        self.policy = policy or ResiliencePolicy()
        self.prompts = prompts or load_prompts()
        self.options = options or {}
        self._provider_factory = provider_factory

    def build_provider(self, config: ProviderConfig) -> Provider:
        if self._provider_factory is not None:
            inner = self._provider_factory(config)
        else:
            inner = ProviderRegistry.create(config, options=self.options, http=self.http)
        return ResilientProvider(inner, policy=self.policy)

    def list_models(self, config: ProviderConfig) -> List[Dict[str, str]]:
        return self.build_provider(config).list_models()

    def start(self, config: Optional[ProviderConfig], user_input: Optional[str]) -> RelaySession:
        """
        Validate, then open the upstream stream. Anything raised here happens
        before a single byte reaches the browser.
        """
        if config is None or not user_input or not user_input.strip():
            raise RequestBuildError("Missing required parameters: config, userInput")
        config.validate()
        provider = self.build_provider(config)
        messages = build_messages(user_input, self.prompts)
        logger.info("Generation request: %s (%d char input)", config.label, len(user_input))
        stream = provider.open_stream(messages)
        return RelaySession(stream, label=config.label)
