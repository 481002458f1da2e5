"""
Generation backend interface and simple implementations.

This module defines:
- ChatMessage: one conversation turn exchanged with a backend
- CancellationToken: cooperative cancellation shared by a pass and its caller
- Generator: abstract streaming backend (prompt + history in, text fragments out)
- DummyGenerator: offline backend for tests and dry runs
- create_generator: factory resolving backend names and aliases

Design Philosophy:
- Generators are stateless: the caller owns the conversation history and
  passes it in with every request
- Output is a lazy iterator of fragments, so callers can stream text and
  stop early
- Backends raise the errors in mdtrans_llms.errors, never vendor exceptions
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from mdtrans_llms.errors import CancellationRequested


@dataclass(frozen=True)
class ChatMessage:
    """A single conversation turn."""
    role: str  # 'user' or 'assistant'
    content: str

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls("assistant", content)

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


class CancellationToken:
    """Thread-safe cancellation flag checked between and during requests."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationRequested("cancellation requested")


class Generator(ABC):
    """Abstract base class for text-generation backends.

    All generators implement send(), which streams the completion for the
    given conversation. Implementations must stop yielding and raise
    CancellationRequested once the token is cancelled.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the backend name (e.g., 'openai-gpt-4o', 'dummy-prefix')."""
        pass

    @property
    def model(self) -> str:
        return ""

    @abstractmethod
    def send(
        self,
        messages: Sequence[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[str]:
        """Stream a completion for the conversation.

        Args:
            messages: Conversation turns, the last one being the new request
            cancel_token: Optional token observed between fragments

        Yields:
            Text fragments in order
        """
        pass

    def complete(
        self,
        messages: Sequence[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Collect the whole completion."""
        return "".join(self.send(messages, cancel_token))


class DummyGenerator(Generator):
    """A dummy generator for testing.

    It answers a translation request by transforming the request payload
    line by line, leaving block markers intact.

    Modes:
    - 'echo': Return the payload unchanged
    - 'upper': Return uppercase payload
    - 'prefix': Prefix every non-empty line with [TRANSLATED]
    """

    MODES = ("echo", "upper", "prefix")

    def __init__(self, mode: str = "prefix"):
        if mode not in self.MODES:
            raise ValueError(f"Unknown dummy mode: {mode}")
        self.mode = mode

    @property
    def name(self) -> str:
        return f"dummy-{self.mode}"

    def _transform(self, line: str) -> str:
        from mdtrans_llms.translate.prompting import is_marker_line

        if not line or is_marker_line(line):
            return line
        if self.mode == "upper":
            return line.upper()
        if self.mode == "prefix":
            return f"[TRANSLATED] {line}"
        return line

    def send(
        self,
        messages: Sequence[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[str]:
        from mdtrans_llms.translate.prompting import extract_payload

        payload = extract_payload(messages[-1].content) if messages else ""
        lines = payload.split("\n")
        for i, line in enumerate(lines):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            yield self._transform(line) + ("\n" if i < len(lines) - 1 else "")


def create_generator(backend: str, **kwargs) -> Generator:
    """Factory function to create a generator by name.

    Args:
        backend: Backend name ('dummy', 'openai', 'deepseek', 'anthropic', ...)
        **kwargs: Backend-specific arguments (model, api_key, config, mode)

    Returns:
        Configured Generator instance

    Supported backends and aliases:
        - dummy, echo, test: Offline test generator
        - openai, gpt: OpenAI chat models (default gpt-4o)
        - deepseek, ds: DeepSeek via its OpenAI-compatible API
        - anthropic, claude: Anthropic Claude models
    """
    backend_lower = backend.lower().replace("_", "-")

    if backend_lower in ("dummy", "test"):
        return DummyGenerator(mode=kwargs.get("mode", "prefix"))

    elif backend_lower == "echo":
        return DummyGenerator(mode="echo")

    elif backend_lower in ("openai", "gpt", "gpt4", "gpt-4"):
        from mdtrans_llms.translate.llm import OpenAIGenerator, LLMConfig
        config = kwargs.get("config") or LLMConfig(model=kwargs.get("model") or "gpt-4o")
        return OpenAIGenerator(config=config, api_key=kwargs.get("api_key"))

    elif backend_lower in ("deepseek", "ds"):
        from mdtrans_llms.translate.llm import DeepSeekGenerator, LLMConfig
        config = kwargs.get("config") or LLMConfig(model=kwargs.get("model") or "deepseek-chat")
        return DeepSeekGenerator(config=config, api_key=kwargs.get("api_key"))

    elif backend_lower in ("anthropic", "claude"):
        from mdtrans_llms.translate.llm import AnthropicGenerator, LLMConfig
        config = kwargs.get("config") or LLMConfig(
            model=kwargs.get("model") or "claude-3-5-sonnet-20241022"
        )
        return AnthropicGenerator(config=config, api_key=kwargs.get("api_key"))

    else:
        available = ["dummy", "echo", "openai", "deepseek", "anthropic"]
        raise ValueError(
            f"Unknown generation backend: {backend}. "
            f"Available backends: {', '.join(available)}"
        )
