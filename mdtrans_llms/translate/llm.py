"""
LLM-based generation backends.

This module provides:
- OpenAI chat models (GPT-4o, GPT-4o mini, ...)
- DeepSeek through its OpenAI-compatible endpoint
- Anthropic Claude models

All backends stream the completion and map SDK exceptions onto the
mdtrans_llms.errors taxonomy:
    authentication / permission errors -> PermissionDenied
    unknown model                      -> NotFound
    rate limits                        -> Blocked
    anything else from the SDK         -> GenerationFailed
    missing library or API key         -> GenerationUnavailable
"""

from __future__ import annotations

import logging
import os
from abc import ABC
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from mdtrans_llms.errors import (
    Blocked,
    CancellationRequested,
    GenerationFailed,
    GenerationUnavailable,
    MdTransError,
    NotFound,
    PermissionDenied,
)
from mdtrans_llms.translate.base import CancellationToken, ChatMessage, Generator

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Configuration for LLM generators."""
    model: str = "gpt-4o"
    temperature: float = 0.2
    max_tokens: int = 8192
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 120.0
    max_retries: int = 3


def map_sdk_error(error: Exception, backend: str) -> MdTransError:
    """Translate an openai/anthropic SDK exception into our taxonomy.

    Both SDKs expose exception classes with the same names, so the mapping
    goes by class name along the MRO.
    """
    names = {cls.__name__ for cls in type(error).__mro__}
    if names & {"AuthenticationError", "PermissionDeniedError"}:
        return PermissionDenied(f"{backend}: {error}")
    if "NotFoundError" in names:
        return NotFound(f"{backend}: {error}")
    if "RateLimitError" in names:
        return Blocked(f"{backend}: {error}")
    return GenerationFailed(f"{backend} request failed: {error}")


class BaseLLMGenerator(Generator, ABC):
    """Base class for LLM-based generators.

    Provides common functionality:
    - API key resolution (argument, config, environment)
    - Lazy client creation
    - Cancellation checks while streaming
    """

    ENV_KEY = ""

    def __init__(self, config: Optional[LLMConfig] = None, api_key: Optional[str] = None):
        self.config = config or LLMConfig()
        self.api_key = api_key or self.config.api_key or (os.getenv(self.ENV_KEY) if self.ENV_KEY else None)
        self._client = None

    @property
    def model(self) -> str:
        return self.config.model

    def _require_key(self) -> str:
        if not self.api_key:
            raise GenerationUnavailable(
                f"{self.name} API key required. Set {self.ENV_KEY} environment variable "
                "or pass api_key parameter."
            )
        return self.api_key

    def _stream(self, messages: Sequence[ChatMessage]) -> Iterator[str]:
        raise NotImplementedError

    def send(
        self,
        messages: Sequence[ChatMessage],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[str]:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            for fragment in self._stream(messages):
                if cancel_token is not None and cancel_token.is_cancelled:
                    logger.info("%s: cancelled while streaming", self.name)
                    raise CancellationRequested("cancelled while streaming")
                if fragment:
                    yield fragment
        except MdTransError:
            raise
        except Exception as e:
            raise map_sdk_error(e, self.name) from e


class OpenAIGenerator(BaseLLMGenerator):
    """OpenAI chat-completions generator.

    Usage:
        generator = OpenAIGenerator(config=LLMConfig(model="gpt-4o"))
        text = generator.complete([ChatMessage.user("...")])
    """

    ENV_KEY = "OPENAI_API_KEY"
    DEFAULT_BASE_URL: Optional[str] = None

    @property
    def name(self) -> str:
        return f"openai-{self.config.model}"

    def _get_client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError as e:
                raise GenerationUnavailable(
                    "OpenAI library required. Install with: pip install openai"
                ) from e

            kwargs = {
                "api_key": self._require_key(),
                "timeout": self.config.timeout,
                "max_retries": self.config.max_retries,
            }
            base_url = self.config.base_url or self.DEFAULT_BASE_URL
            if base_url:
                kwargs["base_url"] = base_url

            self._client = OpenAI(**kwargs)

        return self._client

    def _stream(self, messages: Sequence[ChatMessage]) -> Iterator[str]:
        client = self._get_client()
        stream = client.chat.completions.create(
            model=self.config.model,
            messages=[m.to_dict() for m in messages],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            stream=True,
        )
        for chunk in stream:
            if not chunk.choices:
                continue
            yield chunk.choices[0].delta.content or ""


class DeepSeekGenerator(OpenAIGenerator):
    """DeepSeek chat API, which is OpenAI-compatible."""

    ENV_KEY = "DEEPSEEK_API_KEY"
    DEFAULT_BASE_URL = "https://api.deepseek.com/v1"

    def __init__(self, config: Optional[LLMConfig] = None, api_key: Optional[str] = None):
        super().__init__(config or LLMConfig(model="deepseek-chat"), api_key)

    @property
    def name(self) -> str:
        return f"deepseek-{self.config.model}"


class AnthropicGenerator(BaseLLMGenerator):
    """Anthropic Claude generator using the messages streaming API."""

    ENV_KEY = "ANTHROPIC_API_KEY"

    def __init__(self, config: Optional[LLMConfig] = None, api_key: Optional[str] = None):
        super().__init__(config or LLMConfig(model="claude-3-5-sonnet-20241022"), api_key)

    @property
    def name(self) -> str:
        return f"anthropic-{self.config.model}"

    def _get_client(self):
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            try:
                import anthropic
            except ImportError as e:
                raise GenerationUnavailable(
                    "Anthropic library required. Install with: pip install anthropic"
                ) from e

            self._client = anthropic.Anthropic(
                api_key=self._require_key(),
                timeout=self.config.timeout,
                max_retries=self.config.max_retries,
            )

        return self._client

    def _stream(self, messages: Sequence[ChatMessage]) -> Iterator[str]:
        client = self._get_client()
        with client.messages.stream(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            messages=[m.to_dict() for m in messages],
        ) as stream:
            for text in stream.text_stream:
                yield text
