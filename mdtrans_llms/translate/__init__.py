"""
Generation backends and the block prompt protocol.

This module provides:
- Generator interface with streaming output and cancellation
- Offline DummyGenerator for tests and dry runs
- OpenAI, DeepSeek and Anthropic backends
- Marker-based prompt building and response splitting
"""

from mdtrans_llms.translate.base import (
    CancellationToken,
    ChatMessage,
    DummyGenerator,
    Generator,
    create_generator,
)
from mdtrans_llms.translate.prompting import (
    build_translation_prompt,
    split_response,
)

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "DummyGenerator",
    "Generator",
    "create_generator",
    "build_translation_prompt",
    "split_response",
]
