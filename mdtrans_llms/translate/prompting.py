"""
Prompt construction and response splitting for block translation.

Every block in a request is preceded by a marker line such as
``<<BLOCK_007>>`` carrying the block index. The model is told to copy the
markers through, which lets a single completion be split back into
per-block translations. A content line that itself looks like a marker is
sent with an extra leading backslash, which is removed again on the way back.

Request layout::

    <instruction>

    ---

    <<BLOCK_000>>
    # Title
    <<BLOCK_002>>
    Hello world.
"""

from __future__ import annotations

import re
from typing import Sequence

from mdtrans_llms.errors import GenerationFailed
from mdtrans_llms.models import Block

MARKER_PATTERN = re.compile(r"^<<BLOCK_(\d+)>>[ \t]*\r?$", re.MULTILINE)

# Content lines that look like markers travel with one extra leading backslash.
ESCAPED_MARKER_PATTERN = re.compile(r"^(\\*)(<<BLOCK_\d+>>[ \t]*\r?)$", re.MULTILINE)

PAYLOAD_DELIMITER = "\n\n---\n\n"

WRAPPING_FENCE_PATTERN = re.compile(r"^```(?:markdown|md)?[ \t]*$", re.IGNORECASE)

INSTRUCTION_TEMPLATE = """You are a professional translator. Translate the following Markdown content to {target_language}.
Preserve all Markdown formatting, code blocks, links, and structure exactly as they are.
Only translate the text content, not code or URLs.
Do not add any explanations or notes - output only the translated Markdown.
The content is split into blocks. Each block starts with a marker line such as <<BLOCK_000>>.
Copy every marker line unchanged, on its own line, before the translation of its block."""


def format_marker(index: int) -> str:
    return f"<<BLOCK_{index:03d}>>"


def is_marker_line(line: str) -> bool:
    return MARKER_PATTERN.match(line) is not None


def build_instruction(target_language: str) -> str:
    return INSTRUCTION_TEMPLATE.format(target_language=target_language)


def escape_markers(content: str) -> str:
    return ESCAPED_MARKER_PATTERN.sub(r"\\\1\2", content)


def unescape_markers(content: str) -> str:
    return ESCAPED_MARKER_PATTERN.sub(
        lambda m: m.group(1)[1:] + m.group(2) if m.group(1) else m.group(0), content,
    )


def _leading_newlines(text: str) -> str:
    return text[:len(text) - len(text.lstrip("\n"))]


def _trailing_newlines(text: str) -> str:
    return text[len(text.rstrip("\n")):]


def fit_segment(segment: str, source: str) -> str:
    """Unescape a translated segment and give it the source block's edge newlines.

    The newline after a marker and the one before the next marker belong to
    the protocol, so only the newlines the source block itself starts and
    ends with are kept.
    """
    core = segment.strip("\r\n")
    return _leading_newlines(source) + unescape_markers(core) + _trailing_newlines(source)


def build_payload(blocks: Sequence[Block]) -> str:
    """Block contents, each under its marker line."""
    parts = []
    for block in blocks:
        parts.append(format_marker(block.index))
        parts.append(escape_markers(block.content))
    return "\n".join(parts)


def build_translation_prompt(blocks: Sequence[Block], target_language: str) -> str:
    """Build the user turn for one translation request."""
    return build_instruction(target_language) + PAYLOAD_DELIMITER + build_payload(blocks)


def extract_payload(prompt: str) -> str:
    """Return the marked block payload of a prompt built above."""
    _, sep, payload = prompt.partition(PAYLOAD_DELIMITER)
    return payload if sep else prompt


def unwrap_response(response: str) -> str:
    """Remove a code fence wrapped around the whole marked response."""
    lines = response.strip().split("\n")
    if (
        len(lines) >= 3
        and WRAPPING_FENCE_PATTERN.match(lines[0])
        and is_marker_line(lines[1])
        and lines[-1].strip() == "```"
    ):
        return "\n".join(lines[1:-1])
    return response


def split_response(response: str, blocks: Sequence[Block]) -> dict[int, str]:
    """Split a completion into translations keyed by block index.

    Text before the first marker is ignored, as are markers for blocks that
    were not requested. A single-block request tolerates a response without
    any marker.

    Raises:
        GenerationFailed: If markers for requested blocks are missing
    """
    text = unwrap_response(response)
    matches = list(MARKER_PATTERN.finditer(text))

    if not matches:
        if len(blocks) == 1:
            return {blocks[0].index: fit_segment(text, blocks[0].content)}
        raise GenerationFailed(
            f"response contained no block markers for {len(blocks)} blocks"
        )

    found: dict[int, str] = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        found[int(match.group(1))] = text[match.end():end]

    missing = [b.index for b in blocks if b.index not in found]
    if missing:
        shown = ", ".join(str(i) for i in missing[:5])
        raise GenerationFailed(
            f"response dropped markers for {len(missing)} block(s): {shown}"
        )
    return {b.index: fit_segment(found[b.index], b.content) for b in blocks}
