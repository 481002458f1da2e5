"""
Markdown block parser.

Splits Markdown text into an ordered sequence of typed, fingerprinted
blocks for incremental translation. This is a pragmatic line classifier,
not a CommonMark implementation: inline markup is never parsed, nested
lists and blockquotes are accumulated flat, and HTML blocks are recognized
by a start-tag heuristic on a single line.

Per-line classification, in priority order:
1. Inside a code fence or front matter only the closing rule applies
2. A code fence opener (3+ backticks or tildes, up to 3 leading spaces)
3. Front matter: a bare ``---`` on line 0, closed by ``---`` or ``...``
4. Headings and thematic breaks (always single-line blocks)
5. Blockquote lines
6. List items and their continuations
7. Table lines (containing pipes)
8. HTML block start tags
9. Blank lines
10. Everything else is paragraph text

Parsing never fails: unterminated fences and front matter run to the end
of the document, and anything unrecognized degrades to a paragraph.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from mdtrans_llms.models import Block, BlockKind, ParsedDocument

logger = logging.getLogger(__name__)


def fingerprint(content: str) -> str:
    """SHA-256 hex digest of content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def split_lines(text: str) -> list[str]:
    """Split text into lines.

    CRLF is normalized to LF and a single trailing newline does not produce
    an extra empty line, so ``"a\\n"`` and ``"a"`` both give ``["a"]``.
    """
    if not text:
        return []
    lines = text.replace("\r\n", "\n").split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


# ============================================================================
# Line Predicates
# ============================================================================

HEADING_PATTERN = re.compile(r"^#{1,6}\s")

THEMATIC_BREAK_PATTERN = re.compile(r"^(\s{0,3})([-*_])\s*\2\s*\2(\s*\2)*\s*$")

CODE_FENCE_PATTERN = re.compile(r"^(\s{0,3})(`{3,}|~{3,})")

BULLET_ITEM_PATTERN = re.compile(r"^(\s*)[-*+]\s")

ORDERED_ITEM_PATTERN = re.compile(r"^(\s*)\d+[.)]\s")

INDENTED_PATTERN = re.compile(r"^\s{2,}")

BLOCKQUOTE_PATTERN = re.compile(r"^\s{0,3}>")

TABLE_LEADING_PIPE_PATTERN = re.compile(r"^\s*\|")

TABLE_INNER_PIPES_PATTERN = re.compile(r"\|.*\|")

TABLE_SEPARATOR_PATTERN = re.compile(r"^\s*\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)+\|?\s*$")

HTML_BLOCK_PATTERN = re.compile(
    r"^\s*<(script|pre|style|textarea|!--|!DOCTYPE|\/?(address|article|aside|base|"
    r"basefont|blockquote|body|caption|center|col|colgroup|dd|details|dialog|dir|div|"
    r"dl|dt|fieldset|figcaption|figure|footer|form|frame|frameset|h[1-6]|head|header|"
    r"hr|html|iframe|legend|li|link|main|menu|menuitem|nav|noframes|ol|optgroup|option|"
    r"p|param|section|source|summary|table|tbody|td|tfoot|th|thead|title|tr|track|ul)"
    r"[\s>\/])",
    re.IGNORECASE,
)


def is_heading(line: str) -> bool:
    return HEADING_PATTERN.match(line) is not None


def is_thematic_break(line: str) -> bool:
    """``---``, ``***`` or ``___``, optionally space separated."""
    return THEMATIC_BREAK_PATTERN.match(line) is not None


def code_fence_start(line: str) -> Optional[tuple[str, int]]:
    """Return ``(fence_char, fence_length)`` if the line opens a code fence."""
    match = CODE_FENCE_PATTERN.match(line)
    if match:
        return match.group(2)[0], len(match.group(2))
    return None


def is_code_fence_end(line: str, fence: str, min_length: int) -> bool:
    pattern = rf"^\s{{0,3}}{re.escape(fence)}{{{min_length},}}\s*$"
    return re.match(pattern, line) is not None


def is_list_item(line: str) -> bool:
    """Bullet (``-``, ``*``, ``+``) or numbered (``1.``, ``1)``) item."""
    return BULLET_ITEM_PATTERN.match(line) is not None or ORDERED_ITEM_PATTERN.match(line) is not None


def is_indented(line: str) -> bool:
    return INDENTED_PATTERN.match(line) is not None


def is_list_continuation(line: str) -> bool:
    return is_blank(line) or is_indented(line)


def is_blockquote(line: str) -> bool:
    return BLOCKQUOTE_PATTERN.match(line) is not None


def is_table_line(line: str) -> bool:
    return (
        TABLE_LEADING_PIPE_PATTERN.match(line) is not None
        or TABLE_INNER_PIPES_PATTERN.search(line) is not None
    )


def is_table_separator(line: str) -> bool:
    return TABLE_SEPARATOR_PATTERN.match(line) is not None


def is_blank(line: str) -> bool:
    return line.strip() == ""


def is_front_matter_start(line: str, line_index: int) -> bool:
    return line_index == 0 and line.strip() == "---"


def is_front_matter_end(line: str) -> bool:
    return line.strip() in ("---", "...")


def is_html_block_start(line: str) -> bool:
    return HTML_BLOCK_PATTERN.match(line) is not None


def classify_line(line: str) -> BlockKind:
    """Kind a line would start on its own, outside fences and front matter."""
    if is_heading(line):
        return BlockKind.HEADING
    if is_thematic_break(line):
        return BlockKind.THEMATIC_BREAK
    if code_fence_start(line):
        return BlockKind.CODE_BLOCK
    if is_blockquote(line):
        return BlockKind.BLOCKQUOTE
    if is_list_item(line):
        return BlockKind.LIST
    if is_table_line(line):
        return BlockKind.TABLE
    if is_html_block_start(line):
        return BlockKind.HTML_BLOCK
    if is_blank(line):
        return BlockKind.BLANK_LINES
    return BlockKind.PARAGRAPH


# ============================================================================
# Parser
# ============================================================================

class _State(Enum):
    NORMAL = auto()
    IN_CODE_BLOCK = auto()
    IN_FRONT_MATTER = auto()


@dataclass
class _ParserContext:
    """Mutable state of a single forward pass."""
    state: _State = _State.NORMAL
    fence_char: str = ""
    fence_length: int = 0
    lines: list[str] = field(default_factory=list)
    start_line: int = 0
    kind: Optional[BlockKind] = None
    blocks: list[Block] = field(default_factory=list)

    def start(self, line: str, line_index: int, kind: BlockKind) -> None:
        self.lines = [line]
        self.start_line = line_index
        self.kind = kind

    def extend(self, line: str) -> None:
        self.lines.append(line)

    def finalize(self, end_line: int) -> None:
        """Close the open block, if any, and append it."""
        if not self.lines:
            return
        content = "\n".join(self.lines)
        self.blocks.append(Block(
            index=len(self.blocks),
            kind=self.kind or BlockKind.PARAGRAPH,
            content=content,
            fingerprint=fingerprint(content),
            start_line=self.start_line,
            end_line=end_line,
        ))
        self.lines = []
        self.kind = None


def _list_continues(lines: list[str], after: int) -> bool:
    """Whether the next non-blank line after ``after`` keeps a list going."""
    for line in lines[after + 1:]:
        if not is_blank(line):
            return is_list_item(line) or is_indented(line)
    return False


def parse_markdown(text: str) -> ParsedDocument:
    """Parse Markdown text into blocks.

    Args:
        text: Raw document text

    Returns:
        ParsedDocument with dense, 0-based block indices in line order,
        a fingerprint lookup and the whole-document fingerprint
    """
    lines = split_lines(text)
    ctx = _ParserContext()

    for i, line in enumerate(lines):
        if ctx.state is _State.IN_FRONT_MATTER:
            ctx.extend(line)
            if is_front_matter_end(line):
                ctx.state = _State.NORMAL
                ctx.finalize(i)
            continue

        if ctx.state is _State.IN_CODE_BLOCK:
            ctx.extend(line)
            if is_code_fence_end(line, ctx.fence_char, ctx.fence_length):
                ctx.state = _State.NORMAL
                ctx.finalize(i)
            continue

        fence = code_fence_start(line)
        if fence:
            ctx.finalize(i - 1)
            ctx.state = _State.IN_CODE_BLOCK
            ctx.fence_char, ctx.fence_length = fence
            ctx.start(line, i, BlockKind.CODE_BLOCK)
            continue

        if is_front_matter_start(line, i):
            ctx.state = _State.IN_FRONT_MATTER
            ctx.start(line, i, BlockKind.FRONT_MATTER)
            continue

        kind = classify_line(line)

        if kind in (BlockKind.HEADING, BlockKind.THEMATIC_BREAK):
            ctx.finalize(i - 1)
            ctx.start(line, i, kind)
            ctx.finalize(i)
            continue

        if kind is BlockKind.BLANK_LINES:
            if ctx.kind is BlockKind.BLANK_LINES:
                ctx.extend(line)
            elif ctx.kind is BlockKind.LIST and _list_continues(lines, i):
                ctx.extend(line)
            else:
                ctx.finalize(i - 1)
                ctx.start(line, i, BlockKind.BLANK_LINES)
            continue

        if kind is BlockKind.BLOCKQUOTE:
            if ctx.kind is BlockKind.BLOCKQUOTE:
                ctx.extend(line)
            else:
                ctx.finalize(i - 1)
                ctx.start(line, i, BlockKind.BLOCKQUOTE)
            continue

        if kind is BlockKind.LIST or (ctx.kind is BlockKind.LIST and is_list_continuation(line)):
            if ctx.kind is BlockKind.LIST:
                ctx.extend(line)
            else:
                ctx.finalize(i - 1)
                ctx.start(line, i, BlockKind.LIST)
            continue

        if kind is BlockKind.TABLE or (ctx.kind is BlockKind.TABLE and is_table_separator(line)):
            if ctx.kind is BlockKind.TABLE:
                ctx.extend(line)
            else:
                ctx.finalize(i - 1)
                ctx.start(line, i, BlockKind.TABLE)
            continue

        if kind is BlockKind.HTML_BLOCK:
            if ctx.kind is BlockKind.HTML_BLOCK:
                ctx.extend(line)
            else:
                ctx.finalize(i - 1)
                ctx.start(line, i, BlockKind.HTML_BLOCK)
            continue

        # Paragraph text also continues an open HTML block until a blank line
        if ctx.kind in (BlockKind.PARAGRAPH, BlockKind.HTML_BLOCK):
            ctx.extend(line)
        else:
            ctx.finalize(i - 1)
            ctx.start(line, i, BlockKind.PARAGRAPH)

    ctx.finalize(len(lines) - 1)

    by_fingerprint: dict[str, list[Block]] = {}
    for block in ctx.blocks:
        by_fingerprint.setdefault(block.fingerprint, []).append(block)

    logger.debug("Parsed %d lines into %d blocks", len(lines), len(ctx.blocks))
    return ParsedDocument(
        blocks=tuple(ctx.blocks),
        blocks_by_fingerprint=by_fingerprint,
        fingerprint=fingerprint(text),
    )


def blocks_to_content(blocks) -> str:
    """Rebuild source text from blocks."""
    return "\n".join(b.content for b in blocks)
