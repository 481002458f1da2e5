"""
Core data models for MdTrans-LLMs.

These models describe a Markdown document as an ordered sequence of typed,
content-hashed blocks, and the block-level changes between two versions of
the same document.

Design Philosophy:
- Immutable: blocks and parsed documents are frozen; a new parse produces
  an entirely new set rather than mutating the previous one
- Closed vocabulary: block kinds and change types are enums, not strings
- Serializable: every model has to_dict() for debugging and CLI output
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional


class BlockKind(Enum):
    """Structural kinds of Markdown blocks.

    Only block-level structure is recognized; inline markup (emphasis,
    links, inline code) stays inside the block content untouched.
    """
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    CODE_BLOCK = "code_block"
    BLOCKQUOTE = "blockquote"
    LIST = "list"
    TABLE = "table"
    THEMATIC_BREAK = "thematic_break"
    BLANK_LINES = "blank_lines"
    HTML_BLOCK = "html_block"
    FRONT_MATTER = "front_matter"


# Kinds whose content is copied through verbatim instead of being translated
PASSTHROUGH_KINDS = frozenset({BlockKind.BLANK_LINES, BlockKind.THEMATIC_BREAK})


@dataclass(frozen=True)
class Block:
    """A contiguous, typed span of document text.

    This is the smallest unit of re-translation. Each block has:
    - index: 0-based position in its document
    - kind: structural kind (heading, paragraph, list, ...)
    - content: raw text including its own formatting, lines joined by "\\n"
    - fingerprint: SHA-256 hex digest of content
    - start_line / end_line: 0-based, inclusive line span
    """
    index: int
    kind: BlockKind
    content: str
    fingerprint: str
    start_line: int
    end_line: int

    @property
    def is_translatable(self) -> bool:
        """Whether this block is sent to the generation backend."""
        return self.kind not in PASSTHROUGH_KINDS

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    @property
    def size(self) -> int:
        """Characters this block occupies in a request, separator included."""
        return len(self.content) + 1

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "kind": self.kind.value,
            "content": self.content,
            "fingerprint": self.fingerprint,
            "start_line": self.start_line,
            "end_line": self.end_line,
        }


@dataclass(frozen=True)
class ParsedDocument:
    """A parsed Markdown document.

    Attributes:
        blocks: All blocks in document order (indices are dense from 0)
        blocks_by_fingerprint: Lookup from fingerprint to every block sharing
            it; repeated content (e.g. blank lines) produces collisions
        fingerprint: Hash of the whole source text for quick equality checks
    """
    blocks: tuple[Block, ...]
    blocks_by_fingerprint: dict[str, list[Block]]
    fingerprint: str

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self):
        return iter(self.blocks)

    @property
    def content(self) -> str:
        """Source text rebuilt from the blocks."""
        return "\n".join(b.content for b in self.blocks)

    def blocks_with(self, fingerprint: str) -> list[Block]:
        return self.blocks_by_fingerprint.get(fingerprint, [])

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint,
            "blocks": [b.to_dict() for b in self.blocks],
        }


class ChangeType(Enum):
    """Types of block-level changes."""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class BlockChange:
    """Describes a change to a single block.

    Added changes carry only the new side, removed changes only the old
    side, and modified changes both.
    """
    change_type: ChangeType
    old_index: Optional[int] = None
    new_index: Optional[int] = None
    old_block: Optional[Block] = None
    new_block: Optional[Block] = None

    @classmethod
    def added(cls, new_block: Block) -> BlockChange:
        return cls(ChangeType.ADDED, new_index=new_block.index, new_block=new_block)

    @classmethod
    def removed(cls, old_block: Block) -> BlockChange:
        return cls(ChangeType.REMOVED, old_index=old_block.index, old_block=old_block)

    @classmethod
    def modified(cls, old_block: Block, new_block: Block) -> BlockChange:
        return cls(
            ChangeType.MODIFIED,
            old_index=old_block.index,
            new_index=new_block.index,
            old_block=old_block,
            new_block=new_block,
        )

    @property
    def kind(self) -> BlockKind:
        """Kind of the block involved (new side preferred)."""
        block = self.new_block or self.old_block
        return block.kind

    @property
    def sort_index(self) -> int:
        """New index, falling back to old index for pure removals."""
        return self.new_index if self.new_index is not None else self.old_index

    def to_dict(self) -> dict:
        return {
            "type": self.change_type.value,
            "old_index": self.old_index,
            "new_index": self.new_index,
            "kind": self.kind.value,
        }


class UnchangedBlock(NamedTuple):
    """Index mapping for a block present, byte for byte, in both versions."""
    old_index: int
    new_index: int
    block: Block


@dataclass
class BlockDiff:
    """Result of diffing two parsed documents.

    Every old index appears exactly once across unchanged, removed and
    modified; every new index exactly once across unchanged, added and
    modified.
    """
    changes: list[BlockChange]
    unchanged: list[UnchangedBlock]
    summary: str
    old_block_count: int = 0
    new_block_count: int = 0
    metadata: dict = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return len(self.changes) > 0

    @property
    def added(self) -> list[BlockChange]:
        return [c for c in self.changes if c.change_type is ChangeType.ADDED]

    @property
    def removed(self) -> list[BlockChange]:
        return [c for c in self.changes if c.change_type is ChangeType.REMOVED]

    @property
    def modified(self) -> list[BlockChange]:
        return [c for c in self.changes if c.change_type is ChangeType.MODIFIED]

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "changes": [c.to_dict() for c in self.changes],
            "unchanged": [(u.old_index, u.new_index) for u in self.unchanged],
            "old_block_count": self.old_block_count,
            "new_block_count": self.new_block_count,
        }
