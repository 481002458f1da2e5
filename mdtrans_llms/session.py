"""
Translation session state and deterministic merge.

A session holds everything needed to continue or incrementally update the
translation of one document:
- the last parsed source document
- block fingerprint -> translation mapping
- the inclusive block index translated so far
- the conversation history exchanged with the generation backend

The session is an explicit object owned by the caller; there is no module
level singleton. Exactly one session is live per document, and a pass
mutating it is expected to be the only one in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from mdtrans_llms.diff import diff_documents
from mdtrans_llms.errors import NoActiveSessionError
from mdtrans_llms.models import BlockDiff, ChangeType, ParsedDocument
from mdtrans_llms.parser import parse_markdown
from mdtrans_llms.translate.base import ChatMessage

logger = logging.getLogger(__name__)


def merge_translations(
    parsed: ParsedDocument,
    block_translations: Mapping[str, str],
    up_to_index: Optional[int] = None,
) -> str:
    """Reassemble output from per-block translations.

    Walks blocks ``0..up_to_index`` (all blocks when None) and joins their
    translations with single newlines. A block without a translation falls
    back to its source content; that only happens after an upstream bug,
    so it is logged.
    """
    end = len(parsed.blocks) if up_to_index is None else min(up_to_index + 1, len(parsed.blocks))
    parts = []
    for block in parsed.blocks[:max(end, 0)]:
        translation = block_translations.get(block.fingerprint)
        if translation is None:
            logger.warning(
                "No translation for block %d (%s); using source text",
                block.index, block.kind.value,
            )
            translation = block.content
        parts.append(translation)
    return "\n".join(parts)


def remap_boundary(previous_index: Optional[int], diff: Optional[BlockDiff]) -> Optional[int]:
    """Move a translated-up-to index from the old document to the new one.

    The new boundary is the highest new index of an unchanged block that sat
    within the old boundary, extended over blocks modified from within the
    old boundary, so editing the last translated block does not shrink the
    translated region.

    Without any unchanged block inside the old boundary, the highest new
    index of a block modified from within is used; failing that the old
    boundary is clamped to the new document size.
    """
    if previous_index is None:
        return None
    if diff is None:
        return previous_index
    if diff.new_block_count == 0:
        return None

    last_new = diff.new_block_count - 1
    modified_within = [
        c.new_index for c in diff.changes
        if c.change_type is ChangeType.MODIFIED and c.old_index <= previous_index
    ]
    unchanged_within = [u.new_index for u in diff.unchanged if u.old_index <= previous_index]

    if unchanged_within:
        boundary = max(unchanged_within + modified_within)
    elif modified_within:
        boundary = max(modified_within)
    else:
        boundary = min(previous_index, last_new)

    return boundary


@dataclass
class SessionState:
    """Per-document translation state."""
    original_content: str
    translated_content: str
    parsed_document: Optional[ParsedDocument] = None
    block_translations: dict[str, str] = field(default_factory=dict)
    translated_up_to_index: Optional[int] = None
    messages: list[ChatMessage] = field(default_factory=list)
    target_language: str = ""
    model: str = ""

    @property
    def total_blocks(self) -> int:
        return len(self.parsed_document.blocks) if self.parsed_document else 0

    @property
    def blocks_translated(self) -> int:
        if self.translated_up_to_index is None:
            return 0
        return min(self.translated_up_to_index + 1, self.total_blocks)

    @property
    def is_complete(self) -> bool:
        return self.total_blocks > 0 and self.blocks_translated >= self.total_blocks


class TranslationSession:
    """Manages the translation session of the active document.

    Usage:
        session = TranslationSession()
        session.start(text, translation, parsed, block_translations, 12)
        diff = session.reconcile(edited_text)
        boundary = session.remap_progress_boundary(diff)
    """

    def __init__(self):
        self._state: Optional[SessionState] = None

    def has_session(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    def require_state(self) -> SessionState:
        if self._state is None:
            raise NoActiveSessionError("no active translation session")
        return self._state

    def start(
        self,
        original_text: str,
        first_chunk_translation: str,
        parsed_document: Optional[ParsedDocument],
        block_translations: Mapping[str, str],
        translated_up_to_index: Optional[int],
        messages: Optional[list[ChatMessage]] = None,
        target_language: str = "",
        model: str = "",
    ) -> SessionState:
        """Establish a fresh session, replacing any prior one."""
        self._state = SessionState(
            original_content=original_text,
            translated_content=first_chunk_translation,
            parsed_document=parsed_document,
            block_translations=dict(block_translations),
            translated_up_to_index=translated_up_to_index,
            messages=list(messages or []),
            target_language=target_language,
            model=model,
        )
        logger.debug(
            "Session started: %d block translations, up to index %s",
            len(self._state.block_translations), translated_up_to_index,
        )
        return self._state

    def advance(
        self,
        new_original_text: str,
        new_translated_text: str,
        new_parsed_document: Optional[ParsedDocument] = None,
        new_block_translations: Optional[Mapping[str, str]] = None,
        new_translated_up_to_index: Optional[int] = None,
        new_messages: Optional[list[ChatMessage]] = None,
    ) -> SessionState:
        """Update the session after a pass.

        Block translations are merged into the existing map rather than
        replacing it; entries for blocks that no longer exist are kept and
        simply never referenced again.
        """
        state = self.require_state()
        state.original_content = new_original_text
        state.translated_content = new_translated_text
        if new_parsed_document is not None:
            state.parsed_document = new_parsed_document
        if new_block_translations:
            state.block_translations.update(new_block_translations)
        if new_translated_up_to_index is not None:
            state.translated_up_to_index = new_translated_up_to_index
        if new_messages:
            state.messages.extend(new_messages)
        return state

    def reconcile(self, new_text: str) -> Optional[BlockDiff]:
        """Diff ``new_text`` against the session's document without mutating it."""
        state = self.require_state()
        old = state.parsed_document
        if old is None:
            old = parse_markdown(state.original_content)
        return diff_documents(old, parse_markdown(new_text))

    def remap_progress_boundary(self, diff: Optional[BlockDiff]) -> Optional[int]:
        """Where the translated-up-to index falls in the document ``diff`` leads to."""
        state = self.require_state()
        return remap_boundary(state.translated_up_to_index, diff)

    def merge(self, parsed: Optional[ParsedDocument] = None, up_to_index: Optional[int] = None) -> str:
        """Merge the session's block translations over ``parsed`` (default: its own document)."""
        state = self.require_state()
        document = parsed if parsed is not None else state.parsed_document
        if document is None:
            return state.translated_content
        index = up_to_index if up_to_index is not None else state.translated_up_to_index
        if index is None:
            return ""
        return merge_translations(document, state.block_translations, index)

    def history(self, max_turns: Optional[int] = None) -> list[ChatMessage]:
        """Most recent conversation, at most ``max_turns`` user/assistant pairs."""
        state = self.require_state()
        if max_turns is None:
            return list(state.messages)
        if max_turns <= 0:
            return []
        return state.messages[-2 * max_turns:]

    def clear(self) -> None:
        if self._state is not None:
            logger.debug("Session cleared")
        self._state = None
