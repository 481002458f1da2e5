"""
Block-level diff between two parsed documents.

Matching runs in three phases:
1. Exact: each new block is paired with an unmatched old block sharing its
   fingerprint, choosing the closest old index (lowest index on ties).
   This covers untouched and reordered content even when neighbours shift.
2. Fuzzy: each remaining new block is paired with the closest unmatched old
   block of the same kind, but only within FUZZY_MATCH_DISTANCE positions.
   Such pairs are reported as modified.
3. Whatever is still unmatched is removed (old side) or added (new side).

Cost is linear in the number of blocks, plus the length of fingerprint
collision lists and same-kind candidate lists.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from mdtrans_llms.config import FUZZY_MATCH_DISTANCE
from mdtrans_llms.models import (
    Block,
    BlockChange,
    BlockDiff,
    BlockKind,
    ChangeType,
    ParsedDocument,
    UnchangedBlock,
)

logger = logging.getLogger(__name__)


def _closest(candidates: Iterable[Block], target_index: int) -> Optional[Block]:
    best = None
    for block in candidates:
        if best is None:
            best = block
            continue
        distance = abs(block.index - target_index)
        best_distance = abs(best.index - target_index)
        if distance < best_distance or (distance == best_distance and block.index < best.index):
            best = block
    return best


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def summarize_changes(changes: list[BlockChange]) -> str:
    """Human-readable counts of added, removed and modified blocks."""
    counts = {t: 0 for t in ChangeType}
    for change in changes:
        counts[change.change_type] += 1

    parts = []
    if counts[ChangeType.ADDED]:
        parts.append(f"{_plural(counts[ChangeType.ADDED], 'block')} added")
    if counts[ChangeType.REMOVED]:
        parts.append(f"{_plural(counts[ChangeType.REMOVED], 'block')} removed")
    if counts[ChangeType.MODIFIED]:
        parts.append(f"{_plural(counts[ChangeType.MODIFIED], 'block')} modified")
    return ", ".join(parts)


def diff_documents(
    old: ParsedDocument,
    new: ParsedDocument,
    max_distance: int = FUZZY_MATCH_DISTANCE,
) -> Optional[BlockDiff]:
    """Diff two parsed documents at block level.

    Args:
        old: Previously parsed document
        new: Freshly parsed document
        max_distance: Fuzzy matching window (index distance)

    Returns:
        BlockDiff, or None when both documents hold the same blocks in the
        same order. A pure reordering yields a diff with no changes.
    """
    if old.fingerprint == new.fingerprint:
        return None

    matched_old: set[int] = set()
    matched_new: set[int] = set()
    unchanged: list[UnchangedBlock] = []
    changes: list[BlockChange] = []

    # Phase 1: exact fingerprint matches
    for new_block in new.blocks:
        candidates = (
            b for b in old.blocks_with(new_block.fingerprint)
            if b.index not in matched_old
        )
        old_block = _closest(candidates, new_block.index)
        if old_block is None:
            continue
        matched_old.add(old_block.index)
        matched_new.add(new_block.index)
        unchanged.append(UnchangedBlock(old_block.index, new_block.index, new_block))

    # Phase 2: same-kind neighbours become modifications
    remaining_old: dict[BlockKind, list[Block]] = {}
    for old_block in old.blocks:
        if old_block.index not in matched_old:
            remaining_old.setdefault(old_block.kind, []).append(old_block)

    for new_block in new.blocks:
        if new_block.index in matched_new:
            continue
        candidates = (
            b for b in remaining_old.get(new_block.kind, [])
            if b.index not in matched_old
            and abs(b.index - new_block.index) <= max_distance
        )
        old_block = _closest(candidates, new_block.index)
        if old_block is None:
            continue
        matched_old.add(old_block.index)
        matched_new.add(new_block.index)
        changes.append(BlockChange.modified(old_block, new_block))

    # Phase 3: leftovers
    for old_block in old.blocks:
        if old_block.index not in matched_old:
            changes.append(BlockChange.removed(old_block))
    for new_block in new.blocks:
        if new_block.index not in matched_new:
            changes.append(BlockChange.added(new_block))

    unchanged.sort(key=lambda u: u.new_index)
    if not changes:
        if all(u.old_index == u.new_index for u in unchanged):
            # Same blocks, different raw text (e.g. a trailing newline)
            return None
        summary = "blocks reordered"
    else:
        changes.sort(key=lambda c: (c.sort_index, c.change_type is not ChangeType.REMOVED))
        summary = summarize_changes(changes)
    logger.debug("Block diff: %s", summary)

    return BlockDiff(
        changes=changes,
        unchanged=unchanged,
        summary=summary,
        old_block_count=len(old.blocks),
        new_block_count=len(new.blocks),
    )


def count_pending_changes(diff: Optional[BlockDiff], translated_up_to: Optional[int]) -> int:
    """Count changes that fall inside the already translated range.

    Blank-line blocks never need re-translation and are not counted. Added
    blocks are located by new index; removed and modified ones by old index.
    """
    if diff is None or translated_up_to is None:
        return 0

    count = 0
    for change in diff.changes:
        if change.kind is BlockKind.BLANK_LINES:
            continue
        if change.change_type is ChangeType.ADDED:
            index = change.new_index
        else:
            index = change.old_index
        if index <= translated_up_to:
            count += 1
    return count
