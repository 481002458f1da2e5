"""
Chunk planning for block-based translation.

A chunk is a run of whole blocks sent together for translation. Chunks are
sized by characters: each block costs ``len(content) + 1`` (its joining
newline). Two limits apply:

- The user-facing chunk size decides how far a single pass advances
  (``plan_chunk``).
- An internal request ceiling subdivides whatever a pass needs to send into
  several generation requests (``split_for_requests``). It changes how many
  requests are issued, never the chunk boundaries reported to callers.

Both planners always take at least one block, so an oversized block still
makes progress instead of stalling the pass.
"""

from __future__ import annotations

from typing import Optional, Sequence

from mdtrans_llms.config import REQUEST_CHAR_CEILING
from mdtrans_llms.models import Block


def plan_chunk(
    blocks: Sequence[Block],
    start_index: int,
    size_limit: Optional[int],
) -> tuple[list[Block], int]:
    """Greedily group blocks starting at ``start_index``.

    Args:
        blocks: Document blocks in order
        start_index: First block of the chunk
        size_limit: Character budget; None means no limit (all remaining)

    Returns:
        ``(chunk_blocks, last_index)`` where ``last_index`` is the inclusive
        index of the final block taken. When ``start_index`` is past the end
        the chunk is empty and ``last_index`` is ``start_index - 1``.
    """
    start_index = max(start_index, 0)
    chunk: list[Block] = []
    total = 0

    for block in blocks[start_index:]:
        if chunk and size_limit is not None and total + block.size > size_limit:
            break
        chunk.append(block)
        total += block.size

    return chunk, start_index + len(chunk) - 1


def split_for_requests(
    blocks: Sequence[Block],
    ceiling: int = REQUEST_CHAR_CEILING,
) -> list[list[Block]]:
    """Subdivide blocks into request-sized groups bounded by ``ceiling``.

    Blocks need not be contiguous; order is preserved and every block lands
    whole in exactly one group.
    """
    groups: list[list[Block]] = []
    current: list[Block] = []
    total = 0

    for block in blocks:
        if current and total + block.size > ceiling:
            groups.append(current)
            current = []
            total = 0
        current.append(block)
        total += block.size

    if current:
        groups.append(current)
    return groups


def chunk_size(blocks: Sequence[Block]) -> int:
    """Characters a group of blocks occupies, separators included."""
    return sum(b.size for b in blocks)
