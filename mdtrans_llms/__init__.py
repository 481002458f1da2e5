"""
MdTrans-LLMs: Incremental Markdown Translation with LLMs

Translates Markdown documents block by block and keeps the translation
in sync as the source is edited, re-translating only what changed.

Core Components:
1. Block parser with content fingerprints
2. Block-level diff between document revisions
3. Chunked, resumable translation passes with a two-level cache
"""

__version__ = "0.1.0"

from mdtrans_llms.models import Block, BlockDiff, BlockKind, ParsedDocument
from mdtrans_llms.parser import parse_markdown
from mdtrans_llms.diff import diff_documents
from mdtrans_llms.pipeline import IncrementalTranslator, PassResult

__all__ = [
    "Block",
    "BlockDiff",
    "BlockKind",
    "ParsedDocument",
    "parse_markdown",
    "diff_documents",
    "IncrementalTranslator",
    "PassResult",
]
