"""
In-process translation cache with time-based expiry.

Two independent tables:
- documents: whole-document fingerprint -> translation
- blocks: block fingerprint -> target language -> translation

Entries older than the TTL are evicted lazily when they are read. Nothing is
persisted: fingerprints are derived from content, so a fresh process simply
rebuilds the cache as it translates. The cache only saves requests; results
never depend on it.

Each table has its own lock so concurrent readers and writers see whole
entries. Re-setting a key just refreshes its timestamp.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from mdtrans_llms.config import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    """A cached translation and the time it was stored."""
    translation: str
    created_at: float


class TranslationCache:
    """Two-level translation cache.

    Usage:
        cache = TranslationCache()
        cache.set(doc.fingerprint, translated_text)
        cache.set_many({block.fingerprint: text}, "Japanese")
        hits = cache.get_many([b.fingerprint for b in blocks], "Japanese")
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Clock = time.time):
        self.ttl = ttl
        self._clock = clock
        self._documents: dict[str, CacheEntry] = {}
        self._blocks: dict[str, dict[str, CacheEntry]] = {}
        self._documents_lock = threading.RLock()
        self._blocks_lock = threading.RLock()

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at > self.ttl

    # =====================================================
    # Whole-document cache
    # =====================================================

    def get(self, document_fingerprint: str) -> Optional[str]:
        """Cached translation of a whole document, if present and fresh."""
        with self._documents_lock:
            entry = self._documents.get(document_fingerprint)
            if entry is None:
                return None
            if self._expired(entry):
                del self._documents[document_fingerprint]
                logger.debug("Evicted expired document entry %s", document_fingerprint[:12])
                return None
            return entry.translation

    def set(self, document_fingerprint: str, translation: str) -> None:
        with self._documents_lock:
            self._documents[document_fingerprint] = CacheEntry(translation, self._clock())

    def has(self, document_fingerprint: str) -> bool:
        return self.get(document_fingerprint) is not None

    # =====================================================
    # Block cache
    # =====================================================

    def get_block(self, block_fingerprint: str, target_language: str) -> Optional[str]:
        with self._blocks_lock:
            by_language = self._blocks.get(block_fingerprint)
            if not by_language:
                return None
            entry = by_language.get(target_language)
            if entry is None:
                return None
            if self._expired(entry):
                del by_language[target_language]
                if not by_language:
                    del self._blocks[block_fingerprint]
                return None
            return entry.translation

    def set_block(self, block_fingerprint: str, target_language: str, translation: str) -> None:
        with self._blocks_lock:
            by_language = self._blocks.setdefault(block_fingerprint, {})
            by_language[target_language] = CacheEntry(translation, self._clock())

    def get_many(self, block_fingerprints: Iterable[str], target_language: str) -> dict[str, str]:
        """Look up several blocks at once; misses are simply absent."""
        result: dict[str, str] = {}
        with self._blocks_lock:
            for fp in block_fingerprints:
                translation = self.get_block(fp, target_language)
                if translation is not None:
                    result[fp] = translation
        return result

    def set_many(self, translations: Mapping[str, str], target_language: str) -> None:
        with self._blocks_lock:
            for fp, translation in translations.items():
                self.set_block(fp, target_language, translation)

    def has_block(self, block_fingerprint: str, target_language: str) -> bool:
        return self.get_block(block_fingerprint, target_language) is not None

    # =====================================================
    # Maintenance
    # =====================================================

    def clear(self) -> None:
        """Drop both tables."""
        with self._documents_lock:
            self._documents.clear()
        self.clear_blocks()

    def clear_blocks(self) -> None:
        with self._blocks_lock:
            self._blocks.clear()

    def stats(self) -> dict:
        with self._documents_lock, self._blocks_lock:
            return {
                "entries": len(self._documents),
                "block_entries": sum(len(v) for v in self._blocks.values()),
                "block_fingerprints": len(self._blocks),
            }
