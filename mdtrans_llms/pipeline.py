"""
Incremental translation pipeline for MdTrans-LLMs.

This module drives translation passes over a Markdown document:
1. Parse the document into blocks
2. Decide which blocks need translating (chunk plan, diff, caches)
3. Send them to the generation backend in ceiling-bounded requests
4. Split responses back into per-block translations
5. Commit progress into the session and merge the output

Pass types:
- translate(): fresh start, first chunk only
- continue_translation(): next chunk after the translated-up-to index
- translate_all_remaining(): everything left, no chunk limit
- update(): incremental pass after the source was edited

Design Philosophy:
- The session and cache are explicit objects passed in by the caller
- Failures and cancellation never lose finished work: every completed
  request is committed before the error is reported in PassResult
- Progress callbacks for CLI/editor integration
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from mdtrans_llms.cache import TranslationCache
from mdtrans_llms.chunking import plan_chunk, split_for_requests
from mdtrans_llms.config import REQUEST_CHAR_CEILING, TranslatorSettings
from mdtrans_llms.diff import count_pending_changes
from mdtrans_llms.errors import CancellationRequested, MdTransError, TranslationTimeout
from mdtrans_llms.models import Block, ParsedDocument
from mdtrans_llms.parser import fingerprint, parse_markdown
from mdtrans_llms.session import SessionState, TranslationSession, merge_translations
from mdtrans_llms.translate.base import CancellationToken, ChatMessage, Generator
from mdtrans_llms.translate.prompting import build_translation_prompt, split_response

logger = logging.getLogger(__name__)


@dataclass
class TranslationProgress:
    """Progress of the current pass, in blocks."""
    current: int
    total: int
    message: str


ProgressCallback = Callable[[TranslationProgress], None]
FragmentCallback = Callable[[str], None]


@dataclass
class PassResult:
    """Result of a translation pass.

    Contains the merged translation plus what the pass did, which is
    useful for progress display and for tests.
    """
    translation: str
    translated_up_to_index: Optional[int] = None
    total_blocks: int = 0
    from_cache: bool = False
    incremental: bool = False
    requests_sent: int = 0
    blocks_translated: int = 0
    summary: str = ""
    error: Optional[MdTransError] = None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, CancellationRequested)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def has_more(self) -> bool:
        if self.total_blocks == 0:
            return False
        if self.translated_up_to_index is None:
            return True
        return self.translated_up_to_index < self.total_blocks - 1


@dataclass
class _BatchOutcome:
    translations: dict[str, str] = field(default_factory=dict)
    messages: list[ChatMessage] = field(default_factory=list)
    requests_sent: int = 0
    blocks_translated: int = 0
    error: Optional[MdTransError] = None


def _contiguous_end(
    blocks: Sequence[Block],
    translations: dict[str, str],
    default: Optional[int],
) -> Optional[int]:
    """Index of the last block of an unbroken translated run from the start of ``blocks``."""
    last = default
    for block in blocks:
        if block.fingerprint not in translations:
            break
        last = block.index
    return last


class IncrementalTranslator:
    """Orchestrates translation passes over one document.

    Usage:
        translator = IncrementalTranslator(create_generator("openai"))
        result = translator.translate(text)
        while result.has_more and result.success:
            result = translator.continue_translation()

        result = translator.update(edited_text)
    """

    def __init__(
        self,
        generator: Generator,
        settings: Optional[TranslatorSettings] = None,
        cache: Optional[TranslationCache] = None,
        session: Optional[TranslationSession] = None,
        progress_callback: Optional[ProgressCallback] = None,
        fragment_callback: Optional[FragmentCallback] = None,
        request_ceiling: int = REQUEST_CHAR_CEILING,
        pass_timeout: Optional[float] = None,
    ):
        self.generator = generator
        self.settings = settings or TranslatorSettings()
        self.cache = cache if cache is not None else TranslationCache()
        self.session = session if session is not None else TranslationSession()
        self.progress_callback = progress_callback or (lambda progress: None)
        self.fragment_callback = fragment_callback or (lambda fragment: None)
        self.request_ceiling = request_ceiling
        self.pass_timeout = pass_timeout

    @property
    def target_language(self) -> str:
        return self.settings.effective_target_language

    def document_cache_key(self, document_fingerprint: str) -> str:
        """Whole-document cache key, scoped to the target language."""
        return fingerprint(f"{self.target_language}\n{document_fingerprint}")

    # =====================================================
    # Request loop
    # =====================================================

    def _translate_blocks(
        self,
        blocks: Sequence[Block],
        history: list[ChatMessage],
        cancel_token: Optional[CancellationToken],
        known: Optional[dict[str, str]] = None,
    ) -> _BatchOutcome:
        """Translate blocks, stopping at the first error.

        Pass-through blocks are copied. Blocks already in ``known`` (the
        session map) or the block cache are reused, and each distinct
        remaining fingerprint is sent once.
        """
        outcome = _BatchOutcome()
        target = self.target_language
        known = known or {}

        pending: list[Block] = []
        seen: set[str] = set()
        for block in blocks:
            if not block.is_translatable:
                outcome.translations[block.fingerprint] = block.content
            elif block.fingerprint in known:
                outcome.translations[block.fingerprint] = known[block.fingerprint]
            elif block.fingerprint not in seen:
                seen.add(block.fingerprint)
                pending.append(block)

        if self.settings.enable_cache and pending:
            hits = self.cache.get_many([b.fingerprint for b in pending], target)
            if hits:
                logger.info("Block cache: %d hit(s), %d miss(es)", len(hits), len(pending) - len(hits))
            outcome.translations.update(hits)
            pending = [b for b in pending if b.fingerprint not in hits]

        groups = split_for_requests(pending, self.request_ceiling)
        deadline = time.monotonic() + self.pass_timeout if self.pass_timeout else None
        done = 0

        for group in groups:
            try:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                if deadline is not None and time.monotonic() > deadline:
                    raise TranslationTimeout(f"pass exceeded {self.pass_timeout:.0f}s")

                prompt = ChatMessage.user(build_translation_prompt(group, target))
                turns = self.settings.max_history_turns
                recent = (history + outcome.messages)[-2 * turns:] if turns > 0 else []
                logger.info(
                    "Request %d/%d: blocks %d-%d (%d chars) via %s",
                    outcome.requests_sent + 1, len(groups),
                    group[0].index, group[-1].index,
                    sum(b.size for b in group), self.generator.name,
                )

                fragments = []
                for fragment in self.generator.send(recent + [prompt], cancel_token):
                    fragments.append(fragment)
                    self.fragment_callback(fragment)
                response = "".join(fragments)

                per_block = split_response(response, group)
            except MdTransError as e:
                logger.warning("Stopping pass after %d request(s): %s", outcome.requests_sent, e)
                outcome.error = e
                break

            translated = {b.fingerprint: per_block[b.index] for b in group}
            outcome.translations.update(translated)
            if self.settings.enable_cache:
                self.cache.set_many(translated, target)
            outcome.messages.extend([prompt, ChatMessage.assistant(response)])
            outcome.requests_sent += 1
            done += len(group)
            outcome.blocks_translated = done
            self.progress_callback(TranslationProgress(
                current=done,
                total=len(pending),
                message=f"Translated {done}/{len(pending)} blocks",
            ))

        return outcome

    def _result(
        self,
        state: SessionState,
        outcome: _BatchOutcome,
        incremental: bool = False,
        summary: str = "",
    ) -> PassResult:
        result = PassResult(
            translation=state.translated_content,
            translated_up_to_index=state.translated_up_to_index,
            total_blocks=state.total_blocks,
            incremental=incremental,
            requests_sent=outcome.requests_sent,
            blocks_translated=outcome.blocks_translated,
            summary=summary,
            error=outcome.error,
        )
        if result.success and not result.has_more and self.settings.enable_cache:
            self.cache.set(self.document_cache_key(state.parsed_document.fingerprint), result.translation)
        return result

    def _commit(
        self,
        text: str,
        parsed: ParsedDocument,
        outcome: _BatchOutcome,
        up_to: Optional[int],
    ) -> SessionState:
        state = self.session.require_state()
        combined = {**state.block_translations, **outcome.translations}
        translation = merge_translations(parsed, combined, up_to) if up_to is not None else ""
        state = self.session.advance(
            text, translation, parsed, outcome.translations, up_to, outcome.messages,
        )
        state.translated_up_to_index = up_to
        return state

    # =====================================================
    # Passes
    # =====================================================

    def translate(
        self,
        text: str,
        bypass_cache: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PassResult:
        """Start a fresh translation and translate the first chunk.

        Args:
            text: Full Markdown source
            bypass_cache: Skip the whole-document cache lookup
            cancel_token: Optional cancellation token

        Returns:
            PassResult; has_more is True when blocks remain untranslated
        """
        parsed = parse_markdown(text)
        target = self.target_language
        self.session.clear()

        if self.settings.enable_cache and not bypass_cache:
            cached = self._from_document_cache(text, parsed)
            if cached is not None:
                return cached

        chunk, _ = plan_chunk(parsed.blocks, 0, self.settings.chunk_size)
        logger.info(
            "Translating %d of %d blocks into %s",
            len(chunk), len(parsed.blocks), target,
        )
        outcome = self._translate_blocks(chunk, [], cancel_token)
        up_to = _contiguous_end(chunk, outcome.translations, None)

        if up_to is None and outcome.error is not None and parsed.blocks:
            return PassResult(translation="", total_blocks=len(parsed.blocks), error=outcome.error)

        translation = merge_translations(parsed, outcome.translations, up_to) if up_to is not None else ""
        state = self.session.start(
            text, translation, parsed, outcome.translations, up_to,
            messages=outcome.messages, target_language=target, model=self.generator.model,
        )
        return self._result(state, outcome)

    def _from_document_cache(self, text: str, parsed: ParsedDocument) -> Optional[PassResult]:
        """Serve a whole-document hit, seeding the session from the block cache.

        A hit is only used when every block translation can still be
        recovered, so later incremental updates have a complete map.
        """
        cached = self.cache.get(self.document_cache_key(parsed.fingerprint))
        if cached is None:
            return None

        target = self.target_language
        translations = {b.fingerprint: b.content for b in parsed.blocks if not b.is_translatable}
        translations.update(self.cache.get_many(
            [b.fingerprint for b in parsed.blocks if b.is_translatable], target,
        ))
        if any(b.fingerprint not in translations for b in parsed.blocks):
            logger.debug("Document cache hit without full block coverage; ignoring")
            return None

        logger.info("Document cache hit")
        up_to = len(parsed.blocks) - 1 if parsed.blocks else None
        self.session.start(
            text, cached, parsed, translations, up_to,
            target_language=target, model=self.generator.model,
        )
        return PassResult(
            translation=cached,
            translated_up_to_index=up_to,
            total_blocks=len(parsed.blocks),
            from_cache=True,
        )

    def _extend(
        self, size_limit: Optional[int], cancel_token: Optional[CancellationToken],
    ) -> PassResult:
        state = self.session.require_state()
        parsed = state.parsed_document
        previous = state.translated_up_to_index
        start = 0 if previous is None else previous + 1

        chunk, _ = plan_chunk(parsed.blocks, start, size_limit)
        if not chunk:
            return self._result(state, _BatchOutcome())

        logger.info("Continuing from block %d (%d blocks)", start, len(chunk))
        outcome = self._translate_blocks(
            chunk, self.session.history(), cancel_token, known=state.block_translations,
        )
        combined = {**state.block_translations, **outcome.translations}
        up_to = _contiguous_end(chunk, combined, previous)
        state = self._commit(state.original_content, parsed, outcome, up_to)
        return self._result(state, outcome)

    def continue_translation(self, cancel_token: Optional[CancellationToken] = None) -> PassResult:
        """Translate the next chunk after the translated-up-to index."""
        return self._extend(self.settings.chunk_size, cancel_token)

    def translate_all_remaining(self, cancel_token: Optional[CancellationToken] = None) -> PassResult:
        """Translate every remaining block; requests are still ceiling-bounded."""
        return self._extend(None, cancel_token)

    def update(self, new_text: str, cancel_token: Optional[CancellationToken] = None) -> PassResult:
        """Incrementally update the translation after the source was edited.

        Only blocks within the remapped translated range whose content has
        no translation yet are sent. A document that was fully translated
        stays fully translated, so appended blocks are translated too.

        Raises:
            NoActiveSessionError: If translate() was never called
        """
        state = self.session.require_state()
        diff = self.session.reconcile(new_text)

        if diff is None:
            logger.info("No block changes detected")
            return PassResult(
                translation=state.translated_content,
                translated_up_to_index=state.translated_up_to_index,
                total_blocks=state.total_blocks,
                from_cache=True,
                incremental=True,
            )

        logger.info("Updating translation (%s)", diff.summary)
        new_parsed = parse_markdown(new_text)
        boundary = self.session.remap_progress_boundary(diff)
        was_complete = state.is_complete or state.total_blocks == 0
        if was_complete and new_parsed.blocks:
            boundary = len(new_parsed.blocks) - 1

        in_range = list(new_parsed.blocks[:boundary + 1]) if boundary is not None else []
        needed = [b for b in in_range if b.fingerprint not in state.block_translations]
        outcome = self._translate_blocks(needed, self.session.history(), cancel_token)

        combined = {**state.block_translations, **outcome.translations}
        up_to = _contiguous_end(in_range, combined, None)
        state = self._commit(new_text, new_parsed, outcome, up_to)
        return self._result(state, outcome, incremental=True, summary=diff.summary)

    # =====================================================
    # Session control
    # =====================================================

    def count_pending_changes(self, new_text: str) -> int:
        """Non-blank block changes inside the translated range."""
        state = self.session.state
        if state is None:
            return 0
        return count_pending_changes(self.session.reconcile(new_text), state.translated_up_to_index)

    def should_auto_translate(self, changed_blocks: int) -> bool:
        threshold = self.settings.auto_translate_threshold
        return threshold > 0 and changed_blocks >= threshold

    def progress(self) -> TranslationProgress:
        state = self.session.state
        if state is None:
            return TranslationProgress(0, 0, "No translation yet")
        done, total = state.blocks_translated, state.total_blocks
        percent = round(100 * done / total) if total else 100
        return TranslationProgress(done, total, f"Translated {percent}% ({done}/{total} blocks)")

    def reset(self) -> None:
        """Forget the session so the next pass starts from scratch."""
        self.session.clear()

    def set_target_language(self, language: str) -> None:
        self.settings.target_language = language
        self.session.clear()

    def set_model(self, model: str, generator: Optional[Generator] = None) -> None:
        self.settings.model = model
        if generator is not None:
            self.generator = generator
        self.session.clear()
