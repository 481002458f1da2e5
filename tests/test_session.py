"""
Tests for the translation session, boundary remapping and merge.

Tests cover:
- Deterministic merge with source fallback
- Remapping the translated-up-to index across edits
- Session lifecycle (start, advance, reconcile, clear)
- Conversation history trimming

Run with: pytest tests/test_session.py -v
"""

import pytest

from mdtrans_llms.diff import diff_documents
from mdtrans_llms.errors import NoActiveSessionError
from mdtrans_llms.parser import parse_markdown
from mdtrans_llms.session import TranslationSession, merge_translations, remap_boundary
from mdtrans_llms.translate.base import ChatMessage


def upper_map(doc):
    return {b.fingerprint: b.content.upper() for b in doc.blocks}


def remap(old, new, previous):
    return remap_boundary(previous, diff_documents(parse_markdown(old), parse_markdown(new)))


class TestMerge:
    """Tests for merge_translations."""

    def test_merge_all_blocks(self):
        doc = parse_markdown("# Title\n\nHello world.")
        assert merge_translations(doc, upper_map(doc)) == "# TITLE\n\nHELLO WORLD."

    def test_merge_up_to_index(self):
        doc = parse_markdown("# Title\n\nHello world.")
        assert merge_translations(doc, upper_map(doc), up_to_index=0) == "# TITLE"

    def test_missing_translation_falls_back_to_source(self, caplog):
        doc = parse_markdown("# Title\n\nHello world.")
        translations = {doc.blocks[0].fingerprint: "# TITRE"}

        merged = merge_translations(doc, translations)

        assert merged == "# TITRE\n\nHello world."
        assert "No translation for block" in caplog.text

    def test_duplicate_content_shares_translation(self):
        doc = parse_markdown("Same.\n\nOther.\n\nSame.")
        translations = {b.fingerprint: f"<{b.content}>" for b in doc.blocks}
        assert merge_translations(doc, translations) == "<Same.>\n<>\n<Other.>\n<>\n<Same.>"

    def test_empty_document(self):
        assert merge_translations(parse_markdown(""), {}) == ""


class TestRemapBoundary:
    """Tests for moving the translated-up-to index into a new document."""

    def test_nothing_translated(self):
        assert remap("# A", "# B", None) is None

    def test_no_diff_keeps_index(self):
        assert remap_boundary(3, None) == 3

    def test_modified_boundary_block_keeps_region(self):
        old = "# Title\n\nHello world.\n"
        new = "# Title\n\nHello there.\n"
        assert remap(old, new, 2) == 2

    def test_insertion_before_boundary_shifts_it(self):
        old = "# A\n\nOne.\n\nTwo."
        new = "# A\n\nNew.\n\nOne.\n\nTwo."
        assert remap(old, new, 2) == 4

    def test_insertion_after_boundary_does_not_extend(self):
        old = "# A\n\nOne.\n\nTwo."
        new = "# A\n\nOne.\n\nTwo.\n\nThree."
        assert remap(old, new, 2) == 2

    def test_removal_before_boundary_shrinks_it(self):
        assert remap("# A\n\nB\n\n## C", "# A\n\n## C", 4) == 2

    def test_fallback_to_modified(self):
        assert remap("Hello.", "Hello!", 0) == 0

    def test_fallback_clamps_to_new_size(self):
        old = "# A\n## B\n### C"
        new = "- x"
        assert remap(old, new, 2) == 0

    def test_empty_new_document(self):
        assert remap("# A\n\nB", "", 2) is None

    @pytest.mark.parametrize("old,new,previous", [
        ("# A\n\nB\n\nC\n\nD", "# A\n\nB\n\nX\n\nC\n\nD", 4),
        ("# A\n\nB\n\nC", "Intro\n\n# A\n\nB, edited\n\nC", 2),
        ("a\n\nb\n\nc\n\nd\n\ne", "a\n\nb\n\nc\n\nd\n\ne\n\nf", 6),
    ])
    def test_covers_unchanged_blocks_within(self, old, new, previous):
        """No unchanged block from inside the old range falls outside the new one."""
        diff = diff_documents(parse_markdown(old), parse_markdown(new))
        boundary = remap_boundary(previous, diff)
        inside = [u.new_index for u in diff.unchanged if u.old_index <= previous]
        assert all(index <= boundary for index in inside)


class TestSessionLifecycle:
    """Tests for TranslationSession state handling."""

    def test_operations_require_session(self):
        session = TranslationSession()
        assert not session.has_session()
        with pytest.raises(NoActiveSessionError):
            session.reconcile("# A")
        with pytest.raises(NoActiveSessionError):
            session.remap_progress_boundary(None)
        with pytest.raises(NoActiveSessionError):
            session.advance("a", "b")

    def test_start_replaces_prior_session(self):
        session = TranslationSession()
        doc = parse_markdown("# A")
        session.start("# A", "# a", doc, upper_map(doc), 0)
        doc2 = parse_markdown("# B")
        session.start("# B", "# b", doc2, {}, None)

        assert session.state.original_content == "# B"
        assert session.state.block_translations == {}
        assert session.state.translated_up_to_index is None

    def test_advance_merges_translation_map(self):
        session = TranslationSession()
        old = parse_markdown("# A\n\nB")
        session.start("# A\n\nB", "", old, {old.blocks[0].fingerprint: "# a"}, 0)

        new = parse_markdown("# A\n\nC")
        session.advance(
            "# A\n\nC", "# a\n\nc", new,
            {new.blocks[2].fingerprint: "c"}, 2,
        )

        state = session.state
        assert state.parsed_document is new
        assert state.translated_up_to_index == 2
        assert state.block_translations[old.blocks[0].fingerprint] == "# a"
        assert state.block_translations[new.blocks[2].fingerprint] == "c"
        assert state.is_complete

    def test_advance_without_optional_fields_keeps_them(self):
        session = TranslationSession()
        doc = parse_markdown("# A\n\nB")
        session.start("# A\n\nB", "# a", doc, upper_map(doc), 0)
        session.advance("# A\n\nB", "# a!")

        assert session.state.parsed_document is doc
        assert session.state.translated_up_to_index == 0
        assert session.state.translated_content == "# a!"

    def test_reconcile_does_not_mutate(self):
        session = TranslationSession()
        doc = parse_markdown("# Title\n\nHello world.")
        session.start("# Title\n\nHello world.", "", doc, upper_map(doc), 2)

        diff = session.reconcile("# Title\n\nHello there.")

        assert diff.summary == "1 block modified"
        assert session.state.parsed_document is doc
        assert session.reconcile("# Title\n\nHello world.") is None

    def test_merge_uses_session_map(self):
        session = TranslationSession()
        doc = parse_markdown("# Title\n\nHello world.")
        session.start("# Title\n\nHello world.", "", doc, upper_map(doc), 0)

        assert session.merge() == "# TITLE"
        assert session.merge(up_to_index=2) == "# TITLE\n\nHELLO WORLD."

    def test_progress_counters(self):
        session = TranslationSession()
        doc = parse_markdown("# A\n\nB\n\nC")
        session.start("", "", doc, {}, 1)
        assert session.state.total_blocks == 5
        assert session.state.blocks_translated == 2
        assert not session.state.is_complete

    def test_clear(self):
        session = TranslationSession()
        session.start("a", "b", parse_markdown("a"), {}, 0)
        session.clear()
        assert session.state is None


class TestHistory:
    """Tests for conversation history."""

    def test_history_trimmed_to_pairs(self):
        session = TranslationSession()
        messages = []
        for i in range(4):
            messages += [ChatMessage.user(f"q{i}"), ChatMessage.assistant(f"a{i}")]
        session.start("", "", None, {}, None, messages=messages)

        recent = session.history(max_turns=2)
        assert [m.content for m in recent] == ["q2", "a2", "q3", "a3"]
        assert session.history(max_turns=0) == []
        assert len(session.history()) == 8

    def test_advance_appends_messages(self):
        session = TranslationSession()
        session.start("", "", None, {}, None, messages=[ChatMessage.user("q0")])
        session.advance("", "", new_messages=[ChatMessage.assistant("a0")])
        assert [m.role for m in session.history()] == ["user", "assistant"]
