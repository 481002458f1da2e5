"""
Tests for the mdtrans command-line interface.

All commands run against the offline dummy backend.

Run with: pytest tests/test_cli.py -v
"""

import pytest
from typer.testing import CliRunner

from mdtrans_llms import __version__
from mdtrans_llms.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep the user's ~/.mdtrans config and MDTRANS_* variables out of tests."""
    monkeypatch.setattr("mdtrans_llms.config.CONFIG_FILE", tmp_path / "absent.json")
    for name in ("TARGET_LANGUAGE", "BACKEND", "MODEL", "CHUNK_SIZE", "ENABLE_CACHE", "DEBUG"):
        monkeypatch.delenv(f"MDTRANS_{name}", raising=False)


@pytest.fixture
def documents(tmp_path):
    old = tmp_path / "old.md"
    new = tmp_path / "new.md"
    old.write_text("# Title\n\nHello world.\n", encoding="utf-8")
    new.write_text("# Title\n\nHello there.\n", encoding="utf-8")
    return old, new


class TestGlobalOptions:
    """Tests for app-level options."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("translate", "update", "blocks", "diff", "info"):
            assert command in result.output


class TestTranslateCommand:
    """Tests for `mdtrans translate`."""

    def test_translate_to_file(self, documents, tmp_path):
        old, _ = documents
        out = tmp_path / "out.md"

        result = runner.invoke(app, ["translate", str(old), "-o", str(out), "-b", "dummy"])

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8") == (
            "[TRANSLATED] # Title\n\n[TRANSLATED] Hello world."
        )

    def test_translate_to_stdout(self, documents):
        old, _ = documents
        result = runner.invoke(app, ["translate", str(old), "--backend", "upper"])
        assert result.exit_code == 1
        assert "Unknown generation backend" in result.output

        result = runner.invoke(app, ["translate", str(old), "--backend", "echo"])
        assert result.exit_code == 0
        assert "Hello world." in result.output

    def test_first_chunk_only(self, tmp_path):
        source = tmp_path / "long.md"
        source.write_text("# A\n\nOne.\n\nTwo.\n\nThree.\n", encoding="utf-8")

        result = runner.invoke(
            app, ["translate", str(source), "--first-chunk", "--chunk-size", "10"],
        )

        assert result.exit_code == 0, result.output
        assert "partial" in result.output

    def test_invalid_chunk_size(self, documents):
        old, _ = documents
        result = runner.invoke(app, ["translate", str(old), "--chunk-size", "0"])
        assert result.exit_code == 1

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["translate", str(tmp_path / "nope.md")])
        assert result.exit_code == 1
        assert "File not found" in result.output


class TestUpdateCommand:
    """Tests for `mdtrans update`."""

    def test_update_writes_new_translation(self, documents, tmp_path):
        old, new = documents
        out = tmp_path / "out.md"

        result = runner.invoke(app, ["update", str(old), str(new), "-o", str(out)])

        assert result.exit_code == 0, result.output
        assert "1 changed block" in result.output
        assert out.read_text(encoding="utf-8") == (
            "[TRANSLATED] # Title\n\n[TRANSLATED] Hello there."
        )


class TestInspectionCommands:
    """Tests for `mdtrans blocks`, `diff` and `info`."""

    def test_blocks(self, documents):
        old, _ = documents
        result = runner.invoke(app, ["blocks", str(old)])
        assert result.exit_code == 0
        assert "heading" in result.output
        assert "blank_lines" in result.output
        assert "paragraph" in result.output

    def test_diff(self, documents):
        old, new = documents
        result = runner.invoke(app, ["diff", str(old), str(new)])
        assert result.exit_code == 0
        assert "modified" in result.output
        assert "1 block modified" in result.output

    def test_diff_identical(self, documents):
        old, _ = documents
        result = runner.invoke(app, ["diff", str(old), str(old)])
        assert result.exit_code == 0
        assert "No block changes" in result.output

    def test_info(self):
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "dummy" in result.output
        assert "effective target language" in result.output

    def test_bad_environment_value_does_not_crash(self, monkeypatch):
        monkeypatch.setenv("MDTRANS_CHUNK_SIZE", "lots")
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0, result.output
