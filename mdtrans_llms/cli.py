"""
Command-line interface for MdTrans-LLMs.

Provides commands for:
- Translating Markdown files chunk by chunk or in full
- Incrementally updating a translation after an edit
- Inspecting parsed blocks and block-level diffs
- System information

Usage:
    mdtrans translate README.md -o README.ja.md --all
    mdtrans update README.old.md README.md -o README.ja.md
    mdtrans blocks README.md
    mdtrans diff README.old.md README.md
    mdtrans info
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.table import Table

from mdtrans_llms import __version__
from mdtrans_llms.config import APP_NAME, CONFIG_FILE, PRESET_LANGUAGES, TranslatorSettings
from mdtrans_llms.diff import diff_documents
from mdtrans_llms.parser import parse_markdown
from mdtrans_llms.pipeline import IncrementalTranslator, PassResult, TranslationProgress
from mdtrans_llms.translate.base import create_generator

app = typer.Typer(
    name="mdtrans",
    help="MdTrans-LLMs: Incremental Markdown translation with LLMs",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"{APP_NAME} v{__version__}")
        raise typer.Exit()


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    debug: bool = typer.Option(
        False, "--debug",
        help="Verbose logging",
    ),
):
    """MdTrans-LLMs: Incremental Markdown translation."""
    configure_logging(debug or TranslatorSettings.load().debug)


def _read(path: Path) -> str:
    if not path.exists():
        console.print(f"[red]Error:[/] File not found: {path}", style="bold")
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def _build_translator(
    target_lang: Optional[str],
    backend: Optional[str],
    model: Optional[str],
    chunk_size: Optional[int],
    progress_callback=None,
) -> IncrementalTranslator:
    settings = TranslatorSettings.load()
    if target_lang:
        settings.target_language = target_lang
    if backend:
        settings.backend = backend
    if model:
        settings.model = model
    if chunk_size is not None:
        if chunk_size <= 0:
            console.print("[red]Error:[/] --chunk-size must be positive", style="bold")
            raise typer.Exit(1)
        settings.chunk_size = chunk_size

    try:
        generator = create_generator(settings.backend, model=settings.model or None)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}", style="bold")
        raise typer.Exit(1)

    return IncrementalTranslator(generator, settings, progress_callback=progress_callback)


def _report(result: PassResult, output_file: Optional[Path]) -> None:
    """Print pass statistics and write or show the translation."""
    table = Table(title="Translation Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    done = 0 if result.translated_up_to_index is None else result.translated_up_to_index + 1
    table.add_row("Blocks", f"{done}/{result.total_blocks}")
    table.add_row("Requests Sent", str(result.requests_sent))
    table.add_row("Blocks Sent", str(result.blocks_translated))
    table.add_row("From Cache", "yes" if result.from_cache else "no")
    if result.summary:
        table.add_row("Changes", result.summary)
    console.print(table)

    if output_file:
        output_file.write_text(result.translation, encoding="utf-8")
        console.print(f"\n[green]Saved to:[/] {output_file}")
    else:
        console.print("\n[bold]Translated text:[/]\n")
        typer.echo(result.translation)

    if result.has_more:
        console.print(
            "[yellow]Translation is partial.[/] Run with --all to translate the rest."
        )
    if not result.success:
        console.print(f"[red]Translation stopped:[/] {result.error.user_message}")
        raise typer.Exit(1)


@app.command()
def translate(
    input_file: Path = typer.Argument(..., help="Markdown file to translate"),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Output file path",
    ),
    target_lang: Optional[str] = typer.Option(
        None, "--target", "-l",
        help=f"Target language ({', '.join(PRESET_LANGUAGES)}, or any other)",
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b",
        help="Generation backend (dummy, echo, openai, deepseek, anthropic)",
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m",
        help="Model name for LLM backends",
    ),
    chunk_size: Optional[int] = typer.Option(
        None, "--chunk-size",
        help="Characters translated per pass",
    ),
    translate_all: bool = typer.Option(
        True, "--all/--first-chunk",
        help="Translate the whole document or only the first chunk",
    ),
):
    """Translate a Markdown file."""
    text = _read(input_file)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=err_console,
    ) as progress:
        task = progress.add_task("Translating...", total=None)

        def update_progress(p: TranslationProgress):
            progress.update(task, description=p.message, completed=p.current, total=p.total)

        translator = _build_translator(target_lang, backend, model, chunk_size, update_progress)
        console.print(
            f"[dim]Translating {input_file} ({len(text)} chars) into "
            f"{translator.target_language} via {translator.generator.name}...[/]"
        )

        result = translator.translate(text)
        if translate_all and result.success and result.has_more:
            result = translator.translate_all_remaining()

    _report(result, output_file)


@app.command()
def update(
    old_file: Path = typer.Argument(..., help="Previous revision of the document"),
    new_file: Path = typer.Argument(..., help="Edited revision of the document"),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Output file path",
    ),
    target_lang: Optional[str] = typer.Option(
        None, "--target", "-l",
        help="Target language",
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b",
        help="Generation backend",
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m",
        help="Model name for LLM backends",
    ),
):
    """Translate OLD, then update the translation incrementally to NEW."""
    old_text = _read(old_file)
    new_text = _read(new_file)

    translator = _build_translator(target_lang, backend, model, None)
    first = translator.translate(old_text)
    if first.success and first.has_more:
        first = translator.translate_all_remaining()
    if not first.success:
        console.print(f"[red]Translation of {old_file} failed:[/] {first.error.user_message}")
        raise typer.Exit(1)

    pending = translator.count_pending_changes(new_text)
    console.print(f"[cyan]{pending}[/] changed block(s) inside the translated range")

    result = translator.update(new_text)
    _report(result, output_file)


@app.command()
def blocks(
    input_file: Path = typer.Argument(..., help="Markdown file"),
):
    """Show the parsed blocks of a Markdown file."""
    parsed = parse_markdown(_read(input_file))

    table = Table(title=f"{input_file} ({len(parsed)} blocks)")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Lines", style="dim")
    table.add_column("Fingerprint", style="dim")
    table.add_column("Preview")

    for block in parsed.blocks:
        first_line = block.content.split("\n", 1)[0]
        preview = first_line[:50] + "..." if len(first_line) > 50 else first_line
        table.add_row(
            str(block.index),
            block.kind.value,
            f"{block.start_line}-{block.end_line}",
            block.fingerprint[:12],
            preview,
        )

    console.print(table)


@app.command()
def diff(
    old_file: Path = typer.Argument(..., help="Previous revision"),
    new_file: Path = typer.Argument(..., help="Edited revision"),
):
    """Show block-level changes between two revisions."""
    result = diff_documents(parse_markdown(_read(old_file)), parse_markdown(_read(new_file)))

    if result is None:
        console.print("[green]No block changes.[/]")
        return

    table = Table(title="Block Changes")
    table.add_column("Change", style="cyan")
    table.add_column("Kind")
    table.add_column("Old #", justify="right")
    table.add_column("New #", justify="right")

    styles = {"added": "green", "removed": "red", "modified": "yellow"}
    for change in result.changes:
        kind = change.change_type.value
        table.add_row(
            f"[{styles[kind]}]{kind}[/]",
            change.kind.value,
            "" if change.old_index is None else str(change.old_index),
            "" if change.new_index is None else str(change.new_index),
        )

    console.print(table)
    console.print(f"\n[bold]Summary:[/] {result.summary}")


@app.command()
def info():
    """Show version, backends and effective settings."""
    console.print(f"[bold]{APP_NAME} v{__version__}[/]\n")

    table = Table(title="Available Generation Backends")
    table.add_column("Backend", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Notes")

    table.add_row("dummy", "✓ Available", "Offline test backend (echo, upper, prefix)")

    try:
        import openai  # noqa: F401
        has_key = bool(os.getenv("OPENAI_API_KEY"))
        table.add_row("openai", "✓ Available" if has_key else "⚠ No API key", "GPT-4o, GPT-4o mini")
        has_ds_key = bool(os.getenv("DEEPSEEK_API_KEY"))
        table.add_row("deepseek", "✓ Available" if has_ds_key else "⚠ No API key", "Uses OpenAI client")
    except ImportError:
        table.add_row("openai", "✗ Not installed", "pip install openai")
        table.add_row("deepseek", "✗ Not installed", "pip install openai")

    try:
        import anthropic  # noqa: F401
        has_key = bool(os.getenv("ANTHROPIC_API_KEY"))
        table.add_row("anthropic", "✓ Available" if has_key else "⚠ No API key", "Claude 3.5")
    except ImportError:
        table.add_row("anthropic", "✗ Not installed", "pip install anthropic")

    console.print(table)

    settings = TranslatorSettings.load()
    console.print(f"\n[bold]Settings[/] [dim]({CONFIG_FILE})[/]")
    for key, value in settings.to_dict().items():
        console.print(f"  {key}: [cyan]{value}[/]")
    console.print(f"  effective target language: [cyan]{settings.effective_target_language}[/]")


if __name__ == "__main__":
    app()
