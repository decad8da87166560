"""crawlparse CLI: run the decode-and-parse pipeline from the shell.

Usage:
    python cli/main.py --help

Commands:
    parse   → parse a local file as if it had been fetched from --base-url
    fetch   → fetch a URL over HTTP, then parse it
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from crawlparse.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from dataclasses import replace
from typing import Optional

import httpx
import typer

from crawlparse.config import BackendKind, Settings, load_settings
from crawlparse.logging_utils import setup_logging
from crawlparse.parse import ParsePipeline, ParseSuccess, RawContent
from crawlparse.parse.models import ParseOutcome

app = typer.Typer(
    name="crawlparse",
    help="Encoding detection and tolerant HTML parsing for crawled pages.",
    no_args_is_help=True,
)


def _build_settings(
    backend: Optional[str],
    default_encoding: Optional[str],
    trace: bool,
) -> Settings:
    settings = load_settings()
    overrides = {}
    if backend:
        try:
            overrides["backend"] = BackendKind(backend)
        except ValueError:
            raise typer.BadParameter(
                f"Unknown backend {backend!r}; use lenient-sax or dom-fragment"
            )
    if default_encoding:
        overrides["default_encoding"] = default_encoding
    if trace:
        overrides["trace"] = True
    if not overrides:
        return settings
    try:
        return replace(settings, **overrides)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))


def _report(outcome: ParseOutcome, show_text: bool) -> None:
    if not isinstance(outcome, ParseSuccess):
        typer.echo(f"[parse] Failed ({outcome.kind.value}) at {outcome.stage}: {outcome.message}")
        raise typer.Exit(1)

    encoding = outcome.encoding
    fallback = f" (fallback from {encoding.fallback_from})" if outcome.encoding_fallback else ""
    typer.echo(f"[parse] Status   : {outcome.status.value}")
    typer.echo(f"[parse] Encoding : {encoding.name} [{encoding.source.value}]{fallback}")
    typer.echo(f"[parse] Title    : {outcome.title or '(none)'}")
    typer.echo(f"[parse] Nodes    : {len(outcome.fragment)} top-level, {outcome.iterations} parser calls")
    typer.echo(f"[parse] Words    : {len(outcome.text.split())}")
    typer.echo(f"[parse] Links    : {len(outcome.outlinks)}")
    if outcome.partial:
        typer.echo(f"[parse] Partial  : {outcome.metadata.get('parse_partial', '')}")
    if show_text:
        typer.echo("")
        typer.echo(outcome.text)


@app.command("parse")
def parse_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="HTML file to parse."),
    base_url: Optional[str] = typer.Option(None, help="Base URL (default: file: URL of PATH)."),
    content_type: Optional[str] = typer.Option(
        None, "--content-type", help="Content-Type header to pretend was sent."
    ),
    backend: Optional[str] = typer.Option(None, help="Parser backend: lenient-sax | dom-fragment."),
    default_encoding: Optional[str] = typer.Option(None, help="Fallback character encoding."),
    text: bool = typer.Option(True, "--text/--no-text", help="Print extracted text."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    trace: bool = typer.Option(False, "--trace", help="Log every markup repair."),
) -> None:
    """Parse a local HTML file and print what was extracted."""
    setup_logging("TRACE" if trace else "DEBUG" if verbose else "WARNING")
    settings = _build_settings(backend, default_encoding, trace)

    metadata = {"Content-Type": content_type} if content_type else {}
    raw = RawContent(
        base_url=base_url or path.resolve().as_uri(),
        content=path.read_bytes(),
        metadata=metadata,
    )
    _report(ParsePipeline(settings).parse(raw), text)


@app.command("fetch")
def fetch(
    url: str = typer.Argument(..., help="URL to fetch and parse."),
    backend: Optional[str] = typer.Option(None, help="Parser backend: lenient-sax | dom-fragment."),
    text: bool = typer.Option(True, "--text/--no-text", help="Print extracted text."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Fetch a URL and run it through the parse pipeline."""
    from crawlparse.fetcher import fetch_raw_content

    setup_logging("DEBUG" if verbose else "WARNING")
    settings = _build_settings(backend, None, False)

    typer.echo(f"[fetch] Fetching {url!r} …")
    try:
        raw = fetch_raw_content(url, settings)
    except httpx.HTTPError as exc:
        typer.echo(f"[fetch] Failed: {exc}")
        raise typer.Exit(1)
    _report(ParsePipeline(settings).parse(raw), text)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
