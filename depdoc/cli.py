"""Depdoc CLI.

Commands:
  - add: fetch npm packages, extract their declarations and index them
  - search: free-text search over indexed symbols (or packages)
  - packages: list added packages
  - status: show index stats
  - reset: delete the index (and optionally the package cache)

Embeddings:
  - Ollama by default (http://localhost:11434, /api/embed)
  - sentence-transformers with `--embedder sbert` (install `depdoc[st]`)
"""

from __future__ import annotations

from typing import List, Optional

import typer

from .cli_actions import (
    build_settings,
    console,
    do_add,
    do_packages,
    do_reset,
    do_search,
    do_status,
    setup_logging,
)
from .errors import DepdocError

app = typer.Typer(add_completion=False, help="Depdoc: semantic search over the type declarations of npm dependencies.")

STORE_DIR_HELP = "Store directory (default: ~/.depdoc or $DEPDOC_HOME)."


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    setup_logging(verbose)


def _fail(e: Exception) -> None:
    console.print(f"[red]{e}[/red]")
    raise typer.Exit(code=1)


@app.command()
def add(
    specs: List[str] = typer.Argument(..., help="Packages as name@version (e.g. left-pad@1.3.0, @scope/pkg@2.0.0)."),
    store_dir: Optional[str] = typer.Option(None, "--store-dir", help=STORE_DIR_HELP),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Index strategy: symbol|package"),
    embedder: Optional[str] = typer.Option(None, "--embedder", help="Embedding backend: ollama|sbert"),
    embed_model: Optional[str] = typer.Option(None, "--embed-model", help="Embedding model name."),
    ollama_host: Optional[str] = typer.Option(None, "--ollama-host", help="Ollama host URL."),
    registry: Optional[str] = typer.Option(None, "--registry", help="npm registry URL."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Texts per embedding call."),
):
    """Add (or re-index) npm packages."""
    try:
        settings = build_settings(
            store_dir=store_dir,
            strategy=strategy,
            embedder=embedder,
            embed_model=embed_model,
            ollama_host=ollama_host,
            registry=registry,
            batch_size=batch_size,
        )
        ok = do_add(specs, settings)
    except (DepdocError, ValueError) as e:
        _fail(e)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str = typer.Argument(..., help="What you are looking for, in plain words."),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="How many results to show."),
    store_dir: Optional[str] = typer.Option(None, "--store-dir", help=STORE_DIR_HELP),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Index strategy: symbol|package"),
    embedder: Optional[str] = typer.Option(None, "--embedder", help="Embedding backend: ollama|sbert"),
    embed_model: Optional[str] = typer.Option(None, "--embed-model", help="Embedding model name."),
    ollama_host: Optional[str] = typer.Option(None, "--ollama-host", help="Ollama host URL."),
):
    """Search indexed declarations."""
    try:
        settings = build_settings(
            store_dir=store_dir,
            strategy=strategy,
            embedder=embedder,
            embed_model=embed_model,
            ollama_host=ollama_host,
        )
        do_search(query, settings, top_k=top_k)
    except (DepdocError, ValueError) as e:
        _fail(e)


@app.command()
def packages(
    store_dir: Optional[str] = typer.Option(None, "--store-dir", help=STORE_DIR_HELP),
):
    """List added packages."""
    do_packages(build_settings(store_dir=store_dir))


@app.command()
def status(
    store_dir: Optional[str] = typer.Option(None, "--store-dir", help=STORE_DIR_HELP),
):
    """Show index stats."""
    try:
        do_status(build_settings(store_dir=store_dir))
    except DepdocError as e:
        _fail(e)


@app.command()
def reset(
    store_dir: Optional[str] = typer.Option(None, "--store-dir", help=STORE_DIR_HELP),
    purge_cache: bool = typer.Option(False, "--purge-cache", help="Also delete downloaded packages."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Reset (delete) the index."""
    if not yes:
        typer.confirm("Delete the index and package list?", abort=True)
    try:
        do_reset(build_settings(store_dir=store_dir), purge_cache=purge_cache)
    except DepdocError as e:
        _fail(e)


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
