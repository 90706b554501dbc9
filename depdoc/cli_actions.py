# depdoc/cli_actions.py
"""
Reusable CLI actions.

The main CLI (`depdoc.cli`) calls these functions; they build a
DependencyContext from settings plus CLI overrides, run it, and render the
results with rich.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .config import STRATEGIES, Settings, load_settings
from .context import DependencyContext
from .errors import AddPackagesError
from .models import PackageInfo, PackageRef, SymbolDocument
from .vectordb.sqlite_numpy import SQLiteNumpyVectorStore

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("depdoc").setLevel(logging.DEBUG if verbose else logging.INFO)


def build_settings(
    store_dir: Optional[str] = None,
    strategy: Optional[str] = None,
    embedder: Optional[str] = None,
    embed_model: Optional[str] = None,
    ollama_host: Optional[str] = None,
    registry: Optional[str] = None,
    batch_size: Optional[int] = None,
) -> Settings:
    """
    Load settings and apply CLI overrides on top.

    Args:
        store_dir: Store directory override.
        strategy: "symbol" or "package".
        embedder: "ollama" or "sbert".
        embed_model: Embedding model name.
        ollama_host: Ollama base URL.
        registry: Registry base URL.
        batch_size: Embedding batch size.

    Returns:
        Settings instance.

    Raises:
        ValueError: If the strategy is unknown.
    """
    settings = load_settings(Path(store_dir) if store_dir else None)
    if strategy:
        settings.index.strategy = strategy
    if batch_size:
        settings.index.batch_size = batch_size
    if embedder:
        settings.backend.embedder = embedder
    if embed_model:
        settings.backend.embed_model = embed_model
    if ollama_host:
        settings.backend.ollama_host = ollama_host
    if registry:
        settings.backend.registry_url = registry
    if settings.index.strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {settings.index.strategy}")
    return settings


def _declarations_label(info: PackageInfo) -> str:
    src = info.declaration_source
    if src is None:
        return "[dim]none[/dim]"
    if src.name == info.name:
        return "bundled"
    return f"{src.name}@{src.version}"


def do_add(specs: List[str], settings: Settings) -> bool:
    """
    Add packages given as `name@version` specs, with a progress bar.

    Args:
        specs: Package specs.
        settings: Settings to build the context from.

    Returns:
        True if every package was added.
    """
    refs = [PackageRef.parse(s) for s in specs]

    async def _run() -> List[PackageInfo]:
        ctx = DependencyContext(settings)
        progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        try:
            with progress:
                task = progress.add_task("Adding packages", total=len(refs))
                return await ctx.add_packages(refs, on_done=lambda _ref: progress.advance(task, 1))
        finally:
            await ctx.close()

    try:
        added = asyncio.run(_run())
    except AddPackagesError as e:
        console.print(f"\n[red]{e}[/red]")
        for ref, err in e.failures:
            console.print(f" - [yellow]{ref.key}[/yellow]: {err}")
        return False

    table = Table(show_header=True, header_style="bold")
    table.add_column("Package")
    table.add_column("Declarations")
    table.add_column("Documents", justify="right")
    for info in added:
        table.add_row(f"{info.name}@{info.version}", _declarations_label(info), str(info.documents))
    console.print(table)
    return True


def do_search(query: str, settings: Settings, top_k: Optional[int] = None) -> None:
    """
    Search the index and print ranked results.

    Args:
        query: Free-text query.
        settings: Settings to build the context from.
        top_k: Number of results (defaults to settings.runtime.top_k).
    """

    async def _run():
        ctx = DependencyContext(settings)
        try:
            hits = await ctx.search(query, top_k)
            return hits, ctx.results_for(hits)
        finally:
            await ctx.close()

    hits, results = asyncio.run(_run())
    if not hits:
        console.print("[yellow]No results. Add packages with `depdoc add name@version` first.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Package")
    if settings.index.strategy == "symbol":
        table.add_column("Kind")
        table.add_column("Symbol")
        table.add_column("File")
    for h, r in zip(hits, results):
        if isinstance(r, SymbolDocument):
            meta = r.metadata
            symbol = r.id.rsplit("#", 1)[-1]
            table.add_row(f"{h.score:.3f}", f"{meta.name}@{meta.version}", meta.kind.value, symbol, meta.filepath)
        else:
            table.add_row(f"{h.score:.3f}", f"{r.name}@{r.version}")
    console.print(table)


def do_packages(settings: Settings) -> None:
    """List packages recorded in the manifest."""
    ctx = DependencyContext(settings)
    packages = ctx.get_all_packages()
    if not packages:
        console.print("[yellow]No packages added yet.[/yellow]")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Package")
    table.add_column("Declarations")
    table.add_column("Documents", justify="right")
    for name in sorted(packages):
        info = packages[name]
        table.add_row(f"{info.name}@{info.version}", _declarations_label(info), str(info.documents))
    console.print(table)


def do_status(settings: Settings) -> None:
    """Show vector index statistics."""
    layout = settings.layout
    layout.ensure()
    store = SQLiteNumpyVectorStore(store_dir=layout.index_dir)
    try:
        stats = store.stats()
    finally:
        store.close()
    console.print(f"Store: {layout.base_dir}")
    for k, v in stats.items():
        console.print(f"- {k}: {v}")


def do_reset(settings: Settings, purge_cache: bool = False) -> None:
    """
    Delete index data and the package manifest.

    Args:
        settings: Settings locating the store.
        purge_cache: Also delete extracted packages.
    """
    layout = settings.layout
    layout.ensure()
    store = SQLiteNumpyVectorStore(store_dir=layout.index_dir)
    try:
        store.reset()
    finally:
        store.close()

    layout.manifest_path.unlink(missing_ok=True)
    if purge_cache and layout.packages_dir.exists():
        shutil.rmtree(layout.packages_dir)
        console.print(f"[yellow]Package cache removed:[/yellow] {layout.packages_dir}")

    console.print(f"[bold yellow]Index reset[/bold yellow] {layout.base_dir}")
