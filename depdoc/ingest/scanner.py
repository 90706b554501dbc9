"""Package tree scanner.

This module provides:
  - declaration file listing for an extracted package directory
  - source loading for the symbol extractor

Notes:
  - Uses IgnoreMatcher (default excludes such as `node_modules/`)
  - Filters by declaration extension allow-list
  - Skips large files
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, List

from ..config import IndexOptions
from .ignore_rules import build_ignore_matcher
from .loaders import read_text_file

logger = logging.getLogger(__name__)

MARKER_FILE = ".depdoc.json"


@dataclass
class SourceFile:
    """A declaration source loaded from a package directory."""

    path: Path
    rel_path: str
    content: str
    encoding: str


def has_allowed_suffix(path: Path, extensions: List[str]) -> bool:
    """True when the file name ends with one of `extensions` (multi-part aware)."""
    name = path.name.lower()
    return any(name.endswith(ext.lower()) for ext in extensions)


def list_declaration_files(root: Path, opts: IndexOptions) -> List[Path]:
    """List declaration files under an extracted package directory.

    Args:
        root: Package directory.
        opts: Index options.

    Returns:
        Sorted list of file paths.
    """
    if not root.is_dir():
        return []

    matcher = build_ignore_matcher(root, opts.exclude_globs)
    max_bytes = int(opts.max_file_mb * 1024 * 1024)

    files: List[Path] = []
    for p in root.rglob("*"):
        if p.is_dir() or p.is_symlink() or p.name == MARKER_FILE:
            continue
        if not has_allowed_suffix(p, opts.declaration_ext):
            continue
        if matcher.matches(p):
            continue
        try:
            if p.stat().st_size > max_bytes:
                logger.debug("Skipping large file %s", p)
                continue
        except OSError:
            continue
        files.append(p)
    return sorted(files)


def load_sources(root: Path, files: List[Path], opts: IndexOptions) -> Generator[SourceFile, None, None]:
    """Load a list of files and yield SourceFile objects.

    Unreadable and binary files are logged and skipped.
    """
    max_bytes = int(opts.max_file_mb * 1024 * 1024)

    for p in files:
        try:
            content, enc = read_text_file(p, max_bytes)
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable file %s: %s", p, e)
            continue
        rel = str(p.relative_to(root)).replace("\\", "/")
        yield SourceFile(path=p, rel_path=rel, content=content, encoding=enc)
