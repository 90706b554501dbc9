# depdoc/ingest/ignore_rules.py
"""Ignore rules for package tree scanning."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import pathspec


@dataclass
class IgnoreMatcher:
    """
    Matches package files that should be excluded from indexing.

    Patterns use gitignore syntax and are evaluated relative to `root`.
    """

    root: Path
    exclude_globs: List[str]
    _spec: pathspec.PathSpec = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", self.exclude_globs)

    def matches(self, path: Path) -> bool:
        """
        Return True if the given path should be ignored.

        Args:
            path: File path under `root`.

        Returns:
            True if excluded by a pattern.
        """
        rel = str(path.relative_to(self.root)).replace("\\", "/")
        return self._spec.match_file(rel)


def build_ignore_matcher(root: Path, exclude_globs: List[str]) -> IgnoreMatcher:
    """
    Create an IgnoreMatcher for a package directory.

    Args:
        root: Package root.
        exclude_globs: Gitignore-style patterns to ignore.

    Returns:
        IgnoreMatcher instance.
    """
    return IgnoreMatcher(root=root, exclude_globs=list(exclude_globs))
