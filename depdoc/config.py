"""Configuration models and path helpers.

This module centralizes:
  - Store layout (package cache, vector index, manifest)
  - Default declaration extensions / exclude patterns
  - Index/runtime/backend options

Terminology:
  - Package store: extracted npm tarballs, one directory per name/version.
  - Index: local vector data produced by depdoc (embeddings + metadata).
  - Strategy: "symbol" (one vector per symbol) or "package" (one pooled vector).

Precedence: dataclass defaults < `<home>/settings.json` < `DEPDOC_*` env vars.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


DEFAULT_DECLARATION_EXT: List[str] = [
    ".d.ts", ".d.mts", ".d.cts", ".ts", ".mts", ".cts", ".tsx",
]

DEFAULT_EXCLUDE_GLOBS: List[str] = [
    "node_modules/",
    "**/__tests__/**",
    "**/*.test.ts",
    "**/*.spec.ts",
    "**/*.min.js",
    "**/*.map",
]

STRATEGIES = ("symbol", "package")

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
DEFAULT_SETTINGS_FILE = "settings.json"


@dataclass
class StoreLayout:
    """Defines where depdoc stores its local data."""

    base_dir: Path

    @property
    def packages_dir(self) -> Path:
        return self.base_dir / "packages"

    @property
    def index_dir(self) -> Path:
        return self.base_dir / "index"

    @property
    def manifest_path(self) -> Path:
        return self.base_dir / "manifest.json"

    def package_dir(self, name: str, version: str) -> Path:
        """Return the cache directory for one package version.

        Scoped names (`@scope/pkg`) become nested directories.
        """
        return self.packages_dir.joinpath(*name.split("/")) / version

    def ensure(self) -> Path:
        """Create required directories and return the base dir."""
        self.packages_dir.mkdir(parents=True, exist_ok=True)
        self.index_dir.mkdir(parents=True, exist_ok=True)
        return self.base_dir


def default_store_dir() -> Path:
    """Compute the default storage directory (`DEPDOC_HOME` or `~/.depdoc`)."""
    env = os.getenv("DEPDOC_HOME")
    if env:
        return Path(env).expanduser().resolve()
    return Path.home() / ".depdoc"


@dataclass
class IndexOptions:
    """Options for scanning packages and building the index."""

    declaration_ext: List[str] = field(default_factory=lambda: list(DEFAULT_DECLARATION_EXT))
    exclude_globs: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_GLOBS))
    max_file_mb: float = 2.0
    batch_size: int = 100
    strategy: str = "symbol"  # "symbol" | "package"


@dataclass
class RuntimeOptions:
    """Runtime options for retrieval."""

    top_k: int = 10


@dataclass
class BackendOptions:
    """Backend selection for embeddings and the package registry."""

    embedder: str = "ollama"  # "ollama" | "sbert"
    embed_model: str = "nomic-embed-text"
    ollama_host: str = "http://localhost:11434"
    registry_url: str = DEFAULT_REGISTRY_URL
    request_timeout: int = 60


@dataclass
class Settings:
    """All option groups plus the store location."""

    store_dir: Path = field(default_factory=default_store_dir)
    index: IndexOptions = field(default_factory=IndexOptions)
    runtime: RuntimeOptions = field(default_factory=RuntimeOptions)
    backend: BackendOptions = field(default_factory=BackendOptions)

    @property
    def layout(self) -> StoreLayout:
        return StoreLayout(base_dir=self.store_dir)


def _apply_settings_file(settings: Settings, path: Path) -> None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return
    if not isinstance(payload, dict):
        return

    idx = settings.index
    declaration_ext = payload.get("declaration_ext")
    if isinstance(declaration_ext, list) and all(isinstance(x, str) for x in declaration_ext):
        idx.declaration_ext = declaration_ext

    exclude_globs = payload.get("exclude_globs")
    if isinstance(exclude_globs, list) and all(isinstance(x, str) for x in exclude_globs):
        idx.exclude_globs = exclude_globs

    if isinstance(payload.get("max_file_mb"), (int, float)):
        idx.max_file_mb = float(payload["max_file_mb"])

    if isinstance(payload.get("batch_size"), int):
        idx.batch_size = payload["batch_size"]

    if payload.get("strategy") in STRATEGIES:
        idx.strategy = payload["strategy"]

    if isinstance(payload.get("top_k"), int):
        settings.runtime.top_k = payload["top_k"]

    backend = settings.backend
    for key in ("embedder", "embed_model", "ollama_host", "registry_url"):
        if isinstance(payload.get(key), str):
            setattr(backend, key, payload[key])
    if isinstance(payload.get("request_timeout"), int):
        backend.request_timeout = payload["request_timeout"]


def _apply_env(settings: Settings) -> None:
    idx = settings.index
    if os.getenv("DEPDOC_BATCH_SIZE"):
        idx.batch_size = int(os.environ["DEPDOC_BATCH_SIZE"])
    if os.getenv("DEPDOC_STRATEGY"):
        idx.strategy = os.environ["DEPDOC_STRATEGY"]
    if os.getenv("DEPDOC_TOP_K"):
        settings.runtime.top_k = int(os.environ["DEPDOC_TOP_K"])

    backend = settings.backend
    backend.embedder = os.getenv("DEPDOC_EMBEDDER", backend.embedder)
    backend.embed_model = os.getenv("DEPDOC_EMBED_MODEL", backend.embed_model)
    backend.ollama_host = os.getenv("DEPDOC_OLLAMA_HOST", backend.ollama_host)
    backend.registry_url = os.getenv("DEPDOC_REGISTRY", backend.registry_url)
    if os.getenv("DEPDOC_REQUEST_TIMEOUT"):
        backend.request_timeout = int(os.environ["DEPDOC_REQUEST_TIMEOUT"])


def load_settings(store_dir: Optional[Path] = None) -> Settings:
    """Load settings for a store directory.

    Args:
        store_dir: Optional override of the store directory.

    Returns:
        Settings with defaults overridden by `settings.json` and env vars.

    Raises:
        ValueError: If the resulting strategy is unknown.
    """
    settings = Settings()
    if store_dir is not None:
        settings.store_dir = Path(store_dir).expanduser().resolve()

    settings_path = settings.store_dir / DEFAULT_SETTINGS_FILE
    if settings_path.exists():
        _apply_settings_file(settings, settings_path)
    _apply_env(settings)

    if settings.index.strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {settings.index.strategy!r} (expected one of {STRATEGIES})")
    return settings
