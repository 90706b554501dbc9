"""Shared fixtures: an in-memory registry and a deterministic embedder."""

from __future__ import annotations

import re
import zlib
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pytest

from depdoc.config import Settings
from depdoc.embeddings.base import Embedder
from depdoc.errors import RegistryNotFoundError
from depdoc.registry.base import PackageManifest, RegistryClient

_TOKEN = re.compile(r"[a-z0-9]+")


class FakeEmbedder(Embedder):
    """Bag-of-words hashing embedder: shared words mean higher cosine."""

    model = "fake"

    def __init__(self, dim: int = 256) -> None:
        self.dim = dim
        self.calls: List[int] = []
        self.warm_ups = 0

    def warm_up(self) -> None:
        self.warm_ups += 1

    def embed(self, texts: List[str]) -> List[Sequence[float]]:
        self.calls.append(len(texts))
        out = []
        for t in texts:
            vec = [0.0] * self.dim
            for tok in _TOKEN.findall(t.lower()):
                vec[zlib.crc32(tok.encode("utf-8")) % self.dim] += 1.0
            out.append(vec)
        return out


class FakeRegistry(RegistryClient):
    """Registry serving packages from `{(name, version): {relpath: content}}`."""

    def __init__(self, packages: Dict[Tuple[str, str], Dict[str, str]]) -> None:
        self.packages = packages
        self.fetches: List[Tuple[str, str]] = []

    def _resolve(self, name: str, version: str) -> str:
        versions = [v for (n, v) in self.packages if n == name]
        if version == "latest" and versions:
            return max(versions, key=lambda v: tuple(int(x) for x in v.split(".")))
        if version in versions:
            return version
        raise RegistryNotFoundError(f"Not found: {name}@{version}")

    def fetch_manifest(self, name: str, version: str) -> PackageManifest:
        resolved = self._resolve(name, version)
        return PackageManifest(name=name, version=resolved)

    def fetch_and_extract(self, name: str, version: str, dest_dir: Path) -> None:
        resolved = self._resolve(name, version)
        self.fetches.append((name, resolved))
        for rel, content in self.packages[(name, resolved)].items():
            target = dest_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")


LEFT_PAD_DTS = """\
/**
 * Pad a string on the left.
 */
declare function leftPad(str: string | number, len: number, ch?: string | number): string;
declare namespace leftPad {}
export = leftPad;
"""

TRIM_DTS = """\
/** Remove whitespace from both ends of a string. */
export declare function trim(str: string): string;
"""

CIRCLE_DTS = """\
/** Draw a circle on the canvas at the given center with radius r. */
export declare function drawCircle(x: number, y: number, r: number): void;
"""

PACKAGE_JSON = '{"name": "x", "version": "1.0.0", "main": "index.js"}'


@pytest.fixture
def registry_packages() -> Dict[Tuple[str, str], Dict[str, str]]:
    return {
        ("left-pad", "1.3.0"): {"package.json": PACKAGE_JSON, "index.js": "module.exports = leftPad;", "index.d.ts": LEFT_PAD_DTS},
        ("trim-utils", "2.0.0"): {"package.json": PACKAGE_JSON, "index.d.ts": TRIM_DTS},
        ("circle-draw", "0.4.1"): {"package.json": PACKAGE_JSON, "index.d.ts": CIRCLE_DTS},
        ("no-types", "1.0.0"): {"package.json": PACKAGE_JSON, "index.js": "module.exports = {};"},
        ("untyped-trim", "1.0.0"): {"package.json": PACKAGE_JSON, "index.js": "module.exports = trim;"},
        ("@types/untyped-trim", "3.1.0"): {"package.json": PACKAGE_JSON, "index.d.ts": TRIM_DTS},
    }


@pytest.fixture
def fake_registry(registry_packages) -> FakeRegistry:
    return FakeRegistry(registry_packages)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(store_dir=tmp_path / "home")
