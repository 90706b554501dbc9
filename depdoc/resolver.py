"""Package resolution: registry fetch, extraction and declaration fallback.

A package is cached under `<home>/packages/<name>/<version>`. Extraction goes
to a temporary sibling directory that is renamed into place once complete, so
an interrupted download never leaves a half-written cache entry behind.

When a package ships no declaration files, the declarations-only package
`@types/<name>` is fetched (same version, else its `latest` tag) and its
declaration files are merged into the package directory without overwriting
anything. The origin is remembered in a `.depdoc.json` marker.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import IndexOptions, StoreLayout
from .errors import AcquisitionError, DepdocError, RegistryError, RegistryNotFoundError
from .ingest.scanner import MARKER_FILE, list_declaration_files
from .models import PackageRef
from .registry.base import PackageManifest, RegistryClient
from .registry.npm import types_package_name

logger = logging.getLogger(__name__)


@dataclass
class ResolvedPackage:
    """A package available on disk.

    Attributes:
        ref: Requested package.
        path: Package directory.
        declaration_files: Declaration files found (after any fallback merge).
        declaration_ref: Package the declarations came from, None if there are none.
    """

    ref: PackageRef
    path: Path
    declaration_files: List[Path] = field(default_factory=list)
    declaration_ref: Optional[PackageRef] = None


def _read_marker(pkg_dir: Path) -> Optional[PackageRef]:
    p = pkg_dir / MARKER_FILE
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
        src = data["declarations"]
        return PackageRef(name=src["name"], version=src["version"])
    except (OSError, ValueError, KeyError, TypeError):
        logger.warning("Ignoring unreadable marker %s", p)
        return None


def _write_marker(pkg_dir: Path, source: PackageRef) -> None:
    payload = {"declarations": {"name": source.name, "version": source.version}}
    (pkg_dir / MARKER_FILE).write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _check_declarations_entry(ref: PackageRef, pkg_dir: Path) -> None:
    """Warn when `package.json` names a `types`/`typings` entry that is not on disk."""
    p = pkg_dir / "package.json"
    if not p.exists():
        return
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Skipping unreadable %s: %s", p, e)
        return
    if not isinstance(data, dict):
        return
    entry = PackageManifest.from_json(data, ref.name, ref.version).declarations_entry
    if not entry:
        return
    target = pkg_dir / entry
    # extensionless entries resolve like TypeScript does
    candidates = (target, Path(f"{target}.d.ts"), target / "index.d.ts")
    if not any(c.is_file() for c in candidates):
        logger.warning("Declarations entry %r of %s points at a missing file", entry, ref.key)


class PackageResolver:
    """Ensures package files exist locally.

    Attributes:
        layout: Store layout (package cache location).
        registry: Registry client.
        opts: Index options (declaration extensions, excludes, size cap).
    """

    def __init__(self, layout: StoreLayout, registry: RegistryClient, opts: IndexOptions) -> None:
        self.layout = layout
        self.registry = registry
        self.opts = opts
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, ref: PackageRef) -> asyncio.Lock:
        lock = self._locks.get(ref.key)
        if lock is None:
            lock = self._locks[ref.key] = asyncio.Lock()
        return lock

    async def resolve(self, ref: PackageRef) -> Path:
        """Ensure `ref` is extracted locally and return its directory."""
        resolved = await self.resolve_package(ref)
        return resolved.path

    async def resolve_package(self, ref: PackageRef) -> ResolvedPackage:
        """Ensure `ref` is extracted locally, with declarations if obtainable.

        Concurrent calls for the same ref are serialized; the second caller
        finds the cache populated by the first.

        Raises:
            AcquisitionError: If the primary package cannot be fetched.
        """
        async with self._lock_for(ref):
            return await asyncio.to_thread(self._resolve_sync, ref)

    def _resolve_sync(self, ref: PackageRef) -> ResolvedPackage:
        pkg_dir = self.layout.package_dir(ref.name, ref.version)

        if pkg_dir.exists():
            logger.info("Package %s already cached at %s", ref.key, pkg_dir)
        else:
            logger.info("Downloading package %s...", ref.key)
            self._fetch_into(ref, pkg_dir)
            logger.info("Package %s extracted to %s", ref.key, pkg_dir)
            _check_declarations_entry(ref, pkg_dir)

        files = list_declaration_files(pkg_dir, self.opts)
        if files:
            source = _read_marker(pkg_dir) or ref
            logger.info("Found %d declaration files for %s", len(files), ref.key)
            return ResolvedPackage(ref=ref, path=pkg_dir, declaration_files=files, declaration_ref=source)

        if ref.name.startswith("@types/"):
            logger.warning("No declaration files found in %s", ref.key)
            return ResolvedPackage(ref=ref, path=pkg_dir)

        logger.info("No declaration files in %s, trying %s", ref.key, types_package_name(ref.name))
        merged, types_ref = self._merge_types_fallback(ref, pkg_dir)
        if not merged or types_ref is None:
            logger.warning("No declaration files found for %s (package or fallback)", ref.key)
            return ResolvedPackage(ref=ref, path=pkg_dir)

        _write_marker(pkg_dir, types_ref)
        files = list_declaration_files(pkg_dir, self.opts)
        return ResolvedPackage(ref=ref, path=pkg_dir, declaration_files=files, declaration_ref=types_ref)

    def _fetch_into(self, ref: PackageRef, dest: Path) -> None:
        """Extract `ref` into `dest` through a temporary sibling directory.

        Raises:
            AcquisitionError: On registry, network or filesystem failure.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.parent / f".{dest.name}.partial-{uuid.uuid4().hex[:8]}"
        try:
            self.registry.fetch_and_extract(ref.name, ref.version, tmp)
            if dest.exists():
                # Another process finished first; keep its copy.
                return
            tmp.rename(dest)
        except (RegistryError, OSError) as e:
            raise AcquisitionError(ref, str(e)) from e
        finally:
            if tmp.exists():
                shutil.rmtree(tmp, ignore_errors=True)

    def _locate_types_package(self, ref: PackageRef) -> PackageRef:
        types_name = types_package_name(ref.name)
        try:
            manifest = self.registry.fetch_manifest(types_name, ref.version)
        except RegistryNotFoundError:
            logger.info("%s@%s not published, using latest", types_name, ref.version)
            manifest = self.registry.fetch_manifest(types_name, "latest")
        return PackageRef(name=types_name, version=manifest.version)

    def _merge_types_fallback(self, ref: PackageRef, pkg_dir: Path) -> Tuple[int, Optional[PackageRef]]:
        """Fetch `@types/<name>` and copy its declarations into `pkg_dir`.

        Failures are logged and reported as zero merged files.

        Returns:
            (number of files merged, declarations package ref or None).
        """
        try:
            types_ref = self._locate_types_package(ref)
            types_dir = self.layout.package_dir(types_ref.name, types_ref.version)
            if types_dir.exists():
                logger.info("%s already cached at %s", types_ref.key, types_dir)
            else:
                logger.info("Downloading %s...", types_ref.key)
                self._fetch_into(types_ref, types_dir)
        except DepdocError as e:
            logger.warning("Declaration fallback for %s failed: %s", ref.key, e)
            return 0, None

        types_files = list_declaration_files(types_dir, self.opts)
        if not types_files:
            logger.warning("No declaration files found in %s either", types_ref.key)
            return 0, None

        merged = 0
        for src in types_files:
            target = pkg_dir / src.relative_to(types_dir)
            if target.exists():
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, target)
            except OSError as e:
                logger.warning("Could not merge %s into %s: %s", src, target, e)
                continue
            merged += 1
            logger.debug("Merged declaration file %s", target)
        logger.info("Merged %d declaration files from %s into %s", merged, types_ref.key, ref.key)
        return merged, types_ref
