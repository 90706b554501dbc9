"""
npm registry client.

Talks to the public registry HTTP API:
  - GET {registry}/{name}/{version}  -> version manifest (version may be a dist-tag)
  - GET manifest["dist"]["tarball"]  -> gzipped tarball with a `package/` wrapper

Scoped names are requested as `@scope%2fname`.
"""

from __future__ import annotations

import logging
import tarfile
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Dict

import requests

from ..errors import RegistryError, RegistryNotFoundError
from .base import PackageManifest, RegistryClient

logger = logging.getLogger(__name__)


def types_package_name(name: str) -> str:
    """
    Return the conventional declarations-only package for `name`.

    Args:
        name: Package name (`lodash`, `@babel/core`).

    Returns:
        `@types/lodash`, `@types/babel__core`.
    """
    if name.startswith("@"):
        scope, _, pkg = name[1:].partition("/")
        return f"@types/{scope}__{pkg}"
    return f"@types/{name}"


def extract_tarball(archive: Path, dest_dir: Path) -> int:
    """
    Extract a gzipped package tarball, stripping its top-level directory.

    Only regular files and directories are written; links and members that
    would escape `dest_dir` are skipped.

    Args:
        archive: Path to the `.tgz` file.
        dest_dir: Destination directory (created if missing).

    Returns:
        Number of files written.

    Raises:
        tarfile.TarError: If the archive is corrupt.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    written = 0
    with tarfile.open(archive, mode="r:gz") as tar:
        for member in tar:
            parts = PurePosixPath(member.name).parts[1:]
            if not parts or any(p in ("..", "") for p in parts) or PurePosixPath(member.name).is_absolute():
                continue
            target = dest_dir.joinpath(*parts)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            if not member.isfile():
                continue
            src = tar.extractfile(member)
            if src is None:
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with src, open(target, "wb") as out:
                out.write(src.read())
            written += 1
    return written


class NpmRegistryClient(RegistryClient):
    """
    Registry client for npm-compatible registries.

    Attributes:
        registry_url: Registry base URL.
        timeout: HTTP timeout seconds.
    """

    def __init__(self, registry_url: str = "https://registry.npmjs.org", timeout: int = 60) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()

    def _manifest_url(self, name: str, version: str) -> str:
        return f"{self.registry_url}/{name.replace('/', '%2f')}/{version}"

    def _get(self, url: str, **kwargs: Any) -> requests.Response:
        try:
            r = self._session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RegistryError(f"GET {url} failed: {e}") from e
        if r.status_code == 404:
            raise RegistryNotFoundError(f"Not found: {url}")
        if not 200 <= r.status_code < 300:
            raise RegistryError(f"GET {url} returned HTTP {r.status_code}")
        return r

    def _manifest_json(self, name: str, version: str) -> Dict[str, Any]:
        r = self._get(self._manifest_url(name, version))
        try:
            data = r.json()
        except ValueError as e:
            raise RegistryError(f"Malformed manifest for {name}@{version}") from e
        if not isinstance(data, dict):
            raise RegistryError(f"Malformed manifest for {name}@{version}")
        return data

    def fetch_manifest(self, name: str, version: str) -> PackageManifest:
        return PackageManifest.from_json(self._manifest_json(name, version), name, version)

    def fetch_and_extract(self, name: str, version: str, dest_dir: Path) -> None:
        data = self._manifest_json(name, version)
        tarball = (data.get("dist") or {}).get("tarball")
        if not isinstance(tarball, str):
            raise RegistryError(f"Manifest for {name}@{version} has no dist.tarball")

        logger.debug("Downloading %s", tarball)
        with tempfile.TemporaryDirectory(prefix="depdoc-") as tmp:
            archive = Path(tmp) / "package.tgz"
            r = self._get(tarball, stream=True)
            try:
                with open(archive, "wb") as fh:
                    for block in r.iter_content(chunk_size=1 << 16):
                        fh.write(block)
            except requests.RequestException as e:
                raise RegistryError(f"Download of {tarball} failed: {e}") from e
            finally:
                r.close()

            try:
                n = extract_tarball(archive, dest_dir)
            except (tarfile.TarError, EOFError, OSError) as e:
                raise RegistryError(f"Corrupt archive for {name}@{version}: {e}") from e
        logger.debug("Extracted %d files from %s@%s into %s", n, name, version, dest_dir)
