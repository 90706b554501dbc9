"""Registry client interface."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class PackageManifest:
    """The parts of a version manifest depdoc cares about.

    Attributes:
        name: Package name.
        version: Concrete version the requested version/tag resolved to.
        declarations_entry: The manifest's `types`/`typings` entry, if any.
    """

    name: str
    version: str
    declarations_entry: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any], name: str, version: str) -> "PackageManifest":
        """Build from a `package.json`-shaped dict, falling back to the requested name and version."""
        entry = data.get("types") or data.get("typings")
        return cls(
            name=data.get("name", name),
            version=data.get("version", version),
            declarations_entry=entry if isinstance(entry, str) else None,
        )


class RegistryClient:
    """Registry client interface."""

    def fetch_manifest(self, name: str, version: str) -> PackageManifest:
        """Return the manifest for `name@version`.

        Raises:
            RegistryNotFoundError: If the package or version does not exist.
            RegistryError: On any other registry failure.
        """
        raise NotImplementedError

    def fetch_and_extract(self, name: str, version: str, dest_dir: Path) -> None:
        """Download the package tarball and extract it into `dest_dir`.

        The tarball's single top-level wrapper directory is stripped.

        Raises:
            RegistryNotFoundError: If the package or version does not exist.
            RegistryError: On network, HTTP or archive failures.
        """
        raise NotImplementedError
