"""Package registry clients."""

from .base import PackageManifest, RegistryClient
from .npm import NpmRegistryClient, extract_tarball, types_package_name

__all__ = [
    "PackageManifest",
    "RegistryClient",
    "NpmRegistryClient",
    "extract_tarball",
    "types_package_name",
]
