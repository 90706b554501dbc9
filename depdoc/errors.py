"""Exception hierarchy.

File-level and fallback-level problems are logged and recovered where they
happen; everything defined here that reaches a caller is fatal for the
package, batch or index operation named in the message.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .models import PackageRef


class DepdocError(Exception):
    """Base class for all depdoc errors."""


class RegistryError(DepdocError):
    """The package registry could not serve a request."""


class RegistryNotFoundError(RegistryError):
    """The registry has no such package or version (HTTP 404)."""


class AcquisitionError(DepdocError):
    """Downloading or extracting a package failed."""

    def __init__(self, ref: PackageRef, message: str) -> None:
        super().__init__(f"Failed to acquire {ref.key}: {message}")
        self.ref = ref


class ExtractionError(DepdocError):
    """A source file could not be read or parsed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Failed to extract symbols from {path}: {message}")
        self.path = path


class EmbeddingError(DepdocError):
    """The embedding backend failed or returned a malformed batch."""

    def __init__(self, ref: Optional[PackageRef], batch: Optional[int], message: str) -> None:
        where = ref.key if ref else "<query>"
        if batch is not None:
            where = f"{where} (batch {batch})"
        super().__init__(f"Embedding failed for {where}: {message}")
        self.ref = ref
        self.batch = batch


class VectorIndexError(DepdocError):
    """The vector index rejected an operation or is unavailable."""


class DimensionMismatchError(VectorIndexError):
    """A vector's dimensionality differs from the index's."""

    def __init__(self, expected: int, got: int) -> None:
        super().__init__(f"Vector dimension {got} does not match index dimension {expected}")
        self.expected = expected
        self.got = got


class IncompatibleIndexError(VectorIndexError):
    """The index was built with a different embedding model or strategy."""


class AddPackagesError(DepdocError):
    """One or more packages failed in `add_packages`."""

    def __init__(self, failures: List[Tuple[PackageRef, BaseException]]) -> None:
        names = ", ".join(ref.key for ref, _ in failures)
        super().__init__(f"{len(failures)} package(s) failed: {names}")
        self.failures = failures
