"""Vector store interfaces.

A vector store is responsible for:
  - Storing vectors with their metadata and document text
  - Searching for the most similar vectors for a query embedding
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from ..models import IndexedVector, PackageRef


@dataclass
class SearchHit:
    """A retrieved vector with cosine similarity score."""

    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    document: str = ""


class VectorStore:
    """Vector store interface."""

    def ensure_compatible(self, model: str, strategy: str) -> None:
        """Bind the store to an embedding model and strategy, or reject a mismatch."""
        raise NotImplementedError

    def upsert_vectors(self, vectors: List[IndexedVector]) -> int:
        """Insert or update vectors.

        Returns:
            Number of vectors written.
        """
        raise NotImplementedError

    def search(self, query_vec: Sequence[float], top_k: int) -> List[SearchHit]:
        """Search similar vectors for a query embedding."""
        raise NotImplementedError

    def delete_package(self, ref: PackageRef) -> int:
        """Delete every vector owned by a package."""
        raise NotImplementedError

    def stats(self) -> dict:
        """Return basic stats about the store."""
        raise NotImplementedError

    def reset(self) -> None:
        """Delete all stored data."""
        raise NotImplementedError
