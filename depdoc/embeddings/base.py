# depdoc/embeddings/base.py
"""Embedding interfaces."""

from __future__ import annotations

from typing import List, Sequence


class Embedder:
    """
    Embedder interface for turning text into vectors.

    Attributes:
        model: Model identifier recorded in the index, so one index is never
            filled by two different models.
    """

    model: str = "unknown"

    def warm_up(self) -> None:
        """
        Verify the backend is usable (reachable server, loaded model).

        Called once from the shared initialization step. Default: no-op.
        """

    def embed(self, texts: List[str]) -> List[Sequence[float]]:
        """
        Return embeddings for each input text.

        Args:
            texts: List of input strings.

        Returns:
            List of vectors aligned to `texts`.

        Raises:
            NotImplementedError: If not implemented.
        """
        raise NotImplementedError
