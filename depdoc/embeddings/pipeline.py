# depdoc/embeddings/pipeline.py
"""
Batched embedding of symbol documents and raw texts.

Inputs are split into fixed-size batches before calling the backend, to bound
request size and memory. Backend outputs are matched to inputs by position; a
batch that comes back with a different length is an error, never truncated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..errors import EmbeddingError
from ..models import PackageRef, SymbolDocument
from .base import Embedder

logger = logging.getLogger(__name__)


def mean_pool(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Element-wise mean of equally sized vectors.

    Args:
        vectors: Non-empty list of vectors.

    Returns:
        Pooled float32 vector.

    Raises:
        ValueError: If `vectors` is empty or ragged.
    """
    if not vectors:
        raise ValueError("No embeddings to pool")
    mat = np.asarray(vectors, dtype=np.float32)
    if mat.ndim != 2:
        raise ValueError("Embeddings have inconsistent dimensions")
    return mat.mean(axis=0)


class EmbeddingPipeline:
    """
    Runs an Embedder over batches.

    Attributes:
        embedder: Backend producing vectors.
        batch_size: Max texts per backend call.
    """

    def __init__(self, embedder: Embedder, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.embedder = embedder
        self.batch_size = batch_size

    async def embed_batch(
        self, documents: List[SymbolDocument], ref: Optional[PackageRef] = None
    ) -> List[Tuple[str, List[float]]]:
        """
        Embed symbol documents.

        Args:
            documents: Documents to embed (zero documents -> zero backend calls).
            ref: Owning package, attached to errors.

        Returns:
            (document id, vector) pairs in input order.

        Raises:
            EmbeddingError: On backend failure or a malformed batch.
        """
        vectors = await self.embed_texts([d.embedding_text() for d in documents], ref)
        return [(doc.id, vec) for doc, vec in zip(documents, vectors)]

    async def embed_texts(self, texts: List[str], ref: Optional[PackageRef] = None) -> List[List[float]]:
        """
        Embed raw texts in batches.

        Raises:
            EmbeddingError: On backend failure or a malformed batch.
        """
        out: List[List[float]] = []
        total = (len(texts) + self.batch_size - 1) // self.batch_size
        for n, start in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = texts[start:start + self.batch_size]
            out.extend(await self._embed_one_batch(batch, ref, n))
            logger.debug("Embedded batch %d of %d (%d texts)", n, total, len(batch))
        return out

    async def embed_query(self, query: str) -> List[float]:
        """
        Embed one search query.

        Raises:
            EmbeddingError: On backend failure.
        """
        vectors = await self._embed_one_batch([query], None, None)
        return vectors[0]

    async def _embed_one_batch(
        self, batch: List[str], ref: Optional[PackageRef], number: Optional[int]
    ) -> List[List[float]]:
        try:
            raw = await asyncio.to_thread(self.embedder.embed, batch)
        except Exception as e:
            raise EmbeddingError(ref, number, f"{type(e).__name__}: {e}") from e

        if raw is None or len(raw) != len(batch):
            got = 0 if raw is None else len(raw)
            raise EmbeddingError(ref, number, f"backend returned {got} vectors for {len(batch)} inputs")

        vectors = [[float(x) for x in v] for v in raw]
        dims = {len(v) for v in vectors}
        if len(dims) > 1 or 0 in dims:
            raise EmbeddingError(ref, number, f"backend returned vectors of dimensions {sorted(dims)}")
        return vectors
