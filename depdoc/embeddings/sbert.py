# depdoc/embeddings/sbert.py
"""SentenceTransformers embedding backend (optional extra `st`)."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from .base import Embedder

logger = logging.getLogger(__name__)


class SentenceTransformersEmbedder(Embedder):
    """
    Local embeddings via `sentence-transformers`.

    The model is loaded in `warm_up` (or on first use), which the dependency
    context runs once in a worker thread.
    """

    def __init__(self, model_name: str = "BAAI/bge-base-en-v1.5", device: Optional[str] = None) -> None:
        self.model = model_name
        self.device = device
        self._model: Any = None

    def warm_up(self) -> None:
        """
        Load the model.

        Raises:
            RuntimeError: If sentence-transformers is not installed.
        """
        if self._model is not None:
            return
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore
        except ImportError as e:
            raise RuntimeError("sentence-transformers is not installed. Install with `pip install depdoc[st]`.") from e
        logger.info("Loading sentence-transformers model %s", self.model)
        self._model = SentenceTransformer(self.model, device=self.device)

    def embed(self, texts: List[str]) -> List[Sequence[float]]:
        if not texts:
            return []
        self.warm_up()
        return self._model.encode(list(texts), normalize_embeddings=True, show_progress_bar=False).tolist()
