# depdoc/embeddings/ollama.py
"""
Ollama embedding backend.

Endpoints:
  - POST /api/embed       {"model", "input": [...]} -> {"embeddings": [[...], ...]}
  - POST /api/embeddings  {"model", "prompt": "..."} -> {"embedding": [...]}  (legacy, one text per call)

Declaration files can be very large, so each text is truncated to
`max_chars` before sending; a legacy call failing with 5xx is retried with
the text halved (never below `min_chars`).

Env vars:
  - DEPDOC_EMBED_MAX_CHARS (default 4000)
  - DEPDOC_EMBED_MIN_CHARS (default 800)
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, List, Optional, Sequence

import requests

from .base import Embedder

logger = logging.getLogger(__name__)

_MAX_SHRINKS = 4


def check_ollama(host: str = "http://localhost:11434", timeout: int = 3) -> bool:
    """
    Return True if Ollama answers on `host`.

    Args:
        host: Base URL.
        timeout: Timeout seconds.
    """
    base = host.rstrip("/")
    for path in ("/api/version", "/api/tags"):
        try:
            r = requests.get(base + path, timeout=timeout)
        except requests.RequestException:
            continue
        if r.ok:
            return True
    return False


def _vectors_from(data: Any) -> Optional[List[List[float]]]:
    """Pull vectors out of either response shape, None if there are none."""
    if not isinstance(data, dict):
        return None
    many = data.get("embeddings")
    if isinstance(many, list) and many and all(isinstance(v, list) and v for v in many):
        return many
    one = data.get("embedding")
    if isinstance(one, list) and one:
        return [one]
    return None


class OllamaEmbedder(Embedder):
    """
    Embeddings from a local Ollama server.

    Attributes:
        host: Ollama base URL.
        model: Embedding model tag (recorded in the index).
        timeout: HTTP timeout seconds.
        max_chars: Truncation limit per text.
        min_chars: Floor when shrinking a text on retries.
    """

    def __init__(self, host: str, model: str, timeout: int = 180) -> None:
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_chars = int(os.getenv("DEPDOC_EMBED_MAX_CHARS", "4000"))
        self.min_chars = int(os.getenv("DEPDOC_EMBED_MIN_CHARS", "800"))
        self._session = requests.Session()

    def warm_up(self) -> None:
        """
        Raises:
            ConnectionError: If Ollama is not running.
        """
        if not check_ollama(self.host):
            raise ConnectionError(f"Ollama is not reachable at {self.host}. Start it with `ollama serve`.")

    def _prepare(self, text: str) -> str:
        text = str(text).replace("\x00", "").replace("\r\n", "\n")
        if self.max_chars > 0 and len(text) > self.max_chars:
            text = text[: self.max_chars]
        return text

    def _embed_batch(self, texts: List[str]) -> Optional[List[List[float]]]:
        """One /api/embed call; None when the endpoint is missing or the reply unusable."""
        try:
            r = self._session.post(
                f"{self.host}/api/embed",
                json={"model": self.model, "input": texts},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.debug("/api/embed request failed: %s", e)
            return None
        if not r.ok:
            logger.debug("/api/embed returned HTTP %d", r.status_code)
            return None
        try:
            vectors = _vectors_from(r.json())
        except ValueError:
            return None
        if vectors is None or len(vectors) != len(texts):
            return None
        return vectors

    def _embed_one(self, text: str) -> List[float]:
        """Legacy single-text call, halving the text on server errors."""
        cur = text
        attempt = 0
        while True:
            r = self._session.post(
                f"{self.host}/api/embeddings",
                json={"model": self.model, "prompt": cur},
                timeout=self.timeout,
            )
            if r.ok:
                vectors = _vectors_from(r.json())
                if not vectors:
                    raise ValueError(f"Ollama returned no embedding for model {self.model}")
                return vectors[0]
            if r.status_code >= 500 and len(cur) > self.min_chars and attempt < _MAX_SHRINKS:
                attempt += 1
                time.sleep(0.5 * attempt)
                cur = cur[: max(self.min_chars, len(cur) // 2)]
                logger.debug("Retrying embedding with %d chars", len(cur))
                continue
            raise requests.HTTPError(
                f"Ollama embeddings failed (HTTP {r.status_code}, model {self.model}, host {self.host}). "
                f"Lower DEPDOC_EMBED_MAX_CHARS for large declaration files. Response: {r.text[:500]}",
                response=r,
            )

    def embed(self, texts: List[str]) -> List[Sequence[float]]:
        """
        Embed texts, batch endpoint first, legacy endpoint per text otherwise.

        Raises:
            requests.RequestException: On persistent HTTP failures.
            ValueError: On empty embeddings.
        """
        if not texts:
            return []
        prepared = [self._prepare(t) for t in texts]
        vectors = self._embed_batch(prepared)
        if vectors is not None:
            return vectors
        logger.debug("Falling back to /api/embeddings for %d texts", len(prepared))
        return [self._embed_one(t) for t in prepared]
