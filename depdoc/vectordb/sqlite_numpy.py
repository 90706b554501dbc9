"""SQLite + NumPy vector store (local-first, zero extra services).

Storage:
  - Metadata + document text in SQLite
  - Embeddings as `.npy` files on disk (one per vector)
  - Index-wide facts (dimension, embedding model, strategy) in a `meta` table

Retrieval:
  - Loads vectors and computes cosine similarity in NumPy.
  - Ties keep insertion order (SQLite rowid order + stable sort).

All public methods take one lock, so a batch being written is never visible
to a concurrent search.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..errors import DimensionMismatchError, IncompatibleIndexError, VectorIndexError
from ..models import IndexedVector, PackageRef
from .base import SearchHit, VectorStore

logger = logging.getLogger(__name__)


def _ensure_db(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS vectors (
            vec_id TEXT PRIMARY KEY,
            package TEXT NOT NULL,
            metadata TEXT NOT NULL,
            document TEXT NOT NULL,
            emb_path TEXT NOT NULL
        );
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_vectors_package ON vectors(package);")
    cur.execute("CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);")
    conn.commit()


def _package_key(metadata: Dict) -> str:
    return f"{metadata.get('name')}@{metadata.get('version')}"


class SQLiteNumpyVectorStore(VectorStore):
    """Vector store implementation backed by SQLite + `.npy` files."""

    def __init__(self, store_dir: Path) -> None:
        self.store_dir = store_dir
        self.db_path = store_dir / "vectors.sqlite3"
        self.emb_dir = store_dir / "embeddings"
        self.emb_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            _ensure_db(self._conn)
        except sqlite3.Error as e:
            raise VectorIndexError(f"Cannot open vector index at {self.db_path}: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # meta

    def _get_meta(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def _set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO meta(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )

    @property
    def dimension(self) -> Optional[int]:
        """Dimensionality established by the first upsert, or None."""
        with self._lock:
            value = self._get_meta("dim")
        return int(value) if value is not None else None

    def ensure_compatible(self, model: str, strategy: str) -> None:
        """Record the model/strategy on first use; reject a different one later.

        Raises:
            IncompatibleIndexError: If the index was built differently.
        """
        with self._lock:
            for key, value in (("model", model), ("strategy", strategy)):
                existing = self._get_meta(key)
                if existing is None:
                    self._set_meta(key, value)
                elif existing != value:
                    raise IncompatibleIndexError(
                        f"Index at {self.store_dir} was built with {key}={existing!r}, not {value!r}. "
                        "Reset the index or use a separate store directory."
                    )
            self._conn.commit()

    # ------------------------------------------------------------------
    # writes

    def _emb_path(self, vec_id: str) -> Path:
        return self.emb_dir / f"{hashlib.sha1(vec_id.encode('utf-8')).hexdigest()}.npy"

    def _validate(self, vectors: List[IndexedVector]) -> List[np.ndarray]:
        dim = self.dimension
        arrays: List[np.ndarray] = []
        for v in vectors:
            emb = np.asarray(v.vector, dtype=np.float32)
            if emb.ndim != 1 or emb.size == 0:
                raise VectorIndexError(f"Vector for {v.id} is not a non-empty 1-D array")
            if dim is None:
                dim = int(emb.size)
            elif emb.size != dim:
                raise DimensionMismatchError(dim, int(emb.size))
            if not np.isfinite(emb).all() or float(np.linalg.norm(emb)) == 0.0:
                raise VectorIndexError(f"Vector for {v.id} is zero or non-finite; cosine similarity is undefined")
            arrays.append(emb)
        return arrays

    def _write(self, vectors: List[IndexedVector], replace: Optional[PackageRef] = None) -> int:
        """Stage vector files, then delete/insert rows in one transaction.

        Staged files are moved over their final paths only after the commit,
        and files of deleted rows are unlinked only after the commit, so a
        failure leaves both the rows and their vector bytes as they were.
        """
        with self._lock:
            arrays = self._validate(vectors)
            staged: List[Tuple[Path, Path]] = []
            old_paths: Set[str] = set()
            try:
                for v, emb in zip(vectors, arrays):
                    final = self._emb_path(v.id)
                    tmp = final.with_name(f"{final.stem}.tmp-{uuid.uuid4().hex[:8]}.npy")
                    staged.append((tmp, final))
                    np.save(str(tmp), emb)

                cur = self._conn.cursor()
                if replace is not None:
                    rows = cur.execute("SELECT emb_path FROM vectors WHERE package=?", (replace.key,)).fetchall()
                    old_paths = {r[0] for r in rows}
                    cur.execute("DELETE FROM vectors WHERE package=?", (replace.key,))
                for v, (_, final) in zip(vectors, staged):
                    cur.execute(
                        """
                        INSERT INTO vectors(vec_id, package, metadata, document, emb_path)
                        VALUES(?,?,?,?,?)
                        ON CONFLICT(vec_id) DO UPDATE SET
                            package=excluded.package,
                            metadata=excluded.metadata,
                            document=excluded.document,
                            emb_path=excluded.emb_path
                        """,
                        (v.id, _package_key(v.metadata), json.dumps(v.metadata), v.document, str(final)),
                    )
                if arrays and self._get_meta("dim") is None:
                    self._set_meta("dim", str(int(arrays[0].size)))
                self._conn.commit()
            except (sqlite3.Error, OSError) as e:
                self._conn.rollback()
                for tmp, _ in staged:
                    tmp.unlink(missing_ok=True)
                raise VectorIndexError(f"Failed to write vectors: {e}") from e

            for tmp, final in staged:
                os.replace(tmp, final)
            for stale in old_paths - {str(final) for _, final in staged}:
                Path(stale).unlink(missing_ok=True)
            return len(vectors)

    def upsert_vectors(self, vectors: List[IndexedVector]) -> int:
        """Upsert vectors into the store.

        The whole list is validated before anything is written.

        Args:
            vectors: Vectors with metadata (`name`/`version` identify the owning package).

        Returns:
            Number of vectors written.

        Raises:
            DimensionMismatchError: If a vector's size differs from the index's.
            VectorIndexError: On zero vectors or storage failures.
        """
        if not vectors:
            return 0
        return self._write(vectors)

    def delete_package(self, ref: PackageRef) -> int:
        """Delete all vectors owned by `ref`.

        Returns:
            Number of vectors removed.
        """
        with self._lock:
            rows = self._conn.execute("SELECT emb_path FROM vectors WHERE package=?", (ref.key,)).fetchall()
            self._conn.execute("DELETE FROM vectors WHERE package=?", (ref.key,))
            self._conn.commit()
            for (emb_path,) in rows:
                Path(emb_path).unlink(missing_ok=True)
            return len(rows)

    def replace_package(self, ref: PackageRef, vectors: List[IndexedVector]) -> int:
        """Swap a package's vectors for a new set in one transaction.

        On failure the package keeps its previous vectors.

        Raises:
            DimensionMismatchError: If a vector's size differs from the index's.
            VectorIndexError: On zero vectors or storage failures.
        """
        return self._write(vectors, replace=ref)

    # ------------------------------------------------------------------
    # reads

    def _iter_all_embeddings(self):
        cur = self._conn.cursor()
        for row in cur.execute("SELECT vec_id, metadata, document, emb_path FROM vectors ORDER BY rowid"):
            yield row

    def search(self, query_vec: Sequence[float], top_k: int = 10) -> List[SearchHit]:
        """Rank stored vectors by cosine similarity to `query_vec`.

        Raises:
            DimensionMismatchError: If the query's size differs from the index's.
            VectorIndexError: If the query is the zero vector.
        """
        q = np.asarray(query_vec, dtype=np.float32)
        qnorm = float(np.linalg.norm(q))
        if qnorm == 0.0:
            raise VectorIndexError("Query vector is zero; cosine similarity is undefined")
        if int(top_k) <= 0:
            return []

        with self._lock:
            dim = self.dimension
            if dim is None:
                return []
            if q.size != dim:
                raise DimensionMismatchError(dim, int(q.size))

            hits: List[SearchHit] = []
            for (vec_id, metadata, document, emb_path) in self._iter_all_embeddings():
                try:
                    v = np.load(emb_path).astype(np.float32)
                except (OSError, ValueError) as e:
                    logger.warning("Skipping unreadable vector %s: %s", vec_id, e)
                    continue
                score = float(np.dot(q, v) / (qnorm * float(np.linalg.norm(v))))
                hits.append(SearchHit(id=vec_id, score=score, metadata=json.loads(metadata), document=document))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[: int(top_k)]

    def ids_for_package(self, ref: PackageRef) -> List[str]:
        with self._lock:
            rows = self._conn.execute("SELECT vec_id FROM vectors WHERE package=? ORDER BY rowid", (ref.key,))
            return [r[0] for r in rows.fetchall()]

    def stats(self) -> dict:
        with self._lock:
            cur = self._conn.cursor()
            n = cur.execute("SELECT COUNT(*) FROM vectors").fetchone()[0]
            pkgs = cur.execute("SELECT COUNT(DISTINCT package) FROM vectors").fetchone()[0]
            return {
                "vectors": int(n),
                "packages": int(pkgs),
                "dim": self._get_meta("dim"),
                "model": self._get_meta("model"),
                "strategy": self._get_meta("strategy"),
                "db_path": str(self.db_path),
                "emb_dir": str(self.emb_dir),
            }

    def reset(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("DROP TABLE IF EXISTS vectors")
            cur.execute("DROP TABLE IF EXISTS meta")
            self._conn.commit()
            _ensure_db(self._conn)
            for p in self.emb_dir.glob("*.npy"):
                p.unlink(missing_ok=True)
