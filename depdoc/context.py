"""Dependency documentation context.

`DependencyContext` is the object the rest of an application talks to. It
owns the package map, the resolver, the extractor, the embedding pipeline and
the vector index, and is constructed once and passed around.

    ctx = DependencyContext(settings)
    await ctx.add_packages([PackageRef("left-pad", "1.3.0")])
    results = await ctx.search_context("pad a string on the left")

Pipeline per package: resolve -> extract -> embed -> upsert. Packages run
concurrently; stages within one package run in order.

Strategies (one per index, recorded in it):
  - "symbol":  one vector per SymbolDocument; search returns SymbolDocuments.
  - "package": one pooled vector per package; search returns PackageInfo.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import Settings
from .embeddings.base import Embedder
from .embeddings.pipeline import EmbeddingPipeline, mean_pool
from .errors import AddPackagesError, DepdocError
from .extract.symbols import SymbolExtractor, dedupe_documents
from .ingest.scanner import load_sources
from .models import (
    DeclarationSource,
    IndexedVector,
    PackageInfo,
    PackageRef,
    SymbolDocument,
    SymbolMetadata,
)
from .registry.base import RegistryClient
from .registry.npm import NpmRegistryClient
from .resolver import PackageResolver, ResolvedPackage
from .vectordb.base import SearchHit
from .vectordb.sqlite_numpy import SQLiteNumpyVectorStore

logger = logging.getLogger(__name__)

SearchResult = Union[PackageInfo, SymbolDocument]


def make_embedder(embedder: str, ollama_host: str, embed_model: str, timeout: int = 180) -> Embedder:
    """
    Create an embedding backend from options.

    Args:
        embedder: "ollama" or "sbert".
        ollama_host: Ollama base URL.
        embed_model: Model name (Ollama tag or HuggingFace id).
        timeout: HTTP timeout seconds (Ollama only).

    Returns:
        Embedder instance.

    Raises:
        ValueError: If embedder is unknown.
    """
    if embedder == "ollama":
        from .embeddings.ollama import OllamaEmbedder

        return OllamaEmbedder(host=ollama_host, model=embed_model, timeout=timeout)
    if embedder == "sbert":
        from .embeddings.sbert import SentenceTransformersEmbedder

        return SentenceTransformersEmbedder(model_name=embed_model)
    raise ValueError(f"Unknown embedder: {embedder}")


def _is_zero(vector: Sequence[float]) -> bool:
    return not any(vector)


class DependencyContext:
    """
    Search engine over the declarations of npm dependencies.

    Attributes:
        settings: Store location and option groups.
        strategy: "symbol" or "package".
    """

    def __init__(
        self,
        settings: Settings,
        embedder: Optional[Union[Embedder, Callable[[], Embedder]]] = None,
        registry: Optional[RegistryClient] = None,
    ) -> None:
        """
        Args:
            settings: Loaded settings.
            embedder: Embedder, or a zero-argument factory called during
                initialization (model loading can be slow). Defaults to the
                backend named in `settings.backend`.
            registry: Registry client. Defaults to the npm registry.
        """
        self.settings = settings
        self.strategy = settings.index.strategy
        self.layout = settings.layout

        backend = settings.backend
        self._embedder_source = embedder or (
            lambda: make_embedder(backend.embedder, backend.ollama_host, backend.embed_model, backend.request_timeout)
        )
        self.registry = registry or NpmRegistryClient(backend.registry_url, timeout=backend.request_timeout)
        self.resolver = PackageResolver(self.layout, self.registry, settings.index)
        self.extractor = SymbolExtractor()

        self.pipeline: Optional[EmbeddingPipeline] = None
        self.store: Optional[SQLiteNumpyVectorStore] = None
        self._packages: Dict[str, PackageInfo] = self._load_manifest()
        self._manifest_lock = asyncio.Lock()
        self._init_task: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # initialization

    async def ensure_initialized(self) -> None:
        """Start initialization once and wait for it; later callers share the same task."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        await self._init_task

    async def _initialize(self) -> None:
        try:
            await asyncio.to_thread(self.layout.ensure)
            embedder = await asyncio.to_thread(self._build_embedder)
            await asyncio.to_thread(embedder.warm_up)
            self.pipeline = EmbeddingPipeline(embedder, batch_size=self.settings.index.batch_size)

            store = await asyncio.to_thread(SQLiteNumpyVectorStore, self.layout.index_dir)
            try:
                await asyncio.to_thread(store.ensure_compatible, embedder.model, self.strategy)
            except DepdocError:
                store.close()
                raise
            self.store = store
            logger.info(
                "Initialized depdoc (strategy=%s, model=%s, %d known packages)",
                self.strategy,
                embedder.model,
                len(self._packages),
            )
        except Exception:
            logger.error("Failed to initialize dependency context")
            raise

    def _build_embedder(self) -> Embedder:
        if isinstance(self._embedder_source, Embedder):
            return self._embedder_source
        return self._embedder_source()

    async def close(self) -> None:
        """Release the index connection."""
        if self.store is not None:
            await asyncio.to_thread(self.store.close)
            self.store = None
        self._init_task = None

    # ------------------------------------------------------------------
    # manifest

    def _load_manifest(self) -> Dict[str, PackageInfo]:
        path = self.layout.manifest_path
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", path, e)
            return {}
        packages: Dict[str, PackageInfo] = {}
        for name, payload in (data.get("packages") or {}).items():
            try:
                packages[name] = PackageInfo.from_dict(payload)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed manifest entry %s: %s", name, e)
        return packages

    def _write_manifest(self, snapshot: Dict[str, PackageInfo]) -> None:
        path: Path = self.layout.manifest_path
        payload = {"strategy": self.strategy, "packages": {k: v.to_dict() for k, v in snapshot.items()}}
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(path)

    async def _record(self, info: PackageInfo) -> None:
        async with self._manifest_lock:
            self._packages[info.name] = info
            await asyncio.to_thread(self._write_manifest, dict(self._packages))

    # ------------------------------------------------------------------
    # adding packages

    async def add_package(self, name: str, version: str) -> PackageInfo:
        """
        Resolve, extract, embed and index one package.

        Re-adding the same name/version replaces its previous vectors, so the
        set of stored ids is the same after any number of calls.

        Args:
            name: Package name.
            version: Package version.

        Returns:
            The stored PackageInfo.

        Raises:
            AcquisitionError: If the package cannot be fetched.
            EmbeddingError: If the embedding backend fails.
            VectorIndexError: If the index rejects the vectors.
        """
        await self.ensure_initialized()
        ref = PackageRef(name=name, version=version)
        try:
            resolved = await self.resolver.resolve_package(ref)
            sources = await asyncio.to_thread(self._read_sources, resolved)
            declaration_source = None
            if resolved.declaration_ref is not None and sources:
                declaration_source = DeclarationSource(
                    name=resolved.declaration_ref.name,
                    version=resolved.declaration_ref.version,
                    content=[content for _, content in sources],
                )

            if self.strategy == "package":
                info = await self._index_pooled(ref, sources, declaration_source)
            else:
                info = await self._index_symbols(ref, sources, declaration_source)
        except DepdocError:
            logger.error("Failed to add package %s", ref.key)
            raise

        await self._record(info)
        logger.info("Package %s added (%d documents)", ref.key, info.documents)
        return info

    def _read_sources(self, resolved: ResolvedPackage) -> List[Tuple[str, str]]:
        return [
            (src.rel_path, src.content)
            for src in load_sources(resolved.path, resolved.declaration_files, self.settings.index)
        ]

    def _extract_all(self, ref: PackageRef, sources: List[Tuple[str, str]]) -> List[SymbolDocument]:
        documents: List[SymbolDocument] = []
        for rel_path, content in sources:
            documents.extend(self.extractor.extract(rel_path, content, ref))
        return dedupe_documents(documents)

    async def _index_symbols(
        self,
        ref: PackageRef,
        sources: List[Tuple[str, str]],
        declaration_source: Optional[DeclarationSource],
    ) -> PackageInfo:
        assert self.pipeline is not None and self.store is not None
        documents = await asyncio.to_thread(self._extract_all, ref, sources)
        by_id = {d.id: d for d in documents}

        pairs = await self.pipeline.embed_batch(documents, ref)
        vectors: List[IndexedVector] = []
        for doc_id, vec in pairs:
            if _is_zero(vec):
                logger.warning("Skipping zero embedding for %s", doc_id)
                continue
            doc = by_id[doc_id]
            vectors.append(IndexedVector(id=doc_id, vector=vec, metadata=doc.metadata.to_dict(), document=doc.content))

        written = await asyncio.to_thread(self.store.replace_package, ref, vectors)
        return PackageInfo(
            name=ref.name,
            version=ref.version,
            declaration_source=declaration_source,
            documents=written,
        )

    async def _index_pooled(
        self,
        ref: PackageRef,
        sources: List[Tuple[str, str]],
        declaration_source: Optional[DeclarationSource],
    ) -> PackageInfo:
        assert self.pipeline is not None and self.store is not None
        texts = [content for _, content in sources if content.strip()]
        info = PackageInfo(name=ref.name, version=ref.version, declaration_source=declaration_source)
        if not texts:
            await asyncio.to_thread(self.store.delete_package, ref)
            return info

        vectors = await self.pipeline.embed_texts(texts, ref)
        pooled = mean_pool(vectors)
        if _is_zero(pooled):
            logger.warning("Pooled embedding for %s is zero; not indexing it", ref.key)
            await asyncio.to_thread(self.store.delete_package, ref)
            return info

        info.embedding = [float(x) for x in pooled]
        metadata = {"name": ref.name, "version": ref.version}
        if declaration_source is not None:
            metadata["declarations"] = declaration_source.name
        vec = IndexedVector(id=ref.key, vector=info.embedding, metadata=metadata, document=ref.key)
        info.documents = await asyncio.to_thread(self.store.replace_package, ref, [vec])
        return info

    async def add_packages(
        self,
        packages: Sequence[Union[PackageRef, Dict[str, str]]],
        on_done: Optional[Callable[[PackageRef], None]] = None,
    ) -> List[PackageInfo]:
        """
        Add several packages concurrently.

        Every package runs to completion; failures are collected and raised
        together afterwards.

        Args:
            packages: PackageRefs or `{"name": ..., "version": ...}` dicts.
            on_done: Called with each ref when its pipeline finishes (success or not).

        Returns:
            PackageInfo for each package, in input order.

        Raises:
            AddPackagesError: If any package failed; `failures` lists them.
        """
        await self.ensure_initialized()
        refs = [p if isinstance(p, PackageRef) else PackageRef(p["name"], p["version"]) for p in packages]

        async def run(ref: PackageRef) -> PackageInfo:
            try:
                return await self.add_package(ref.name, ref.version)
            finally:
                if on_done is not None:
                    on_done(ref)

        results = await asyncio.gather(*(run(ref) for ref in refs), return_exceptions=True)

        failures: List[Tuple[PackageRef, BaseException]] = []
        added: List[PackageInfo] = []
        for ref, result in zip(refs, results):
            if isinstance(result, BaseException):
                failures.append((ref, result))
            else:
                added.append(result)
        if failures:
            raise AddPackagesError(failures)
        return added

    # ------------------------------------------------------------------
    # search

    async def search(self, query: str, top_k: Optional[int] = None) -> List[SearchHit]:
        """
        Embed `query` once and return the top-k scored hits.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            VectorIndexError: On dimension mismatch or a zero query vector.
        """
        await self.ensure_initialized()
        assert self.pipeline is not None and self.store is not None
        k = top_k if top_k is not None else self.settings.runtime.top_k
        vec = await self.pipeline.embed_query(query)
        return await asyncio.to_thread(self.store.search, vec, k)

    async def search_context(self, query: str, top_k: Optional[int] = None) -> List[SearchResult]:
        """
        Search for packages/symbols relevant to `query`.

        Returns:
            SymbolDocuments (symbol strategy) or PackageInfo (package
            strategy), most relevant first.
        """
        return self.results_for(await self.search(query, top_k))

    def results_for(self, hits: List[SearchHit]) -> List[SearchResult]:
        """Map scored hits to SymbolDocuments or PackageInfo, keeping their order."""
        if self.strategy == "package":
            out: List[SearchResult] = []
            for h in hits:
                info = self._packages.get(h.metadata.get("name", ""))
                if info is None or info.version != h.metadata.get("version"):
                    info = PackageInfo(name=h.metadata["name"], version=h.metadata["version"])
                out.append(info)
            return out
        return [
            SymbolDocument(id=h.id, metadata=SymbolMetadata.from_dict(h.metadata), content=h.document)
            for h in hits
        ]

    # ------------------------------------------------------------------
    # lookups

    def get_package_info(self, name: str) -> Optional[PackageInfo]:
        """Return the PackageInfo stored for `name`, if any."""
        return self._packages.get(name)

    def get_all_packages(self) -> Dict[str, PackageInfo]:
        """Return a copy of all known packages keyed by name."""
        return dict(self._packages)
