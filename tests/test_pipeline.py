import numpy as np
import pytest

from depdoc.embeddings.base import Embedder
from depdoc.embeddings.pipeline import EmbeddingPipeline, mean_pool
from depdoc.errors import EmbeddingError
from depdoc.models import ExportKind, PackageRef, SymbolDocument, SymbolKind, SymbolMetadata

REF = PackageRef("big-lib", "1.0.0")


def _docs(n):
    out = []
    for i in range(n):
        meta = SymbolMetadata(
            name=REF.name,
            version=REF.version,
            kind=SymbolKind.FUNCTION,
            filepath="index.d.ts",
            export_kind=ExportKind.NAMED,
        )
        out.append(SymbolDocument(id=f"{REF.key}/index.d.ts#function_f{i}_{i * 10}", metadata=meta, content=f"function f{i}(): void"))
    return out


class ShortEmbedder(Embedder):
    """Drops the last vector of every batch."""

    def embed(self, texts):
        return [[1.0, 0.0] for _ in texts[:-1]]


class FailingEmbedder(Embedder):
    def embed(self, texts):
        raise ConnectionError("backend down")


@pytest.mark.asyncio
async def test_documents_are_embedded_in_fixed_size_batches(fake_embedder):
    pipeline = EmbeddingPipeline(fake_embedder, batch_size=100)
    docs = _docs(250)

    pairs = await pipeline.embed_batch(docs, REF)

    assert fake_embedder.calls == [100, 100, 50]
    assert [doc_id for doc_id, _ in pairs] == [d.id for d in docs]
    assert all(len(vec) == fake_embedder.dim for _, vec in pairs)


@pytest.mark.asyncio
async def test_zero_documents_make_no_backend_calls(fake_embedder):
    pipeline = EmbeddingPipeline(fake_embedder, batch_size=100)

    assert await pipeline.embed_batch([], REF) == []
    assert fake_embedder.calls == []


@pytest.mark.asyncio
async def test_length_mismatch_is_an_error():
    pipeline = EmbeddingPipeline(ShortEmbedder(), batch_size=3)

    with pytest.raises(EmbeddingError) as excinfo:
        await pipeline.embed_batch(_docs(5), REF)

    assert excinfo.value.ref == REF
    assert excinfo.value.batch == 1


@pytest.mark.asyncio
async def test_backend_failure_names_package():
    pipeline = EmbeddingPipeline(FailingEmbedder())

    with pytest.raises(EmbeddingError, match="big-lib@1.0.0"):
        await pipeline.embed_texts(["anything"], REF)


def test_invalid_batch_size():
    with pytest.raises(ValueError):
        EmbeddingPipeline(FailingEmbedder(), batch_size=0)


def test_mean_pool():
    pooled = mean_pool([[1.0, 2.0], [3.0, 4.0]])

    np.testing.assert_allclose(pooled, [2.0, 3.0])
    with pytest.raises(ValueError):
        mean_pool([])
