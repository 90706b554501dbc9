import asyncio
import logging

import pytest

from conftest import LEFT_PAD_DTS, FakeEmbedder
from depdoc.context import DependencyContext
from depdoc.errors import AcquisitionError, AddPackagesError, IncompatibleIndexError
from depdoc.models import PackageInfo, PackageRef, SymbolDocument, SymbolKind


@pytest.fixture
def make_context(settings, fake_registry, fake_embedder):
    contexts = []

    def _make(**overrides):
        ctx = DependencyContext(
            overrides.pop("settings", settings),
            embedder=overrides.pop("embedder", fake_embedder),
            registry=overrides.pop("registry", fake_registry),
        )
        contexts.append(ctx)
        return ctx

    yield _make
    for ctx in contexts:
        if ctx.store is not None:
            ctx.store.close()


@pytest.mark.asyncio
async def test_add_package_indexes_symbols(make_context):
    ctx = make_context()

    info = await ctx.add_package("left-pad", "1.3.0")

    assert info.documents == 1
    assert info.declaration_source.name == "left-pad"
    assert "leftPad" in info.declaration_source.content[0]
    assert ctx.get_package_info("left-pad") == info
    assert ctx.store.ids_for_package(PackageRef("left-pad", "1.3.0"))[0].startswith(
        "left-pad@1.3.0/index.d.ts#function_leftPad_"
    )


@pytest.mark.asyncio
async def test_re_adding_a_package_is_idempotent(make_context):
    ctx = make_context()
    ref = PackageRef("left-pad", "1.3.0")

    await ctx.add_package(ref.name, ref.version)
    first = ctx.store.ids_for_package(ref)
    await ctx.add_package(ref.name, ref.version)

    assert ctx.store.ids_for_package(ref) == first
    assert ctx.store.stats()["vectors"] == len(first)


@pytest.mark.asyncio
async def test_package_without_declarations_adds_zero_documents(make_context, caplog):
    caplog.set_level(logging.WARNING, logger="depdoc")
    ctx = make_context()

    info = await ctx.add_package("no-types", "1.0.0")

    assert info.documents == 0
    assert info.declaration_source is None
    assert "No declaration files found" in caplog.text


@pytest.mark.asyncio
async def test_relevant_package_ranks_first(make_context):
    ctx = make_context()
    await ctx.add_packages([PackageRef("circle-draw", "0.4.1"), PackageRef("trim-utils", "2.0.0")])

    results = await ctx.search_context("remove whitespace from a string", top_k=2)

    assert all(isinstance(r, SymbolDocument) for r in results)
    assert results[0].metadata.name == "trim-utils"
    assert results[0].metadata.kind == SymbolKind.FUNCTION
    assert results[1].metadata.name == "circle-draw"


@pytest.mark.asyncio
async def test_results_for_maps_hits_without_embedding_again(make_context, fake_embedder):
    ctx = make_context()
    await ctx.add_packages([PackageRef("circle-draw", "0.4.1"), PackageRef("trim-utils", "2.0.0")])
    fake_embedder.calls.clear()

    hits = await ctx.search("remove whitespace from a string", top_k=2)
    results = ctx.results_for(hits)

    assert fake_embedder.calls == [1]
    assert [r.id for r in results] == [h.id for h in hits]
    assert results[0].content == hits[0].document


@pytest.mark.asyncio
async def test_declarations_fallback_is_recorded(make_context):
    ctx = make_context()

    info = await ctx.add_package("untyped-trim", "1.0.0")

    assert info.documents == 1
    assert info.declaration_source.name == "@types/untyped-trim"
    assert info.declaration_source.version == "3.1.0"
    ids = ctx.store.ids_for_package(PackageRef("untyped-trim", "1.0.0"))
    assert ids[0].startswith("untyped-trim@1.0.0/index.d.ts#function_trim_")


@pytest.mark.asyncio
async def test_add_packages_reports_every_failure(make_context):
    ctx = make_context()
    done = []

    with pytest.raises(AddPackagesError) as excinfo:
        await ctx.add_packages(
            [
                {"name": "trim-utils", "version": "2.0.0"},
                {"name": "ghost", "version": "1.0.0"},
                {"name": "phantom", "version": "2.0.0"},
            ],
            on_done=done.append,
        )

    failures = excinfo.value.failures
    assert [ref.name for ref, _ in failures] == ["ghost", "phantom"]
    assert all(isinstance(err, AcquisitionError) for _, err in failures)
    assert len(done) == 3
    assert ctx.get_package_info("trim-utils") is not None
    assert ctx.get_package_info("ghost") is None


@pytest.mark.asyncio
async def test_initialization_runs_once(make_context):
    calls = []

    def factory():
        calls.append(1)
        return FakeEmbedder()

    ctx = make_context(embedder=factory)
    await asyncio.gather(*(ctx.ensure_initialized() for _ in range(5)))
    await ctx.add_packages([PackageRef("trim-utils", "2.0.0"), PackageRef("circle-draw", "0.4.1")])

    assert calls == [1]


@pytest.mark.asyncio
async def test_package_strategy_returns_package_info(make_context, settings):
    settings.index.strategy = "package"
    ctx = make_context(settings=settings)
    await ctx.add_packages([PackageRef("circle-draw", "0.4.1"), PackageRef("trim-utils", "2.0.0")])

    results = await ctx.search_context("remove whitespace from a string")

    assert all(isinstance(r, PackageInfo) for r in results)
    assert results[0].name == "trim-utils"
    assert results[0].embedding is not None
    assert ctx.store.ids_for_package(PackageRef("trim-utils", "2.0.0")) == ["trim-utils@2.0.0"]


@pytest.mark.asyncio
async def test_index_built_with_another_strategy_is_rejected(make_context, settings):
    ctx = make_context()
    await ctx.add_package("trim-utils", "2.0.0")
    await ctx.close()

    settings.index.strategy = "package"
    other = make_context(settings=settings)

    with pytest.raises(IncompatibleIndexError):
        await other.ensure_initialized()


@pytest.mark.asyncio
async def test_manifest_is_reloaded(make_context, settings):
    ctx = make_context()
    await ctx.add_package("left-pad", "1.3.0")
    await ctx.close()

    reopened = make_context()

    assert set(reopened.get_all_packages()) == {"left-pad"}
    assert reopened.get_package_info("left-pad").documents == 1


def test_duplicate_sources_yield_one_document(make_context):
    ctx = make_context()
    ref = PackageRef("left-pad", "1.3.0")

    docs = ctx._extract_all(ref, [("index.d.ts", LEFT_PAD_DTS), ("index.d.ts", LEFT_PAD_DTS)])

    assert len(docs) == 1
