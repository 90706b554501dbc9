import asyncio
import json

import pytest

from depdoc.config import IndexOptions
from depdoc.errors import AcquisitionError
from depdoc.models import PackageRef
from depdoc.resolver import PackageResolver


@pytest.fixture
def resolver(settings, fake_registry):
    return PackageResolver(settings.layout, fake_registry, IndexOptions())


@pytest.mark.asyncio
async def test_package_with_bundled_declarations(resolver, settings):
    ref = PackageRef("left-pad", "1.3.0")
    resolved = await resolver.resolve_package(ref)

    assert resolved.path == settings.layout.package_dir("left-pad", "1.3.0")
    assert [p.name for p in resolved.declaration_files] == ["index.d.ts"]
    assert resolved.declaration_ref == ref


@pytest.mark.asyncio
async def test_cached_package_is_not_fetched_again(resolver, fake_registry):
    ref = PackageRef("trim-utils", "2.0.0")
    await resolver.resolve(ref)
    await resolver.resolve(ref)

    assert fake_registry.fetches == [("trim-utils", "2.0.0")]


@pytest.mark.asyncio
async def test_concurrent_resolution_fetches_once(resolver, fake_registry):
    ref = PackageRef("trim-utils", "2.0.0")
    paths = await asyncio.gather(*(resolver.resolve(ref) for _ in range(4)))

    assert len(set(paths)) == 1
    assert fake_registry.fetches == [("trim-utils", "2.0.0")]


@pytest.mark.asyncio
async def test_types_fallback_uses_latest_when_version_missing(resolver, fake_registry, settings):
    resolved = await resolver.resolve_package(PackageRef("untyped-trim", "1.0.0"))

    assert resolved.declaration_ref == PackageRef("@types/untyped-trim", "3.1.0")
    assert [p.name for p in resolved.declaration_files] == ["index.d.ts"]
    assert resolved.declaration_files[0].parent == settings.layout.package_dir("untyped-trim", "1.0.0")
    assert ("@types/untyped-trim", "3.1.0") in fake_registry.fetches


@pytest.mark.asyncio
async def test_fallback_origin_survives_cache_hit(settings, fake_registry):
    ref = PackageRef("untyped-trim", "1.0.0")
    await PackageResolver(settings.layout, fake_registry, IndexOptions()).resolve_package(ref)

    resolved = await PackageResolver(settings.layout, fake_registry, IndexOptions()).resolve_package(ref)

    assert resolved.declaration_ref == PackageRef("@types/untyped-trim", "3.1.0")


def test_merge_never_overwrites_package_files(resolver, settings, fake_registry, registry_packages):
    registry_packages[("@types/untyped-trim", "3.1.0")]["extra/util.d.ts"] = "export declare const x: number;"
    ref = PackageRef("untyped-trim", "1.0.0")
    pkg_dir = settings.layout.package_dir(ref.name, ref.version)
    pkg_dir.mkdir(parents=True)
    (pkg_dir / "index.d.ts").write_text("// shipped by the package", encoding="utf-8")

    merged, types_ref = resolver._merge_types_fallback(ref, pkg_dir)

    assert merged == 1
    assert types_ref == PackageRef("@types/untyped-trim", "3.1.0")
    assert (pkg_dir / "index.d.ts").read_text(encoding="utf-8") == "// shipped by the package"
    assert (pkg_dir / "extra" / "util.d.ts").exists()


@pytest.mark.asyncio
async def test_missing_fallback_degrades_to_no_declarations(resolver, caplog):
    caplog.set_level("WARNING", logger="depdoc")
    resolved = await resolver.resolve_package(PackageRef("no-types", "1.0.0"))

    assert resolved.declaration_files == []
    assert resolved.declaration_ref is None
    assert "No declaration files found" in caplog.text


@pytest.mark.asyncio
async def test_primary_fetch_failure_raises_and_leaves_no_partial_dir(resolver, settings):
    ref = PackageRef("does-not-exist", "0.0.1")
    with pytest.raises(AcquisitionError) as excinfo:
        await resolver.resolve_package(ref)

    assert excinfo.value.ref == ref
    parent = settings.layout.package_dir(ref.name, ref.version).parent
    assert not list(parent.glob(".*partial*"))


@pytest.mark.asyncio
async def test_types_entry_pointing_at_missing_file_is_reported(resolver, registry_packages, caplog):
    registry_packages[("moved-types", "1.0.0")] = {
        "package.json": json.dumps({"name": "moved-types", "version": "1.0.0", "types": "dist/index.d.ts"}),
        "lib/index.d.ts": "export declare function moved(): void;",
    }
    caplog.set_level("WARNING", logger="depdoc")

    resolved = await resolver.resolve_package(PackageRef("moved-types", "1.0.0"))

    assert [p.name for p in resolved.declaration_files] == ["index.d.ts"]
    assert "'dist/index.d.ts' of moved-types@1.0.0 points at a missing file" in caplog.text


@pytest.mark.asyncio
async def test_extensionless_types_entry_is_accepted(resolver, registry_packages, caplog):
    registry_packages[("short-entry", "1.0.0")] = {
        "package.json": json.dumps({"name": "short-entry", "version": "1.0.0", "typings": "types/main"}),
        "types/main.d.ts": "export declare const ok: boolean;",
    }
    caplog.set_level("WARNING", logger="depdoc")

    await resolver.resolve_package(PackageRef("short-entry", "1.0.0"))

    assert "points at a missing file" not in caplog.text
