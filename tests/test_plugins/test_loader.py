"""Tests for tack.plugins.loader.PluginLoader.

Covers:
- Discovery across the bundled and local tiers, local overriding bundled
- Discovery cache hits, misses and persistence
- Tolerance of broken candidates
- load_by_name resolution order, including the registry tier
- Byte loaders re-reading files on every call
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import pytest

from conftest import FakeRuntime, make_manifest, write_plugin
from tack.cache.discovery import DiscoveryCache
from tack.exceptions import LoadError, NotFoundError
from tack.models import SourceKind
from tack.plugins.loader import PluginLoader
from tack.plugins.registry import RegistryResolver


class _StubRegistry(RegistryResolver):
    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.references: list[str] = []

    def fetch(self, reference: str, timeout: Optional[float] = None) -> Path:
        self.references.append(reference)
        name = reference.rsplit("/", 1)[-1].split(":", 1)[0]
        return write_plugin(self.directory, f"{name}@latest.wasm", make_manifest(name))


@pytest.fixture()
def dirs(tmp_path: Path) -> dict[str, Path]:
    local = tmp_path / "plugins"
    bundled = tmp_path / "bundled"
    local.mkdir()
    bundled.mkdir()
    return {"local": local, "bundled": bundled, "cache": tmp_path / "cache.json"}


@pytest.fixture()
def loader(dirs, runtime_factory) -> PluginLoader:
    return PluginLoader(
        dirs["local"],
        runtime_factory,
        bundled_dir=dirs["bundled"],
        cache_path=dirs["cache"],
    )


class TestDiscoverAll:
    def test_empty(self, loader: PluginLoader) -> None:
        assert loader.discover_all() == []

    def test_missing_directories(self, tmp_path, runtime_factory) -> None:
        loader = PluginLoader(
            tmp_path / "nope", runtime_factory, bundled_dir=tmp_path / "also-nope"
        )
        assert loader.discover_all() == []

    def test_merges_tiers_sorted_by_name(self, loader, dirs) -> None:
        write_plugin(dirs["bundled"], "zeta.wasm", make_manifest("zeta"))
        write_plugin(dirs["local"], "alpha.wasm", make_manifest("alpha"))

        plugins = loader.discover_all()
        assert [p.name for p in plugins] == ["alpha", "zeta"]
        assert plugins[0].source is SourceKind.LOCAL
        assert plugins[1].source is SourceKind.BUNDLED
        assert plugins[1].path == "bundled://plugins/zeta.wasm"

    def test_local_overrides_bundled(self, loader, dirs) -> None:
        write_plugin(dirs["bundled"], "dns.wasm", make_manifest("dns", version="1.0.0"))
        write_plugin(dirs["local"], "dns.wasm", make_manifest("dns", version="2.0.0"))

        (plugin,) = loader.discover_all()
        assert plugin.source is SourceKind.LOCAL
        assert plugin.manifest.version == "2.0.0"

    def test_name_comes_from_manifest(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "whatever.wasm", make_manifest("dns"))
        assert [p.name for p in loader.discover_all()] == ["dns"]

    def test_ignores_other_files(self, loader, dirs) -> None:
        (dirs["local"] / "notes.txt").write_text("hi")
        write_plugin(dirs["local"], "dns.wasm")
        assert [p.name for p in loader.discover_all()] == ["dns"]

    def test_unversioned_file_wins_within_tier(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "dns@1.0.0.wasm", make_manifest("dns", version="1.0.0"))
        write_plugin(dirs["local"], "dns.wasm", make_manifest("dns", version="dev"))
        (plugin,) = loader.discover_all()
        assert plugin.manifest.version == "dev"

    def test_broken_plugin_is_skipped(self, loader, dirs, caplog) -> None:
        write_plugin(dirs["local"], "bad.wasm", broken=True)
        write_plugin(dirs["local"], "dns.wasm")

        plugins = loader.discover_all()
        assert [p.name for p in plugins] == ["dns"]
        assert "bad.wasm" in caplog.text

    def test_nameless_manifest_is_skipped(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "anon.wasm", make_manifest(""))
        assert loader.discover_all() == []

    def test_loader_rereads_bytes(self, loader, dirs) -> None:
        path = write_plugin(dirs["local"], "dns.wasm")
        (plugin,) = loader.discover_all()
        first = plugin.loader()
        path.write_bytes(b"changed")
        assert plugin.loader() == b"changed"
        assert first != b"changed"


class TestDiscoveryCache:
    def test_second_run_reads_no_binaries(self, loader, dirs, fake_runtime: FakeRuntime) -> None:
        write_plugin(dirs["local"], "dns.wasm")
        write_plugin(dirs["bundled"], "ping.wasm", make_manifest("ping"))

        loader.discover_all()
        assert fake_runtime.loads == 2
        assert dirs["cache"].is_file()

        plugins = loader.discover_all()
        assert fake_runtime.loads == 2
        assert [p.name for p in plugins] == ["dns", "ping"]

    def test_modified_file_is_reparsed(self, loader, dirs, fake_runtime: FakeRuntime) -> None:
        path = write_plugin(dirs["local"], "dns.wasm", make_manifest("dns", version="1.0.0"))
        loader.discover_all()

        write_plugin(dirs["local"], "dns.wasm", make_manifest("dns", version="1.0.1-beta"))
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))

        (plugin,) = loader.discover_all()
        assert fake_runtime.loads == 2
        assert plugin.manifest.version == "1.0.1-beta"

    def test_cache_keys(self, loader, dirs) -> None:
        local = write_plugin(dirs["local"], "dns.wasm")
        write_plugin(dirs["bundled"], "ping.wasm", make_manifest("ping"))
        loader.discover_all()

        cache = DiscoveryCache.load(dirs["cache"])
        assert str(local.resolve()) in cache
        assert "bundled://plugins/ping.wasm" in cache

    def test_unchanged_cache_is_not_rewritten(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "dns.wasm")
        loader.discover_all()
        before = dirs["cache"].stat().st_mtime_ns
        dirs["cache"].write_text(dirs["cache"].read_text())
        touched = dirs["cache"].stat().st_mtime_ns

        loader.discover_all()
        assert dirs["cache"].stat().st_mtime_ns == touched
        assert touched >= before

    def test_scan_without_persistence(self, dirs, runtime_factory) -> None:
        write_plugin(dirs["local"], "dns.wasm")
        loader = PluginLoader(dirs["local"], runtime_factory, bundled_dir=None)
        cache = DiscoveryCache()

        assert [p.name for p in loader.scan(cache)] == ["dns"]
        assert cache.changed is True
        assert not dirs["cache"].exists()


class TestLoadByName:
    def test_exact_local_file(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "dns.wasm")
        plugin = loader.load_by_name("dns")
        assert plugin.source is SourceKind.LOCAL
        assert plugin.path == str((dirs["local"] / "dns.wasm").resolve())

    def test_greatest_versioned_file(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "dns@1.0.0.wasm", make_manifest("dns", version="1.0.0"))
        write_plugin(dirs["local"], "dns@1.2.0.wasm", make_manifest("dns", version="1.2.0"))
        assert loader.load_by_name("dns").manifest.version == "1.2.0"

    def test_exact_file_beats_versioned(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "dns@9.0.0.wasm", make_manifest("dns", version="9.0.0"))
        write_plugin(dirs["local"], "dns.wasm", make_manifest("dns", version="dev"))
        assert loader.load_by_name("dns").manifest.version == "dev"

    def test_bundled_fallback(self, loader, dirs) -> None:
        write_plugin(dirs["bundled"], "dns.wasm")
        plugin = loader.load_by_name("dns")
        assert plugin.source is SourceKind.BUNDLED
        assert plugin.path == "bundled://plugins/dns.wasm"

    def test_not_found_without_registry(self, loader) -> None:
        with pytest.raises(NotFoundError, match="plugin 'ghost' not found"):
            loader.load_by_name("ghost")

    def test_registry_fallback(self, dirs, runtime_factory) -> None:
        registry = _StubRegistry(dirs["local"])
        loader = PluginLoader(
            dirs["local"],
            runtime_factory,
            bundled_dir=dirs["bundled"],
            registry=registry,
            default_registry="ghcr.io/acme/plugins",
        )
        plugin = loader.load_by_name("ping")
        assert registry.references == ["ghcr.io/acme/plugins/ping:latest"]
        assert plugin.source is SourceKind.REGISTRY
        assert plugin.name == "ping"

    def test_local_tier_skips_registry(self, dirs, runtime_factory) -> None:
        write_plugin(dirs["local"], "dns.wasm")
        registry = _StubRegistry(dirs["local"])
        loader = PluginLoader(dirs["local"], runtime_factory, bundled_dir=None, registry=registry)
        loader.load_by_name("dns")
        assert registry.references == []

    def test_broken_plugin_raises_load_error(self, loader, dirs) -> None:
        write_plugin(dirs["local"], "bad.wasm", broken=True)
        with pytest.raises(LoadError):
            loader.load_by_name("bad")


class TestReadManifest:
    def test_instance_is_closed(self, loader, dirs, fake_runtime: FakeRuntime) -> None:
        path = write_plugin(dirs["local"], "dns.wasm")
        loader.read_manifest(path.read_bytes())
        assert fake_runtime.closed == 1

    def test_invalid_manifest(self, loader, dirs) -> None:
        path = write_plugin(dirs["local"], "odd.wasm", manifest={"version": "1"})
        with pytest.raises(LoadError, match="could not read plugin manifest"):
            loader.read_manifest(path.read_bytes())
