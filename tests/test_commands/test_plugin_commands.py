"""Tests for ``tack plugin`` -- list, info, install, remove, refresh, search."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import StubRegistry, make_manifest, write_plugin
from tack.cache.discovery import DiscoveryCache
from tack.config import get_discovery_cache_path
from tack.exceptions import InvalidUsageError, NotFoundError
from tack.models import DEFAULT_REGISTRY, GlobalConfig, GroupConfig
from tack.plugins.index import IndexEntry, SearchHit


@pytest.fixture
def installed(plugins_dir: Path) -> Path:
    write_plugin(plugins_dir, "dns.wasm")
    write_plugin(plugins_dir, "dns@0.9.0.wasm")
    write_plugin(plugins_dir, "http.wasm", make_manifest("http", version="2.1.0"))
    return plugins_dir


class TestList:
    def test_empty(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "list"])
        assert result.exit_code == 0
        assert "No plugins installed." in result.output
        assert "tack plugin install" in result.output

    def test_json(self, installed, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["-o", "json", "plugin", "list"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == [
            {"Name": "dns", "Version": "1.0.0", "Source": "local", "Description": "DNS lookups"},
            {"Name": "http", "Version": "2.1.0", "Source": "local", "Description": "DNS lookups"},
        ]

    def test_quiet_prints_names(self, installed, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["-o", "quiet", "plugin", "list"])
        assert result.output.split() == ["dns", "http"]


class TestInfo:
    def test_json_record(self, installed, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["-o", "json", "plugin", "info", "dns"])
        assert result.exit_code == 0, result.output
        record = json.loads(result.output)
        assert record["name"] == "dns"
        assert record["source"] == "local"
        assert record["services"] == {"dns": ["resolve"]}
        assert record["capabilities"] == []
        assert record["path"] == str((installed / "dns.wasm").resolve())

    def test_table(self, installed, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "info", "dns"])
        assert result.exit_code == 0
        assert "DNS lookups" in result.output

    def test_unknown(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "info", "ghost"])
        assert isinstance(result.exception, NotFoundError)


class TestInstall:
    def test_local_file(self, plugins_dir, tmp_path, make_state, run_cli) -> None:
        source = write_plugin(tmp_path / "build", "custom.wasm", make_manifest("custom"))
        result = run_cli(make_state(), ["plugin", "install", str(source)])
        assert result.exit_code == 0, result.output
        assert (plugins_dir / "custom.wasm").read_bytes() == source.read_bytes()

    def test_relative_local_file(self, plugins_dir, isolated_config, make_state, run_cli) -> None:
        write_plugin(isolated_config, "local.wasm")
        result = run_cli(make_state(), ["plugin", "install", "./local.wasm"])
        assert result.exit_code == 0, result.output
        assert (plugins_dir / "local.wasm").is_file()

    def test_missing_local_file(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "install", "./nope.wasm"])
        assert isinstance(result.exception, NotFoundError)

    def test_from_registry(self, plugins_dir, make_state, run_cli) -> None:
        registry = StubRegistry(plugins_dir)
        result = run_cli(make_state(registry=registry), ["plugin", "install", "dns@1.2.0"])
        assert result.exit_code == 0, result.output
        assert registry.references == [f"{DEFAULT_REGISTRY}/dns:1.2.0"]
        assert (plugins_dir / "dns@1.2.0.wasm").is_file()
        assert "Pulling" in result.output

    def test_full_reference(self, plugins_dir, make_state, run_cli) -> None:
        registry = StubRegistry(plugins_dir)
        state = make_state(registry=registry)
        run_cli(state, ["plugin", "install", "registry.example.com/acme/custom:1.0.0"])
        assert registry.references == ["registry.example.com/acme/custom:1.0.0"]

    def test_without_registry(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "install", "dns"])
        assert isinstance(result.exception, InvalidUsageError)


class TestRemove:
    def test_removes_every_version(self, installed, make_state, run_cli) -> None:
        state = make_state()
        cache_path = get_discovery_cache_path()
        key = str((installed / "dns.wasm").resolve())
        assert key in DiscoveryCache.load(cache_path)

        result = run_cli(state, ["plugin", "remove", "dns"])
        assert result.exit_code == 0, result.output
        assert sorted(p.name for p in installed.iterdir()) == ["http.wasm"]
        assert key not in DiscoveryCache.load(cache_path)

    def test_removes_one_version(self, installed, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "remove", "dns@0.9.0"])
        assert result.exit_code == 0, result.output
        assert (installed / "dns.wasm").is_file()
        assert not (installed / "dns@0.9.0.wasm").exists()

    def test_removes_versioned_only_install(self, plugins_dir, make_state, run_cli) -> None:
        write_plugin(plugins_dir, "dns@1.0.0.wasm")
        write_plugin(plugins_dir, "dns@1.1.0.wasm")
        result = run_cli(make_state(), ["plugin", "remove", "dns"])
        assert result.exit_code == 0, result.output
        assert list(plugins_dir.iterdir()) == []

    def test_rm_alias(self, installed, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "rm", "http"])
        assert result.exit_code == 0, result.output
        assert not (installed / "http.wasm").exists()

    def test_not_installed(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "remove", "ghost"])
        assert isinstance(result.exception, NotFoundError)

    def test_warns_about_groups(self, installed, make_state, run_cli) -> None:
        config = GlobalConfig(groups={"net": GroupConfig(plugins=["http"])})
        result = run_cli(make_state(config=config), ["plugin", "remove", "http"])
        assert result.exit_code == 0, result.output
        assert "still listed in group(s): net" in result.output


class TestRefresh:
    def test_rebuilds_cache(self, installed, make_state, run_cli, fake_runtime) -> None:
        state = make_state()
        loads_before = fake_runtime.loads
        result = run_cli(state, ["plugin", "refresh"])
        assert result.exit_code == 0, result.output
        assert "2 plugin(s)" in result.output
        assert fake_runtime.loads == loads_before + 3
        assert len(DiscoveryCache.load(get_discovery_cache_path())) == 3


class TestSearch:
    @pytest.fixture
    def hits(self, monkeypatch):
        calls: list[dict] = []

        def fake_search(sources, query, cache, **kwargs):
            calls.append({"query": query, **kwargs})
            entries = [
                IndexEntry(name="dns", description="DNS lookups", latest="1.2.0"),
                IndexEntry(name="http", description="HTTP checks", latest="0.3.0"),
            ]
            return [
                SearchHit(entry=e, source="official", registry="ghcr.io/x")
                for e in entries
                if query in e.name
            ]

        monkeypatch.setattr("tack.plugins.index.search_indexes", fake_search)
        return calls

    def test_results(self, hits, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["-o", "json", "plugin", "search", "dns"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output.split("\n→")[0]) == [
            {"Name": "dns", "Latest": "1.2.0", "Description": "DNS lookups", "Index": "official"}
        ]
        assert hits[0]["query"] == "dns"
        assert hits[0]["force_refresh"] is False

    def test_refresh_flag(self, hits, make_state, run_cli) -> None:
        run_cli(make_state(), ["plugin", "search", "--refresh"])
        assert hits[0]["force_refresh"] is True

    def test_no_match(self, hits, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["plugin", "search", "zzz"])
        assert result.exit_code == 0
        assert "No plugins match 'zzz'." in result.output
