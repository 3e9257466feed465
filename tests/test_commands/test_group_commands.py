"""Tests for ``tack group`` -- each command persists one change to the global config."""

from __future__ import annotations

import json

import pytest

from tack.config import load_global_config, save_global_config
from tack.exceptions import InvalidUsageError, NotFoundError
from tack.models import GlobalConfig, GroupConfig


@pytest.fixture
def net_group(isolated_config) -> None:
    save_global_config(
        GlobalConfig(groups={"net": GroupConfig(description="Network", plugins=["dns"])})
    )


class TestGroupList:
    def test_empty(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "list"])
        assert result.exit_code == 0
        assert "No groups configured." in result.output

    def test_json(self, net_group, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["-o", "json", "group", "list"])
        assert json.loads(result.output) == [
            {"Group": "net", "Description": "Network", "Plugins": "dns"}
        ]


class TestGroupCreate:
    def test_create(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "create", "net", "-d", "Network checks"])
        assert result.exit_code == 0, result.output
        assert load_global_config().groups == {
            "net": GroupConfig(description="Network checks")
        }

    def test_create_top(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "create", "top"])
        assert result.exit_code == 0, result.output
        assert "top" in load_global_config().groups

    def test_reserved_name(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "create", "plugin"])
        assert isinstance(result.exception, InvalidUsageError)
        assert load_global_config().groups == {}

    def test_duplicate(self, net_group, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "create", "net"])
        assert isinstance(result.exception, InvalidUsageError)


class TestGroupDelete:
    def test_delete(self, net_group, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "delete", "net"])
        assert result.exit_code == 0, result.output
        assert load_global_config().groups == {}

    def test_missing(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "delete", "net"])
        assert isinstance(result.exception, NotFoundError)

    def test_top_refused(self, isolated_config, make_state, run_cli) -> None:
        save_global_config(GlobalConfig(groups={"top": GroupConfig(plugins=["dns"])}))
        result = run_cli(make_state(), ["group", "delete", "top"])
        assert isinstance(result.exception, InvalidUsageError)
        assert "top" in load_global_config().groups


class TestGroupMembership:
    def test_add(self, net_group, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "add", "net", "http", "dns"])
        assert result.exit_code == 0, result.output
        assert "'dns' is already in group 'net'" in result.output
        assert load_global_config().groups["net"].plugins == ["dns", "http"]

    def test_add_to_missing_group(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "add", "net", "dns"])
        assert isinstance(result.exception, NotFoundError)

    def test_remove_returns_plugin_to_root(self, net_group, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["group", "remove", "net", "dns"])
        assert result.exit_code == 0, result.output
        assert load_global_config().groups["net"].plugins == []
        assert "dns will be shown at the root again" in result.output

    def test_remove_last_group_from_top_refused(self, isolated_config, make_state, run_cli) -> None:
        save_global_config(GlobalConfig(groups={"top": GroupConfig(plugins=["dns"])}))
        result = run_cli(make_state(), ["group", "remove", "top", "dns"])
        assert isinstance(result.exception, InvalidUsageError)
        assert load_global_config().groups["top"].plugins == ["dns"]
