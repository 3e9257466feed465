"""Tests for ``tack config`` -- show, set and reset."""

from __future__ import annotations

import json

import pytest

from tack.config import load_global_config, save_global_config
from tack.models import GlobalConfig


class TestConfigShow:
    def test_json(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["-o", "json", "config", "show"])
        assert result.exit_code == 0, result.output
        body = result.output[result.output.index("{"):]
        data = json.loads(body)
        assert data["output"] == "table"
        assert data["groups"] == {}
        assert "Config directory:" in result.output


class TestConfigSet:
    @pytest.mark.parametrize(
        "key, value, expected",
        [
            ("output", "json", "json"),
            ("quiet", "true", True),
            ("timeout", "500ms", 0.5),
            ("timeout", "12", 12.0),
            ("default_registry", "registry.example.com/p", "registry.example.com/p"),
        ],
    )
    def test_scalar(self, make_state, run_cli, key, value, expected) -> None:
        result = run_cli(make_state(), ["config", "set", key, value])
        assert result.exit_code == 0, result.output
        assert getattr(load_global_config(), key) == expected

    def test_alias_created(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["config", "set", "aliases.r", "dns resolve"])
        assert result.exit_code == 0, result.output
        assert load_global_config().aliases == {"r": "dns resolve"}

    def test_plugin_default_created(self, make_state, run_cli) -> None:
        result = run_cli(make_state(), ["config", "set", "plugin_defaults.dns.nameserver", "1.1.1.1"])
        assert result.exit_code == 0, result.output
        assert load_global_config().plugin_defaults == {"dns": {"nameserver": "1.1.1.1"}}

    @pytest.mark.parametrize(
        "key, value",
        [
            ("nosuch", "x"),
            ("output.deep", "x"),
            ("groups", "x"),
            ("indexes", "x"),
            ("output", "xml"),
            ("timeout", "soon"),
        ],
    )
    def test_rejected(self, make_state, run_cli, key, value) -> None:
        result = run_cli(make_state(), ["config", "set", key, value])
        assert result.exit_code == 2
        assert load_global_config() == GlobalConfig()


class TestConfigReset:
    def test_reset_with_yes(self, isolated_config, make_state, run_cli) -> None:
        save_global_config(GlobalConfig(output="json", aliases={"r": "dns resolve"}))
        result = run_cli(make_state(), ["config", "reset", "--yes"])
        assert result.exit_code == 0, result.output
        assert load_global_config() == GlobalConfig()

    def test_reset_declined(self, isolated_config, make_state, run_cli) -> None:
        save_global_config(GlobalConfig(output="json"))
        result = run_cli(make_state(), ["config", "reset"], input="n\n")
        assert result.exit_code == 0
        assert load_global_config().output == "json"
