"""Tests for the ``loopauth config`` command group."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from loopauth.app import app
from loopauth.config import load_global_config, save_global_config
from loopauth.models import GlobalConfig


class TestConfigShow:
    def test_show_defaults_as_json(self, cli_runner: Any, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == GlobalConfig().model_dump(mode="json")

    def test_show_invalid_file(self, cli_runner: Any, isolated_config: Path) -> None:
        config_file = isolated_config / "config" / "loopauth" / "config.json"
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text("{broken", encoding="utf-8")

        result = cli_runner.invoke(app, ["--no-color", "config", "show"])

        assert result.exit_code == 1
        assert "Invalid global config" in result.output


class TestConfigSet:
    @pytest.mark.parametrize(
        ("key", "value", "attr", "expected"),
        [
            ("default_provider", "github", "default_provider", "github"),
            ("open_browser", "false", "open_browser", False),
            ("auto_select_single_provider", "no", "auto_select_single_provider", False),
            ("callback_timeout", "120", "callback_timeout", 120.0),
        ],
    )
    def test_set_top_level(
        self,
        cli_runner: Any,
        isolated_config: Path,
        key: str,
        value: str,
        attr: str,
        expected: object,
    ) -> None:
        result = cli_runner.invoke(app, ["config", "set", key, value])

        assert result.exit_code == 0, result.output
        assert getattr(load_global_config(), attr) == expected

    def test_set_nested(self, cli_runner: Any, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "output.format", "json"])

        assert result.exit_code == 0, result.output
        assert load_global_config().output.format == "json"

    def test_clear_optional(self, cli_runner: Any, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_provider="github", callback_timeout=30))

        cli_runner.invoke(app, ["config", "set", "default_provider", "none"])
        cli_runner.invoke(app, ["config", "set", "callback_timeout", "null"])

        cfg = load_global_config()
        assert cfg.default_provider is None
        assert cfg.callback_timeout is None

    def test_unknown_key(self, cli_runner: Any, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "nope", "1"])
        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_invalid_nested_path(self, cli_runner: Any, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "open_browser.x", "1"])
        assert result.exit_code == 2
        assert "Invalid config key" in result.output

    def test_validation_error(self, cli_runner: Any, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "callback_timeout", "soon"])
        assert result.exit_code == 2
        assert "Validation error" in result.output
        assert load_global_config().callback_timeout is None


class TestConfigReset:
    def test_reset_with_force(self, cli_runner: Any, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_provider="github", open_browser=False))

        result = cli_runner.invoke(app, ["--force", "config", "reset"])

        assert result.exit_code == 0, result.output
        assert load_global_config() == GlobalConfig()

    def test_reset_declined(self, cli_runner: Any, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_provider="github"))

        result = cli_runner.invoke(app, ["config", "reset"], input="n\n")

        assert result.exit_code == 0
        assert load_global_config().default_provider == "github"


class TestRootOptions:
    def test_version(self, cli_runner: Any) -> None:
        from loopauth import __version__

        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"loopauth {__version__}" in result.output
