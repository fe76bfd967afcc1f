"""Fixtures shared by every loopauth test module."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from loopauth.models import ProviderConfig
from loopauth.output import reset_output


@pytest.fixture(autouse=True)
def _fresh_output_and_logging():
    """Undo the global state one CLI invocation leaves behind.

    Both the OutputManager and the RichHandler hold the streams CliRunner
    swapped in, and those are closed once the invocation returns.
    """
    yield
    reset_output()
    logger = logging.getLogger("loopauth")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def sample_provider() -> ProviderConfig:
    """GitHub-style app whose secret is read from ``$TEST_CLIENT_SECRET``."""
    return ProviderConfig(
        name="github",
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        client_id="Iv1.abc123",
        client_secret_source="env:TEST_CLIENT_SECRET",
        redirect_uri="http://127.0.0.1/callback",
        scopes=["repo", "read:org"],
    )


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point config and data directories into *tmp_path* and run from there.

    ``$LOOPAUTH_PROVIDER`` is cleared so the developer's own environment
    cannot pick a provider.
    """
    monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("LOOPAUTH_PROVIDER", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()
