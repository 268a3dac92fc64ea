from __future__ import annotations

import pytest
from typer.testing import CliRunner

from remote_transport.cli.main import app


@pytest.fixture()
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def cli_app():
    return app


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep settings discovery away from the developer's working directory."""

    monkeypatch.delenv("REMOTE_TRANSPORT_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
