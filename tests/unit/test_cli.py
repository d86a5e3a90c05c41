"""Tests for the ledgerctl command line."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from ledgerctl import __version__
from ledgerctl.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestVersionTransition:
    def test_prints_one_flag_per_line(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version-transition", "2.4.9", "2.5.4"])
        assert result.exit_code == 0
        assert result.output.splitlines() == ["migrate_to_v25", "fabric_version_changed"]

    def test_json_output(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version-transition", "1.4.7", "2.2.5", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == ["tls_cert_updated", "migrate_to_v2", "fabric_version_changed"]

    def test_unchanged_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version-transition", "2.5.4", "2.5.4"])
        assert result.exit_code == 0
        assert result.output.strip() == "no remediation required"


class TestRun:
    def test_options_override_environment(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEDGERCTL_NAMESPACE", "from-env")
        with patch("ledgerctl.app.main", new=AsyncMock()) as main:
            result = runner.invoke(cli, ["run", "--namespace", "fabric", "--log-level", "DEBUG", "--no-api"])

        assert result.exit_code == 0, result.output
        config = main.await_args.args[0]
        assert config.namespace == "fabric"
        assert config.log.level == "debug"
        assert config.api.enabled is False

    def test_bad_environment_is_reported(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEDGERCTL_RESTART_COOLDOWN", "forever")
        with patch("ledgerctl.app.main", new=AsyncMock()) as main:
            result = runner.invoke(cli, ["run"])

        assert result.exit_code != 0
        assert "Invalid duration format" in result.output
        main.assert_not_awaited()
