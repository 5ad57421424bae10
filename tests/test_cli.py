"""
Unit tests for CLI commands.

Uses Click's CliRunner for testing CLI commands without server connections.
"""

import json
from typing import Any
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mango_sdk.cli.commands import cli
from mango_sdk.config import ConnectionConfig
from mango_sdk.exceptions import CommandError, TransportError
from mango_sdk.types import Document, Int64


def mock_run_async_factory(return_value: Any = None, exception: Exception | None = None):
    """
    Create a mock side_effect for run_async that properly closes the coroutine.

    When mocking run_async, the coroutine passed to it must be closed to avoid
    'coroutine was never awaited' warnings.

    Args:
        return_value: Value to return from the mock
        exception: Exception to raise instead of returning
    """

    def side_effect(coro):
        coro.close()
        if exception is not None:
            raise exception
        return return_value

    return side_effect


@pytest.fixture
def runner() -> CliRunner:
    """Create a CliRunner for testing."""
    return CliRunner()


class TestCliBasics:
    """Tests for basic CLI functionality."""

    def test_cli_help(self, runner: CliRunner) -> None:
        """Test CLI --help shows usage."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "raw wire protocol" in result.output
        for name in ("ping", "count", "run"):
            assert name in result.output

    def test_global_options_build_config(self, runner: CliRunner) -> None:
        """Test --host/--port/--timeout/--checksum end up in the config."""
        captured: list[ConnectionConfig] = []

        def fake_with_connection(config: ConnectionConfig, action: Any) -> bool:
            captured.append(config)
            return True

        with patch("mango_sdk.cli.commands._with_connection", side_effect=fake_with_connection):
            result = runner.invoke(cli, ["-h", "db.local", "-p", "27018", "-t", "2", "--checksum", "ping"])

        assert result.exit_code == 0
        assert captured[0] == ConnectionConfig(host="db.local", port=27018, timeout=2.0, checksum=True)

    def test_env_vars(self, runner: CliRunner) -> None:
        """Test MANGO_HOST and MANGO_PORT are honoured."""
        captured: list[ConnectionConfig] = []

        def fake_with_connection(config: ConnectionConfig, action: Any) -> bool:
            captured.append(config)
            return True

        with patch("mango_sdk.cli.commands._with_connection", side_effect=fake_with_connection):
            result = runner.invoke(cli, ["ping"], env={"MANGO_HOST": "envhost", "MANGO_PORT": "1234"})

        assert result.exit_code == 0
        assert captured[0].address == ("envhost", 1234)

    @pytest.mark.parametrize(
        ("args", "option"),
        [(["--port", "0"], "--port"), (["--port", "70000"], "--port"), (["--timeout", "0"], "--timeout")],
    )
    def test_invalid_options_are_usage_errors(self, runner: CliRunner, args: list[str], option: str) -> None:
        """Test out-of-range options are reported as bad parameters."""
        with patch("mango_sdk.cli.commands._with_connection") as mock:
            result = runner.invoke(cli, [*args, "ping"])
        assert result.exit_code == 2
        assert f"Invalid value for {option}" in result.output
        assert not isinstance(result.exception, ValueError)
        assert not mock.called


class TestPingCommand:
    """Tests for the ping command."""

    def test_ping_ok(self, runner: CliRunner) -> None:
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(True)):
            result = runner.invoke(cli, ["ping"])
        assert result.exit_code == 0
        assert "ok" in result.output

    def test_ping_failed(self, runner: CliRunner) -> None:
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(False)):
            result = runner.invoke(cli, ["ping"])
        assert result.exit_code == 1
        assert "ping failed" in result.output

    def test_transport_error(self, runner: CliRunner) -> None:
        error = TransportError("Connection to localhost:27017 failed: refused")
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(exception=error)):
            result = runner.invoke(cli, ["ping"])
        assert result.exit_code == 1
        assert "Error: Connection to localhost:27017 failed" in result.output


class TestCountCommand:
    """Tests for the count command."""

    def test_count(self, runner: CliRunner) -> None:
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(5)):
            result = runner.invoke(cli, ["count", "profiles", "--db", "juanportal"])
        assert result.exit_code == 0
        assert result.output.strip() == "5"

    def test_count_requires_db(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["count", "profiles"])
        assert result.exit_code == 2

    def test_count_with_query(self, runner: CliRunner) -> None:
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(1)) as mock:
            result = runner.invoke(cli, ["count", "profiles", "-d", "juanportal", "-q", '{"age": 21}'])
        assert result.exit_code == 0
        assert mock.called

    def test_count_bad_query(self, runner: CliRunner) -> None:
        with patch("mango_sdk.cli.commands.run_async") as mock:
            result = runner.invoke(cli, ["count", "profiles", "-d", "juanportal", "-q", "{not json"])
        assert result.exit_code == 2
        assert not mock.called


class TestRunCommand:
    """Tests for the run command."""

    def test_run_prints_relaxed_json(self, runner: CliRunner) -> None:
        reply = Document([("n", 5), ("ok", 1.0)])
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(reply)):
            result = runner.invoke(cli, ["run", '{"count": "profiles"}', "--db", "juanportal"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"n": 5, "ok": 1.0}

    def test_run_canonical(self, runner: CliRunner) -> None:
        reply = Document([("n", Int64(5)), ("ok", 1.0)])
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(reply)):
            result = runner.invoke(cli, ["run", '{"count": "profiles"}', "--canonical"])
        assert json.loads(result.output) == {"n": {"$numberLong": "5"}, "ok": {"$numberDouble": "1.0"}}

    def test_run_command_error(self, runner: CliRunner) -> None:
        error = CommandError("no such command: 'bogus'", code=59, code_name="CommandNotFound")
        with patch("mango_sdk.cli.commands.run_async", side_effect=mock_run_async_factory(exception=error)):
            result = runner.invoke(cli, ["run", '{"bogus": 1}'])
        assert result.exit_code == 1
        assert "Command failed (CommandNotFound): no such command: 'bogus'" in result.output

    def test_run_rejects_non_object(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["run", "[1, 2]"])
        assert result.exit_code == 2
