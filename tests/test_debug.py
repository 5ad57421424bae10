"""
Tests for the debug module: CommandLog and CommandLogger.
"""

from __future__ import annotations

import asyncio

from mango_sdk.debug import CommandLog, CommandLogger, _active_logger, _elapsed_ms, _log_command, _start_timer


# ---------------------------------------------------------------------------
# CommandLog
# ---------------------------------------------------------------------------


class TestCommandLog:
    """Tests for CommandLog dataclass."""

    def test_basic_fields(self) -> None:
        log = CommandLog(command="count", database="juanportal", request_id=3, duration_ms=1.5, ok=True)
        assert log.command == "count"
        assert log.database == "juanportal"
        assert log.request_id == 3
        assert log.duration_ms == 1.5
        assert log.ok is True
        assert log.timestamp > 0

    def test_repr(self) -> None:
        log = CommandLog(command="ping", database="admin", request_id=1, duration_ms=0.5, ok=False)
        assert "'ping'" in repr(log)
        assert "failed" in repr(log)
        assert "0.5ms" in repr(log)


# ---------------------------------------------------------------------------
# CommandLogger
# ---------------------------------------------------------------------------


class TestCommandLogger:
    """Tests for CommandLogger context manager."""

    def test_initial_state(self) -> None:
        logger = CommandLogger()
        assert logger.commands == []
        assert logger.total_commands == 0
        assert logger.total_ms == 0
        assert logger.failures == []

    async def test_captures_inside_block(self) -> None:
        async with CommandLogger() as logger:
            _log_command("ping", "admin", 1, 1.0, True)
            _log_command("count", "juanportal", 2, 2.5, False)

        assert logger.total_commands == 2
        assert logger.total_ms == 3.5
        assert [c.command for c in logger.failures] == ["count"]

    async def test_resets_on_exit(self) -> None:
        async with CommandLogger():
            assert _active_logger.get() is not None
        assert _active_logger.get() is None

    async def test_nothing_logged_without_logger(self) -> None:
        _log_command("ping", "admin", 1, 1.0, True)
        assert _active_logger.get() is None

    async def test_nested_loggers(self) -> None:
        async with CommandLogger() as outer:
            _log_command("ping", "admin", 1, 1.0, True)
            async with CommandLogger() as inner:
                _log_command("count", "juanportal", 2, 1.0, True)
            _log_command("hello", "admin", 3, 1.0, True)

        assert [c.command for c in outer.commands] == ["ping", "hello"]
        assert [c.command for c in inner.commands] == ["count"]

    async def test_child_tasks_inherit(self) -> None:
        async def worker() -> None:
            _log_command("find", "juanportal", 4, 1.0, True)

        async with CommandLogger() as logger:
            await asyncio.create_task(worker())

        assert logger.total_commands == 1

    def test_repr(self) -> None:
        assert "0 commands" in repr(CommandLogger())


class TestTimers:
    def test_elapsed_is_non_negative(self) -> None:
        start = _start_timer()
        assert _elapsed_ms(start) >= 0
