"""
Debug and profiling utilities for the Mango SDK.

Provides ``CommandLogger``, an async context manager that captures every
command sent with ``execute_op_msg`` together with timing information.

Example::

    from mango_sdk.debug import CommandLogger

    async with CommandLogger() as log:
        await conn.ping()
        await conn.count("profiles", database="juanportal")

    for c in log.commands:
        print(f"{c.command} on {c.database}: {c.duration_ms:.1f}ms")
"""

from __future__ import annotations

import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Self


_active_logger: ContextVar[CommandLogger | None] = ContextVar("_active_command_logger", default=None)


@dataclass
class CommandLog:
    """A single captured command with timing information."""

    command: str
    database: str | None
    request_id: int
    duration_ms: float
    ok: bool
    timestamp: float = field(default_factory=time.time)

    def __repr__(self) -> str:
        status = "ok" if self.ok else "failed"
        return f"CommandLog({self.command!r}, {status}, {self.duration_ms:.1f}ms)"


class CommandLogger:
    """
    Async context manager that captures wire commands with timing.

    Uses ``contextvars`` so only commands executed inside the ``async with``
    block (and tasks created from it) are captured.
    """

    def __init__(self) -> None:
        self.commands: list[CommandLog] = []
        self._token: Any = None

    async def __aenter__(self) -> Self:
        self._token = _active_logger.set(self)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._token is not None:
            _active_logger.reset(self._token)
            self._token = None

    @property
    def total_commands(self) -> int:
        """Total number of captured commands."""
        return len(self.commands)

    @property
    def total_ms(self) -> float:
        """Total duration of all captured commands in milliseconds."""
        return sum(c.duration_ms for c in self.commands)

    @property
    def failures(self) -> list[CommandLog]:
        """Captured commands that raised or returned ``ok: 0``."""
        return [c for c in self.commands if not c.ok]

    def _record(self, entry: CommandLog) -> None:
        self.commands.append(entry)

    def __repr__(self) -> str:
        return f"CommandLogger({self.total_commands} commands, {self.total_ms:.1f}ms)"


def _log_command(command: str, database: str | None, request_id: int, duration_ms: float, ok: bool) -> None:
    """Log a command to the active CommandLogger, if any."""
    logger = _active_logger.get(None)
    if logger is not None:
        logger._record(
            CommandLog(command=command, database=database, request_id=request_id, duration_ms=duration_ms, ok=ok)
        )


def _start_timer() -> float:
    """Return a high-resolution timer value."""
    return time.perf_counter()


def _elapsed_ms(start: float) -> float:
    """Return elapsed time in milliseconds since *start*."""
    return (time.perf_counter() - start) * 1000.0


__all__ = ["CommandLog", "CommandLogger"]
