"""
TCP Stream Connection Implementation for the Mango SDK.

Speaks OP_MSG over an ``asyncio`` stream pair. One request is in flight at a
time; the reply read is the only point where ``execute_op_msg`` waits on the
server.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Self
import asyncio
import logging

from .base import BaseMangoConnection, ConnectionState
from ..config import ConnectionConfig
from ..debug import _elapsed_ms, _log_command, _start_timer
from ..exceptions import (
    CommandError,
    ConcurrentRequestError,
    ConnectionClosedError,
    MalformedDocumentError,
    ProtocolError,
    TimeoutError,
    TransportError,
)
from ..protocol.correlator import RequestCorrelator
from ..protocol.constants import MessageFlag
from ..protocol.message import (
    BodySection,
    FrameReader,
    Section,
    build_message,
    coerce_sections,
    command_name,
)
from ..types import Document

logger = logging.getLogger(__name__)


def _is_failure(reply: Mapping[str, Any]) -> bool:
    """A reply fails when it carries a falsy ``ok`` field."""
    return "ok" in reply and not reply["ok"]


class StreamConnection(BaseMangoConnection):
    """
    OP_MSG connection over a raw TCP stream.

    Usage:
        async with StreamConnection("localhost", 27017) as conn:
            reply = await conn.execute_op_msg(
                [{"kind": 0, "body": {"count": "profiles", "$db": "juanportal"}}]
            )
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        config: ConnectionConfig | None = None,
        **options: Any,
    ):
        """
        Initialize the connection.

        Args:
            host: Server host (overrides config.host)
            port: Server port (overrides config.port)
            config: Base configuration, defaults to ``ConnectionConfig()``
            **options: Other ``ConnectionConfig`` fields (timeout, checksum, ...)
        """
        overrides = dict(options)
        if host is not None:
            overrides["host"] = host
        if port is not None:
            overrides["port"] = port
        if config is None:
            config = ConnectionConfig(**overrides)
        elif overrides:
            config = ConnectionConfig(**{**config.model_dump(), **overrides})
        super().__init__(config)

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._frames: FrameReader | None = None
        self._correlator = RequestCorrelator()

    @classmethod
    def from_streams(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        config: ConnectionConfig | None = None,
    ) -> "StreamConnection":
        """Wrap an already connected stream pair. The connection starts OPEN."""
        conn = cls(config=config)
        conn._attach(reader, writer)
        return conn

    def _attach(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._frames = FrameReader(reader, self.config.max_message_size)
        self._state = ConnectionState.OPEN

    async def connect(self) -> Self:
        """Open the TCP stream. Returns self for fluent API."""
        if self._state is ConnectionState.OPEN:
            return self
        if self._state is not ConnectionState.CONNECTING:
            raise ConnectionClosedError(f"Connection is {self._state.value}; create a new one")

        host, port = self.config.address
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            self._state = ConnectionState.CLOSED
            raise TimeoutError(f"Connecting to {host}:{port} timed out after {self.config.connect_timeout}s") from e
        except OSError as e:
            self._state = ConnectionState.CLOSED
            raise TransportError(f"Connection to {host}:{port} failed: {e}") from e

        if self._state is not ConnectionState.CONNECTING:
            # close() ran while the socket was opening
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug("Error while closing %s:%d: %s", host, port, e)
            raise ConnectionClosedError(f"Connection to {host}:{port} was closed while connecting")

        self._attach(reader, writer)
        logger.debug("Connected to %s:%d", host, port)
        return self

    async def close(self) -> None:
        """Close the stream. Safe to call from any state, any number of times."""
        writer, self._writer = self._writer, None
        self._reader = None
        self._frames = None
        if self._state is ConnectionState.CLOSED:
            return

        self._state = ConnectionState.CLOSING
        self._correlator.fail_all(ConnectionClosedError("Connection closed"))

        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug("Error while closing %s:%d: %s", self.host, self.port, e)
            logger.debug("Closed connection to %s:%d", self.host, self.port)

        self._state = ConnectionState.CLOSED

    async def _abort(self, reason: BaseException) -> None:
        """Tear the connection down after a fatal error."""
        logger.warning("Closing connection to %s:%d: %s", self.host, self.port, reason)
        await self.close()

    async def execute_op_msg(
        self,
        sections: Iterable[Section | Mapping[str, Any]],
        flag_bits: int = 0,
        *,
        timeout: float | None = None,
    ) -> Document:
        """
        Send one OP_MSG request and return the decoded reply.

        Args:
            sections: Request sections (objects or ``{"kind": ...}`` mappings)
            flag_bits: OP_MSG flag bits; ``MORE_TO_COME`` sends without
                waiting for a reply
            timeout: Seconds to wait for the reply (defaults to config.timeout)

        Returns:
            The reply body with document sequences merged in

        Raises:
            ConnectionClosedError: If the connection is not open
            ConcurrentRequestError: If another request is in flight
            CommandError: If the server replies with ``ok: 0``
            TimeoutError: If no reply arrives in time (connection is closed)
            TransportError, ProtocolError, MalformedDocumentError,
            UnexpectedReplyError: On fatal failures (connection is closed)
        """
        if self._state is not ConnectionState.OPEN or self._writer is None or self._frames is None:
            raise ConnectionClosedError(f"Connection is {self._state.value}. Call connect() first.")
        if self._correlator.has_pending:
            raise ConcurrentRequestError("Another request is in flight on this connection")

        normalized = coerce_sections(sections)
        flags = int(flag_bits)
        if self.config.checksum:
            flags |= MessageFlag.CHECKSUM_PRESENT
        request_id = self._correlator.next_request_id()
        # Encoding failures surface here, before anything is written.
        data = build_message(flags, normalized, request_id)

        body = next(section.body for section in normalized if isinstance(section, BodySection))
        name = command_name(body)
        database = body.get("$db")
        wait = timeout if timeout is not None else self.config.timeout

        future = self._correlator.register_pending(request_id)
        logger.debug("Sending %s (request %d, %d bytes)", name, request_id, len(data))
        start = _start_timer()
        ok = False
        try:
            reply = await asyncio.wait_for(self._round_trip(request_id, data, flags, future), timeout=wait)
            ok = not _is_failure(reply)
        except asyncio.TimeoutError as e:
            error = TimeoutError(f"No reply to {name} (request {request_id}) after {wait}s")
            await self._abort(error)
            raise error from e
        except asyncio.CancelledError:
            await self._abort(ConnectionClosedError(f"{name} (request {request_id}) was cancelled"))
            raise
        except (TransportError, ProtocolError, MalformedDocumentError) as e:
            await self._abort(e)
            raise
        finally:
            self._correlator.discard(request_id)
            if future.done() and not future.cancelled():
                future.exception()
            _log_command(name, database, request_id, _elapsed_ms(start), ok)

        if not ok:
            raise CommandError.from_reply(reply)
        return reply

    async def _round_trip(
        self,
        request_id: int,
        data: bytes,
        flags: int,
        future: "asyncio.Future[Document]",
    ) -> Document:
        writer, frames = self._writer, self._frames
        if writer is None or frames is None:
            raise ConnectionClosedError("Connection closed")

        try:
            writer.write(data)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Write failed: {e}") from e

        if flags & MessageFlag.MORE_TO_COME:
            # The server sends no reply to this request.
            self._correlator.discard(request_id)
            return Document()

        message = await frames.read_message()
        logger.debug(
            "Received reply to request %d (%d bytes, %d sections)",
            message.response_to,
            message.header.length,
            len(message.sections),
        )
        self._correlator.resolve(message.response_to, message.to_document())
        return await future


async def connect(host: str = "localhost", port: int = 27017, **options: Any) -> StreamConnection:
    """
    Open a connection to ``host:port``.

    Args:
        host: Server host
        port: Server port
        **options: Other ``ConnectionConfig`` fields (timeout, checksum, ...)

    Raises:
        TransportError: If the TCP connect fails
    """
    return await StreamConnection(host, port, **options).connect()
