"""
Mango SDK - A minimal Python client for the MongoDB wire protocol.

This SDK talks OP_MSG directly over a TCP stream without depending on a
full-featured driver. It is meant for diagnostic scripts, test harnesses
and lightweight tooling.

Supports:
- BSON encoding/decoding with order-preserving documents
- OP_MSG framing with optional CRC-32C checksums
- Single-request-at-a-time connections with strict reply correlation
- Extended JSON conversion
"""

from typing import Any

from .config import ConnectionConfig
from .connection.base import BaseMangoConnection, ConnectionState
from .connection.stream import StreamConnection, connect
from .debug import CommandLog, CommandLogger
from .protocol.message import (
    BodySection,
    DocumentSequence,
    WireMessage,
    build_message,
    decode_message,
    parse_message,
)
from .protocol.constants import MessageFlag
from .types import (
    Binary,
    Decimal128,
    Document,
    Int64,
    MaxKey,
    MinKey,
    ObjectId,
    Regex,
    Timestamp,
)
from .exceptions import (
    MangoError,
    TransportError,
    ConnectionClosedError,
    TimeoutError,
    ProtocolError,
    UnexpectedReplyError,
    MalformedDocumentError,
    ConcurrentRequestError,
    CommandError,
)

__version__ = "0.1.0"
__all__ = [
    # Connections
    "Mango",
    "BaseMangoConnection",
    "ConnectionState",
    "StreamConnection",
    "connect",
    "ConnectionConfig",
    # Protocol
    "BodySection",
    "DocumentSequence",
    "WireMessage",
    "MessageFlag",
    "build_message",
    "decode_message",
    "parse_message",
    # BSON Types
    "Binary",
    "Decimal128",
    "Document",
    "Int64",
    "MaxKey",
    "MinKey",
    "ObjectId",
    "Regex",
    "Timestamp",
    # Debug
    "CommandLog",
    "CommandLogger",
    # Exceptions
    "MangoError",
    "TransportError",
    "ConnectionClosedError",
    "TimeoutError",
    "ProtocolError",
    "UnexpectedReplyError",
    "MalformedDocumentError",
    "ConcurrentRequestError",
    "CommandError",
]


class Mango:
    """
    Factory class for creating connections.

    Usage:
        # Explicit host and port
        async with Mango.tcp("localhost", 27017) as conn:
            reply = await conn.execute_op_msg(
                [{"kind": 0, "body": {"count": "profiles", "$db": "juanportal"}}]
            )

        # From a mongodb:// URI
        async with Mango.from_uri("mongodb://localhost:27017") as conn:
            await conn.ping()

        # From MANGO_HOST / MANGO_PORT / ... environment variables
        async with Mango.from_env() as conn:
            await conn.ping()
    """

    @staticmethod
    def tcp(host: str = "localhost", port: int = 27017, **kwargs: Any) -> StreamConnection:
        """Create a TCP stream connection (not yet connected)."""
        return StreamConnection(host, port, **kwargs)

    @staticmethod
    def from_uri(uri: str, **kwargs: Any) -> StreamConnection:
        """Create a connection from a ``mongodb://host:port`` URI."""
        return StreamConnection(config=ConnectionConfig.from_uri(uri, **kwargs))

    @staticmethod
    def from_env(prefix: str = "MANGO_", **kwargs: Any) -> StreamConnection:
        """Create a connection configured from environment variables."""
        return StreamConnection(config=ConnectionConfig.from_env(prefix, **kwargs))
