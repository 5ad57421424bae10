"""
Connection configuration for the Mango SDK.

``ConnectionConfig`` is an immutable pydantic model. Build it directly, from
environment variables (``MANGO_HOST``, ``MANGO_PORT``, ...), or from a
``mongodb://host:port`` URI.
"""

from __future__ import annotations

import os
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from .protocol.constants import DEFAULT_MAX_MESSAGE_SIZE

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 27017

_TRUE_VALUES = ("1", "true", "yes", "on")


class ConnectionConfig(BaseModel):
    """
    Immutable configuration for a single wire-protocol connection.

    Attributes:
        host: Server host name or address.
        port: Server TCP port.
        timeout: Seconds to wait for a reply before the connection is closed.
        connect_timeout: Seconds to wait for the TCP connect.
        max_message_size: Largest reply frame accepted, in bytes.
        checksum: Append a CRC-32C to every request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    max_message_size: int = Field(default=DEFAULT_MAX_MESSAGE_SIZE, gt=0)
    checksum: bool = False

    @classmethod
    def from_env(cls, prefix: str = "MANGO_", **overrides: Any) -> ConnectionConfig:
        """
        Build a config from environment variables.

        Reads ``{prefix}HOST``, ``{prefix}PORT``, ``{prefix}TIMEOUT``,
        ``{prefix}CONNECT_TIMEOUT`` and ``{prefix}CHECKSUM``. Unset variables
        keep their defaults; keyword overrides win over the environment.
        """
        values: dict[str, Any] = {}
        for field_name in ("host", "port", "timeout", "connect_timeout"):
            raw = os.getenv(f"{prefix}{field_name.upper()}")
            if raw:
                values[field_name] = raw
        checksum = os.getenv(f"{prefix}CHECKSUM")
        if checksum:
            values["checksum"] = checksum.lower() in _TRUE_VALUES
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_uri(cls, uri: str, **overrides: Any) -> ConnectionConfig:
        """
        Build a config from a ``mongodb://host[:port]`` URI.

        Only the first host and its port are used; credentials, database and
        query options are ignored.
        """
        parts = urlsplit(uri)
        if parts.scheme != "mongodb":
            raise ValueError(f"Unsupported URI scheme {parts.scheme!r}, expected 'mongodb'")
        netloc = parts.netloc.rsplit("@", 1)[-1].split(",", 1)[0]
        first = urlsplit(f"//{netloc}")
        values: dict[str, Any] = {"host": first.hostname or DEFAULT_HOST}
        if first.port is not None:
            values["port"] = first.port
        values.update(overrides)
        return cls(**values)

    @property
    def address(self) -> tuple[str, int]:
        """The ``(host, port)`` pair."""
        return (self.host, self.port)


__all__ = ["ConnectionConfig", "DEFAULT_HOST", "DEFAULT_PORT"]
