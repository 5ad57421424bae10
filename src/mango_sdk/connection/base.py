"""
Base Connection Interface for the Mango SDK.

Defines the connection lifecycle and the command helpers that every
connection type gets on top of ``execute_op_msg``.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Self

from ..config import ConnectionConfig
from ..exceptions import CommandError
from ..protocol.message import BodySection, DocumentSequence, Section
from ..types import Document


class ConnectionState(str, Enum):
    """Lifecycle state of a connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class BaseMangoConnection(ABC):
    """
    Abstract base class for wire-protocol connections.

    Lifecycle: CONNECTING -> OPEN -> CLOSING -> CLOSED. Commands are only
    accepted while OPEN; ``close()`` is valid from any state.
    """

    def __init__(self, config: ConnectionConfig):
        """
        Initialize connection parameters.

        Args:
            config: Host, port, timeouts and framing options
        """
        self.config = config
        self._state = ConnectionState.CONNECTING

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the connection accepts commands."""
        return self._state is ConnectionState.OPEN

    # Abstract methods that must be implemented

    @abstractmethod
    async def connect(self) -> Self:
        """Establish the transport. Returns self for fluent API."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the transport. Idempotent."""
        ...

    @abstractmethod
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
            sections: Request sections, exactly one of kind 0
            flag_bits: OP_MSG flag bits
            timeout: Seconds to wait for the reply (defaults to config.timeout)

        Returns:
            The reply body with document sequences merged in
        """
        ...

    # Context manager support

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # High-level API methods

    async def command(self, name: str, value: Any = 1, database: str = "admin", **fields: Any) -> Document:
        """
        Run a database command.

        Args:
            name: Command name, sent as the first key of the body
            value: Value of the command key (usually 1 or a collection name)
            database: Target database, sent as ``$db``
            **fields: Extra command fields, in order

        Returns:
            The reply document

        Raises:
            CommandError: If the server replies with ``ok: 0``
        """
        body = Document([(name, value)])
        body.update(fields)
        body["$db"] = database
        return await self.execute_op_msg([BodySection(body=body)])

    async def ping(self) -> bool:
        """Check that the server answers commands."""
        try:
            await self.command("ping")
            return True
        except CommandError:
            return False

    async def hello(self) -> Document:
        """
        Run the ``hello`` handshake command.

        Never sent implicitly; call it before other commands when the server
        requires a handshake.
        """
        return await self.command("hello")

    async def list_databases(self, name_only: bool = False) -> list[Document]:
        """List databases on the server."""
        reply = await self.command("listDatabases", nameOnly=name_only)
        return list(reply.get("databases", []))

    async def count(self, collection: str, query: Mapping[str, Any] | None = None, *, database: str) -> int:
        """
        Count documents in a collection.

        Args:
            collection: Collection name
            query: Optional filter
            database: Database holding the collection

        Returns:
            The server's ``n`` field
        """
        fields: dict[str, Any] = {}
        if query:
            fields["query"] = query
        reply = await self.command("count", collection, database=database, **fields)
        return int(reply.get("n", 0))

    async def insert(
        self,
        collection: str,
        documents: Iterable[Mapping[str, Any]],
        *,
        database: str,
        ordered: bool = True,
    ) -> Document:
        """
        Insert documents, sending them as a kind 1 ``documents`` sequence.

        Returns:
            The reply document (``n``, optional ``writeErrors``)
        """
        body = Document([("insert", collection), ("ordered", ordered), ("$db", database)])
        return await self.execute_op_msg(
            [BodySection(body=body), DocumentSequence(identifier="documents", documents=list(documents))]
        )

    async def find(
        self,
        collection: str,
        filter: Mapping[str, Any] | None = None,
        *,
        database: str,
        projection: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """
        Find documents, returning the first batch only.

        Cursors are not iterated past the first reply.
        """
        fields: dict[str, Any] = {"filter": filter or {}}
        if projection is not None:
            fields["projection"] = projection
        if limit is not None:
            fields["limit"] = limit
            fields["singleBatch"] = True
        reply = await self.command("find", collection, database=database, **fields)
        cursor = reply.get("cursor") or {}
        return list(cursor.get("firstBatch", []))
