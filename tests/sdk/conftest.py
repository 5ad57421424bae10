"""Shared fixtures for the protocol-level SDK tests."""

from collections.abc import AsyncGenerator

import pytest

from fake_server import FakeMongoServer
from mango_sdk.connection.stream import StreamConnection


class ChunkedSource:
    """Byte source that hands out a buffer a few bytes per ``read`` call."""

    def __init__(self, data: bytes, chunk_size: int = 1):
        self._data = data
        self._pos = 0
        self.chunk_size = chunk_size
        self.reads = 0

    async def read(self, n: int = -1) -> bytes:
        self.reads += 1
        size = self.chunk_size if n < 0 else min(n, self.chunk_size)
        chunk = self._data[self._pos : self._pos + size]
        self._pos += len(chunk)
        return chunk


@pytest.fixture
def chunked_source() -> type[ChunkedSource]:
    """The ChunkedSource class, for tests that build their own sources."""
    return ChunkedSource


@pytest.fixture
async def server() -> AsyncGenerator[FakeMongoServer, None]:
    """A running fake server seeded with 5 juanportal.profiles documents."""
    async with FakeMongoServer() as srv:
        yield srv


@pytest.fixture
async def connection(server: FakeMongoServer) -> AsyncGenerator[StreamConnection, None]:
    """An open connection to the fake server."""
    conn = StreamConnection("127.0.0.1", server.port, timeout=5.0)
    try:
        await conn.connect()
        yield conn
    finally:
        await conn.close()
