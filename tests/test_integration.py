"""
Integration tests against a real MongoDB-compatible server.

Run with a server on MONGODB_HOST:MONGODB_PORT (default localhost:27017):

    pytest -m integration
"""

import pytest

from tests.conftest import MONGODB_DATABASE, MONGODB_HOST, MONGODB_PORT
from mango_sdk import CommandError, StreamConnection
from mango_sdk.types import Document

pytestmark = pytest.mark.integration


@pytest.fixture
async def live_connection(mongodb_available: bool):
    if not mongodb_available:
        pytest.skip("MongoDB not available")
    conn = StreamConnection(MONGODB_HOST, MONGODB_PORT, timeout=10.0)
    await conn.connect()
    try:
        yield conn
    finally:
        await conn.close()


class TestLiveServer:
    """Round trips against a real server."""

    async def test_hello(self, live_connection: StreamConnection) -> None:
        reply = await live_connection.hello()
        assert reply["ok"] == 1.0
        assert "maxWireVersion" in reply

    async def test_ping(self, live_connection: StreamConnection) -> None:
        assert await live_connection.ping()

    async def test_count_profiles(self, live_connection: StreamConnection) -> None:
        """count replies with an integer n and ok: 1."""
        reply = await live_connection.execute_op_msg(
            [{"kind": 0, "body": Document([("count", "profiles"), ("$db", MONGODB_DATABASE)])}]
        )
        assert reply["ok"] == 1
        assert isinstance(reply["n"], int)

    async def test_unknown_command(self, live_connection: StreamConnection) -> None:
        with pytest.raises(CommandError) as exc_info:
            await live_connection.command("definitelyNotACommand")
        assert exc_info.value.code == 59
        assert live_connection.is_connected

    async def test_checksummed_round_trip(self, mongodb_available: bool) -> None:
        if not mongodb_available:
            pytest.skip("MongoDB not available")
        async with StreamConnection(MONGODB_HOST, MONGODB_PORT, checksum=True) as conn:
            assert await conn.ping()
