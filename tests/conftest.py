"""
Pytest configuration for Mango SDK tests.

Unit tests run against an in-process fake server (see ``tests/sdk``).
Integration tests need a real server on ``MONGODB_HOST:MONGODB_PORT`` and
are skipped when nothing answers there.

Shared connection constants are defined here so every test file can import them
instead of hardcoding hosts and ports.
"""

import os
import socket
from collections.abc import Generator

import pytest

# ---------------------------------------------------------------------------
# Shared connection constants (import these in test files)
# ---------------------------------------------------------------------------
MONGODB_HOST = os.getenv("MONGODB_HOST", "localhost")
MONGODB_PORT = int(os.getenv("MONGODB_PORT", "27017"))
MONGODB_DATABASE = os.getenv("MONGODB_DATABASE", "juanportal")


def is_port_responding(host: str = MONGODB_HOST, port: int = MONGODB_PORT) -> bool:
    """Check if the server port is responding (basic TCP check)."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(2)
            s.connect((host, port))
            return True
    except (TimeoutError, ConnectionRefusedError, OSError):
        return False


@pytest.fixture(scope="session")
def mongodb_available() -> Generator[bool, None, None]:
    """
    Session-scoped fixture that indicates if a server is reachable.

    Use this fixture in tests that need to conditionally skip:

        def test_something(mongodb_available):
            if not mongodb_available:
                pytest.skip("MongoDB not available")
    """
    yield is_port_responding()
