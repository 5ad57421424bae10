"""
Mango SDK Connection Module.

Provides the connection lifecycle and the TCP stream implementation.
"""

from .base import BaseMangoConnection, ConnectionState
from .stream import StreamConnection, connect

__all__ = [
    "BaseMangoConnection",
    "ConnectionState",
    "StreamConnection",
    "connect",
]
