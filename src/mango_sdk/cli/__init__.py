"""
Mango SDK Command Line Interface.

Illustrative commands for poking a server over the wire protocol:
- ping: Check the server answers commands
- count: Count documents in a collection
- run: Run an arbitrary command given as Extended JSON
"""

from .commands import cli

__all__ = ["cli"]
