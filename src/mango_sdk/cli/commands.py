"""
CLI commands for the Mango SDK.

Uses click for command-line argument parsing. Replies are printed as relaxed
Extended JSON.
"""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import click
from pydantic import ValidationError

from ..config import ConnectionConfig
from ..connection.stream import StreamConnection
from ..exceptions import CommandError, MangoError
from ..protocol import extjson

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def _with_connection(config: ConnectionConfig, action: Callable[[StreamConnection], Awaitable[T]]) -> T:
    """Connect, run *action*, close; exit with status 1 on SDK errors."""

    async def run() -> T:
        async with StreamConnection(config=config) as conn:
            return await action(conn)

    try:
        return run_async(run())
    except CommandError as e:
        click.echo(f"Command failed ({e.code_name or e.code}): {e.message}", err=True)
        sys.exit(1)
    except MangoError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.option("--host", "-h", envvar="MANGO_HOST", default="localhost", help="Server host")
@click.option("--port", "-p", envvar="MANGO_PORT", default=27017, type=int, help="Server port")
@click.option("--timeout", "-t", default=30.0, type=float, help="Reply timeout in seconds")
@click.option("--checksum", is_flag=True, help="Append a CRC-32C checksum to requests")
@click.option("--verbose", "-v", is_flag=True, help="Log wire activity to stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    host: str,
    port: int,
    timeout: float,
    checksum: bool,
    verbose: bool,
) -> None:
    """Talk to a MongoDB-compatible server over the raw wire protocol."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = ConnectionConfig(host=host, port=port, timeout=timeout, checksum=checksum)
    except ValidationError as e:
        detail = e.errors()[0]
        field = ".".join(str(part) for part in detail["loc"])
        raise click.BadParameter(detail["msg"], param_hint=f"--{field}") from e


@cli.command()
@click.pass_context
def ping(ctx: click.Context) -> None:
    """Check that the server answers commands."""
    alive = _with_connection(ctx.obj["config"], lambda conn: conn.ping())
    if alive:
        click.echo("ok")
    else:
        click.echo("ping failed", err=True)
        sys.exit(1)


@cli.command()
@click.argument("collection")
@click.option("--db", "-d", "database", required=True, help="Database holding the collection")
@click.option("--query", "-q", default=None, help="Filter as Extended JSON")
@click.pass_context
def count(ctx: click.Context, collection: str, database: str, query: str | None) -> None:
    """Count documents in COLLECTION."""
    filter_doc = _parse_json(query) if query else None
    n = _with_connection(
        ctx.obj["config"],
        lambda conn: conn.count(collection, filter_doc, database=database),
    )
    click.echo(str(n))


@cli.command()
@click.argument("command_json")
@click.option("--db", "-d", "database", default="admin", help="Target database ($db)")
@click.option("--canonical", is_flag=True, help="Print canonical instead of relaxed Extended JSON")
@click.pass_context
def run(ctx: click.Context, command_json: str, database: str, canonical: bool) -> None:
    """Run COMMAND_JSON, e.g. '{"count": "profiles"}', and print the reply."""
    body = _parse_json(command_json)
    body.setdefault("$db", database)
    reply = _with_connection(
        ctx.obj["config"],
        lambda conn: conn.execute_op_msg([{"kind": 0, "body": body}]),
    )
    click.echo(extjson.dumps(reply, relaxed=not canonical, indent=2))


def _parse_json(text: str) -> Any:
    try:
        return extjson.loads(text)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
