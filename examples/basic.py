# Mango SDK Examples

# Meant to be run cell by cell (select a block and execute it), or as a plain script.
# Use the comments as cell definitions.

# Load requirements

import asyncio
import os

from dotenv import load_dotenv

from mango_sdk import CommandError, CommandLogger, Mango
from mango_sdk.protocol import extjson

# Load environment from .env (MANGO_HOST, MANGO_PORT, MANGO_DATABASE)
load_dotenv()

DATABASE = os.getenv("MANGO_DATABASE", "juanportal")


async def count_profiles():
    # The raw OP_MSG call: one kind 0 section holding the command body
    async with Mango.from_env() as conn:
        reply = await conn.execute_op_msg([{"kind": 0, "body": {"count": "profiles", "$db": DATABASE}}])
        print("count reply:", extjson.dumps(reply))


async def insert_and_find():
    async with Mango.from_env() as conn:
        # Documents travel as a kind 1 "documents" sequence
        await conn.insert("profiles", [{"name": "John Doe", "age": 30}], database=DATABASE)
        for doc in await conn.find("profiles", {"name": "John Doe"}, database=DATABASE, limit=5):
            print("found:", extjson.dumps(doc))


async def handle_errors():
    async with Mango.from_env() as conn:
        try:
            await conn.command("definitelyNotACommand")
        except CommandError as e:
            print(f"server refused: {e.code_name} ({e.code}): {e.message}")
        # The connection is still usable after a command error
        print("ping:", await conn.ping())


async def profile_commands():
    async with Mango.from_env() as conn, CommandLogger() as log:
        await conn.hello()
        await conn.count("profiles", database=DATABASE)
    for entry in log.commands:
        print(f"{entry.command} on {entry.database}: {entry.duration_ms:.1f}ms")


if __name__ == "__main__":
    asyncio.run(count_profiles())
    asyncio.run(insert_and_find())
    asyncio.run(handle_errors())
    asyncio.run(profile_commands())
