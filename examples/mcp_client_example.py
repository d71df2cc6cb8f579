"""Example of using Phantom Recall through MCP.

This demonstrates how a chat frontend would store memories and ask for the
context block to inject before generating a reply.
"""

import asyncio
import json
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client


async def run_example():
    """Run example MCP interactions."""
    server_params = StdioServerParameters(
        command="phantom-recall-mcp",
        env={
            "PHANTOM_RECALL_DB_PATH": "example_memories.db",
            "PHANTOM_RECALL_SELECTOR": "keyword",
        },
    )

    async with stdio_client(server_params) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()

            tools = await session.list_tools()
            print(f"Available tools: {[t.name for t in tools.tools]}")

            print("\n=== Storing memories ===")
            await session.call_tool(
                "add_memory",
                {
                    "id": "safe-combo",
                    "summary": "Bob memorized the safe combination 7-3-9",
                    "witnesses": ["Bob"],
                    "characters_involved": ["Alice"],
                    "is_secret": True,
                    "message_ids": [2],
                },
            )
            await session.call_tool(
                "add_memory",
                {
                    "id": "safe-found",
                    "summary": "Alice and Bob found a locked safe in the study",
                    "witnesses": ["Alice", "Bob"],
                    "message_ids": [0, 1],
                },
            )
            await session.call_tool(
                "set_relationship",
                {
                    "character_a": "Alice",
                    "character_b": "Bob",
                    "relationship_type": "partners",
                    "trust_level": 6,
                    "tension_level": 4,
                },
            )

            chat = [
                {"text": "A heavy safe sits behind the desk.", "is_system": True},
                {"text": "Do you know anything about that safe?", "name": "Alice"},
                {"text": "What safe?", "name": "Bob"},
            ]

            print("\n=== Alice's view (should NOT know the combination) ===")
            alice = await session.call_tool(
                "retrieve_context",
                {"chat": chat, "group_members": ["Alice"]},
            )
            print(json.loads(alice.content[0].text)["context"])

            print("\n=== Bob's view (SHOULD know the combination) ===")
            bob = await session.call_tool(
                "retrieve_context",
                {"chat": chat, "group_members": ["Bob"]},
            )
            print(json.loads(bob.content[0].text)["context"])


if __name__ == "__main__":
    asyncio.run(run_example())
