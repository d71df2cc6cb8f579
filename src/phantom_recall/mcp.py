"""MCP server for Phantom Recall.

Exposes the memory store and the retrieval pipeline through Model Context
Protocol tools.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from phantom_recall.interfaces import ChatSession, ParticipantPOVResolver, PromptSlot
from phantom_recall.logging import configure_logging
from phantom_recall.models import ChatMessage, Memory, Relationship, RetrievalResult, ServerConfig
from phantom_recall.retrieval import RecallOrchestrator
from phantom_recall.selection import RelevanceSelector, build_selector
from phantom_recall.store import SqliteMemoryStore

logger = logging.getLogger(__name__)

# Global state (initialized on first tool call)
_config: ServerConfig | None = None
_store: SqliteMemoryStore | None = None
_selector: RelevanceSelector | None = None
_orchestrator: RecallOrchestrator | None = None
_slot = PromptSlot()


def get_config() -> ServerConfig:
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def get_store() -> SqliteMemoryStore:
    """Get or open the memory store."""
    global _store
    if _store is None:
        _store = SqliteMemoryStore(get_config().db_path)
    return _store


def get_selector() -> RelevanceSelector:
    global _selector
    if _selector is None:
        _selector = build_selector(get_config())
    return _selector


def get_orchestrator(session: ChatSession) -> RecallOrchestrator:
    """Get the orchestrator, pointing it at the latest chat.

    The server holds one memory store, so it serves a single chat; every
    retrieval injects into the same prompt slot.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RecallOrchestrator(
            get_config().recall,
            get_store(),
            session,
            ParticipantPOVResolver(),
            get_selector(),
            sink=_slot,
        )
    else:
        _orchestrator.session = session
    return _orchestrator


def session_from_arguments(arguments: dict[str, Any]) -> ChatSession:
    chat = [
        ChatMessage(
            text=m.get("text", ""),
            is_system=bool(m.get("is_system", False)),
            is_user=bool(m.get("is_user", False)),
            name=m.get("name"),
        )
        for m in arguments.get("chat", [])
    ]
    return ChatSession(
        chat=chat,
        user_name=arguments.get("user_name", "User"),
        character_name=arguments.get("character_name", ""),
        group_members=list(arguments.get("group_members", [])),
    )


def result_to_dict(result: RetrievalResult | None) -> dict[str, Any]:
    if result is None:
        return {"memories": [], "context": "", "status": "empty"}
    return {
        "memories": [{"id": m.id, "summary": m.summary} for m in result.memories],
        "context": result.context,
        "status": result.status.value,
    }


# Initialize server
server = Server("phantom_recall")


# -------------------------------------------------------------------------
# Tool Definitions
# -------------------------------------------------------------------------

_SCENE_PROPERTIES = {
    "chat": {
        "type": "array",
        "description": "Chat messages in order; the index is the message id",
        "items": {
            "type": "object",
            "properties": {
                "text": {"type": "string"},
                "is_system": {"type": "boolean"},
                "is_user": {"type": "boolean"},
                "name": {"type": "string"},
            },
            "required": ["text"],
        },
    },
    "user_name": {"type": "string", "description": "Name of the user persona"},
    "character_name": {
        "type": "string",
        "description": "The non-user participant (narrator-mode primary)",
    },
    "group_members": {
        "type": "array",
        "items": {"type": "string"},
        "description": "Group chat members, primary first (empty for narrator mode)",
    },
}

TOOLS = [
    Tool(
        name="add_memory",
        description="Append a memory to the store",
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Unique identifier"},
                "summary": {"type": "string", "description": "What happened"},
                "witnesses": {"type": "array", "items": {"type": "string"}},
                "characters_involved": {"type": "array", "items": {"type": "string"}},
                "is_secret": {"type": "boolean"},
                "message_ids": {"type": "array", "items": {"type": "integer"}},
                "batch_id": {"type": "string"},
                "importance": {"type": "integer", "minimum": 1, "maximum": 5},
                "event_type": {"type": "string"},
            },
            "required": ["id", "summary"],
        },
    ),
    Tool(
        name="set_character_state",
        description="Set a character's current emotion",
        inputSchema={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "current_emotion": {"type": "string"},
                "emotion_from_messages": {
                    "type": "array",
                    "items": {"type": "integer"},
                    "minItems": 2,
                    "maxItems": 2,
                    "description": "First and last message index the emotion came from",
                },
            },
            "required": ["name"],
        },
    ),
    Tool(
        name="add_known_event",
        description="Record that a character was told about a memory",
        inputSchema={
            "type": "object",
            "properties": {
                "character_name": {"type": "string"},
                "memory_id": {"type": "string"},
            },
            "required": ["character_name", "memory_id"],
        },
    ),
    Tool(
        name="set_relationship",
        description="Create or update a relationship between two characters",
        inputSchema={
            "type": "object",
            "properties": {
                "character_a": {"type": "string"},
                "character_b": {"type": "string"},
                "relationship_type": {"type": "string"},
                "trust_level": {"type": "integer", "minimum": 0, "maximum": 10},
                "tension_level": {"type": "integer", "minimum": 0, "maximum": 10},
            },
            "required": ["character_a", "character_b"],
        },
    ),
    Tool(
        name="set_last_batch_id",
        description="Record the id of the most recent extraction batch",
        inputSchema={
            "type": "object",
            "properties": {"batch_id": {"type": "string"}},
            "required": ["batch_id"],
        },
    ),
    Tool(
        name="retrieve_context",
        description="Retrieve memories relevant to the scene and inject them",
        inputSchema={
            "type": "object",
            "properties": _SCENE_PROPERTIES,
            "required": ["chat"],
        },
    ),
    Tool(
        name="update_injection",
        description="Rebuild the injected context before generation (automatic mode)",
        inputSchema={
            "type": "object",
            "properties": {
                **_SCENE_PROPERTIES,
                "pending_user_message": {
                    "type": "string",
                    "description": "User message about to be sent",
                },
            },
            "required": ["chat"],
        },
    ),
    Tool(
        name="get_injection",
        description="Get the currently injected context",
        inputSchema={"type": "object", "properties": {}},
    ),
]


# -------------------------------------------------------------------------
# MCP Handlers
# -------------------------------------------------------------------------


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    store = get_store()

    try:
        if name == "add_memory":
            result = store.add_memory(
                Memory(
                    id=arguments["id"],
                    summary=arguments["summary"],
                    witnesses=tuple(arguments.get("witnesses", [])),
                    characters_involved=tuple(arguments.get("characters_involved", [])),
                    is_secret=bool(arguments.get("is_secret", False)),
                    message_ids=tuple(arguments.get("message_ids", [])),
                    batch_id=arguments.get("batch_id"),
                    importance=arguments.get("importance", 3),
                    event_type=arguments.get("event_type"),
                )
            )
            return [TextContent(type="text", text=f"Added memory: {result}")]

        elif name == "set_character_state":
            span = arguments.get("emotion_from_messages")
            result = store.set_character_state(
                name=arguments["name"],
                current_emotion=arguments.get("current_emotion", "neutral"),
                emotion_from_messages=tuple(span) if span else None,
            )
            return [TextContent(type="text", text=f"Updated character: {result}")]

        elif name == "add_known_event":
            store.add_known_event(arguments["character_name"], arguments["memory_id"])
            return [
                TextContent(
                    type="text",
                    text=f"{arguments['character_name']} now knows {arguments['memory_id']}",
                )
            ]

        elif name == "set_relationship":
            store.set_relationship(
                Relationship(
                    character_a=arguments["character_a"],
                    character_b=arguments["character_b"],
                    relationship_type=arguments.get("relationship_type", "acquaintance"),
                    trust_level=arguments.get("trust_level", 5),
                    tension_level=arguments.get("tension_level", 0),
                )
            )
            return [TextContent(type="text", text="Relationship saved")]

        elif name == "set_last_batch_id":
            store.set_last_batch_id(arguments["batch_id"])
            return [TextContent(type="text", text=f"Last batch: {arguments['batch_id']}")]

        elif name == "retrieve_context":
            orchestrator = get_orchestrator(session_from_arguments(arguments))
            result = await orchestrator.retrieve_and_inject()
            return [TextContent(type="text", text=json.dumps(result_to_dict(result), indent=2))]

        elif name == "update_injection":
            orchestrator = get_orchestrator(session_from_arguments(arguments))
            result = await orchestrator.update_injection(
                arguments.get("pending_user_message", "")
            )
            return [TextContent(type="text", text=json.dumps(result_to_dict(result), indent=2))]

        elif name == "get_injection":
            return [TextContent(type="text", text=_slot.text)]

        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except Exception as e:
        logger.exception("Tool %s failed", name)
        return [TextContent(type="text", text=f"Error: {str(e)}")]


# -------------------------------------------------------------------------
# Main Entry Point
# -------------------------------------------------------------------------


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run() -> None:
    """Console script entry point."""
    import asyncio

    configure_logging()
    asyncio.run(main())


if __name__ == "__main__":
    run()
