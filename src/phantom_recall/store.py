"""SQLite-backed memory store."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from phantom_recall.models import CharacterState, Memory, MemoryStore, Relationship
from phantom_recall.queries import (
    LAST_BATCH_KEY,
    build_character_states_query,
    build_character_upsert,
    build_memories_query,
    build_memory_insert,
    build_relationship_upsert,
    build_relationships_query,
)

logger = logging.getLogger(__name__)


def _json_list(value: str | None) -> list:
    return json.loads(value) if value else []


class SqliteMemoryStore:
    """Persistent memory store for one chat.

    Memories, character states, relationships and the last extraction
    batch id live in a single SQLite database. ``load_store`` returns a
    read-only snapshot for the retrieval pipeline.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self.db: sqlite3.Connection | None = sqlite3.connect(db_path)
        self.db.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path) as f:
            schema = f.read()
        self.db.executescript(schema)
        self.db.commit()

    def _conn(self) -> sqlite3.Connection:
        if self.db is None:
            raise RuntimeError("Memory store is closed")
        return self.db

    def close(self) -> None:
        """Close database connection."""
        if self.db is not None:
            self.db.close()
            self.db = None

    def __enter__(self) -> SqliteMemoryStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Memory Operations
    # -------------------------------------------------------------------------

    def add_memory(self, memory: Memory) -> str:
        """Append a memory. Insertion order is treated as chronological.

        Returns:
            The memory id
        """
        db = self._conn()
        db.execute(
            build_memory_insert(),
            {
                "id": memory.id,
                "summary": memory.summary,
                "witnesses": json.dumps(list(memory.witnesses)),
                "characters_involved": json.dumps(list(memory.characters_involved)),
                "is_secret": int(memory.is_secret),
                "message_ids": json.dumps(list(memory.message_ids)),
                "batch_id": memory.batch_id,
                "importance": memory.importance,
                "event_type": memory.event_type,
            },
        )
        db.commit()
        return memory.id

    def get_memory(self, memory_id: str) -> Memory | None:
        """Get a memory by id."""
        row = self._conn().execute(
            "SELECT * FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_memory(row)

    def _row_to_memory(self, row: sqlite3.Row) -> Memory:
        return Memory(
            id=row["id"],
            summary=row["summary"],
            witnesses=tuple(_json_list(row["witnesses"])),
            characters_involved=tuple(_json_list(row["characters_involved"])),
            is_secret=bool(row["is_secret"]),
            message_ids=tuple(int(i) for i in _json_list(row["message_ids"])),
            batch_id=row["batch_id"],
            importance=row["importance"],
            event_type=row["event_type"],
        )

    def set_last_batch_id(self, batch_id: str | None) -> None:
        """Record the most recent extraction batch."""
        db = self._conn()
        db.execute(
            """
            INSERT INTO store_meta (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (LAST_BATCH_KEY, batch_id),
        )
        db.commit()

    # -------------------------------------------------------------------------
    # Character Operations
    # -------------------------------------------------------------------------

    def set_character_state(
        self,
        name: str,
        current_emotion: str = "neutral",
        emotion_from_messages: tuple[int, int] | None = None,
    ) -> str:
        """Create or update a character's emotional state.

        Returns:
            The character name
        """
        start, end = emotion_from_messages if emotion_from_messages else (None, None)
        db = self._conn()
        db.execute(
            build_character_upsert(),
            {
                "name": name,
                "current_emotion": current_emotion,
                "emotion_from_start": start,
                "emotion_from_end": end,
            },
        )
        db.commit()
        return name

    def add_known_event(self, character_name: str, memory_id: str) -> None:
        """Record that a character was told about a memory."""
        db = self._conn()
        db.execute(
            "INSERT OR IGNORE INTO character_states (name) VALUES (?)",
            (character_name,),
        )
        db.execute(
            "INSERT OR IGNORE INTO known_events (character_name, memory_id) VALUES (?, ?)",
            (character_name, memory_id),
        )
        db.commit()

    def set_relationship(self, relationship: Relationship) -> None:
        """Create or update a relationship between two characters."""
        for level in (relationship.trust_level, relationship.tension_level):
            if not 0 <= level <= 10:
                raise ValueError(f"Relationship levels must be within 0-10, got {level}")
        db = self._conn()
        db.execute(
            build_relationship_upsert(),
            {
                "character_a": relationship.character_a,
                "character_b": relationship.character_b,
                "relationship_type": relationship.relationship_type,
                "trust_level": relationship.trust_level,
                "tension_level": relationship.tension_level,
            },
        )
        db.commit()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def load_store(self) -> MemoryStore | None:
        """Load the full store snapshot, or None once the store is closed."""
        if self.db is None:
            logger.debug("Store closed, nothing to load")
            return None

        memories = [
            self._row_to_memory(row)
            for row in self.db.execute(build_memories_query()).fetchall()
        ]

        characters = {}
        for row in self.db.execute(build_character_states_query()).fetchall():
            start, end = row["emotion_from_start"], row["emotion_from_end"]
            characters[row["name"]] = CharacterState(
                name=row["name"],
                known_events=frozenset(_json_list(row["known_events"])),
                current_emotion=row["current_emotion"],
                emotion_from_messages=(start, end) if start is not None and end is not None else None,
            )

        relationships = [
            Relationship(
                character_a=row["character_a"],
                character_b=row["character_b"],
                relationship_type=row["relationship_type"],
                trust_level=row["trust_level"],
                tension_level=row["tension_level"],
            )
            for row in self.db.execute(build_relationships_query()).fetchall()
        ]

        meta = self.db.execute(
            "SELECT value FROM store_meta WHERE key = ?", (LAST_BATCH_KEY,)
        ).fetchone()

        return MemoryStore(
            memories=memories,
            characters=characters,
            relationships=relationships,
            last_batch_id=meta["value"] if meta is not None else None,
        )
