"""Data models for Phantom Recall."""

import os
from dataclasses import dataclass, field
from functools import cached_property
from enum import Enum
from typing import Iterable, Mapping

EXCLUSION_FALLBACKS = ("accessible", "all")


def name_key(name: str) -> str:
    """Normalize a character name for case-insensitive comparison."""
    return name.strip().casefold()


def name_keys(names: Iterable[str]) -> frozenset[str]:
    """Normalize a collection of names into a comparison set."""
    return frozenset(name_key(n) for n in names if n)


@dataclass(frozen=True)
class RecallConfig:
    """Settings consumed by the retrieval pipeline."""

    enabled: bool = True
    automatic_mode: bool = True
    max_memories_per_retrieval: int = 10
    token_budget: int = 1000
    recent_message_window: int = 10  # chat turns treated as still in context
    exclusion_fallback: str = "accessible"  # "accessible" | "all"

    def __post_init__(self) -> None:
        for attr in ("max_memories_per_retrieval", "token_budget", "recent_message_window"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{attr} must be a positive integer, got {value!r}")
        if self.exclusion_fallback not in EXCLUSION_FALLBACKS:
            raise ValueError(f"Invalid exclusion_fallback: {self.exclusion_fallback}")


@dataclass
class ServerConfig:
    """Configuration for the MCP server."""

    db_path: str = "memories.db"
    selector_backend: str = "keyword"  # "keyword" | "embedding" | "llm"
    embedding_backend: str = "local"  # "local" | "openai" | "hash"
    embedding_model: str = "all-MiniLM-L6-v2"  # for local
    openai_embedding_model: str = "text-embedding-3-small"  # if embedding_backend="openai"
    llm_model: str = "gpt-4o-mini"  # if selector_backend="llm"
    recall: RecallConfig = field(default_factory=RecallConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        """Load config from PHANTOM_RECALL_* environment variables."""
        env = os.environ if environ is None else environ

        def flag(name: str, default: bool) -> bool:
            value = env.get(name)
            if value is None:
                return default
            return value.strip().lower() in ("1", "true", "yes", "on")

        recall = RecallConfig(
            enabled=flag("PHANTOM_RECALL_ENABLED", True),
            automatic_mode=flag("PHANTOM_RECALL_AUTOMATIC", True),
            max_memories_per_retrieval=int(env.get("PHANTOM_RECALL_MAX_MEMORIES", "10")),
            token_budget=int(env.get("PHANTOM_RECALL_TOKEN_BUDGET", "1000")),
            recent_message_window=int(env.get("PHANTOM_RECALL_RECENT_WINDOW", "10")),
            exclusion_fallback=env.get("PHANTOM_RECALL_EXCLUSION_FALLBACK", "accessible"),
        )
        return cls(
            db_path=env.get("PHANTOM_RECALL_DB_PATH", "memories.db"),
            selector_backend=env.get("PHANTOM_RECALL_SELECTOR", "keyword"),
            embedding_backend=env.get("PHANTOM_RECALL_EMBEDDING_BACKEND", "local"),
            embedding_model=env.get("PHANTOM_RECALL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            openai_embedding_model=env.get(
                "PHANTOM_RECALL_OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
            ),
            llm_model=env.get("PHANTOM_RECALL_LLM_MODEL", "gpt-4o-mini"),
            recall=recall,
        )


@dataclass(frozen=True)
class Memory:
    """A fact extracted from the narrative."""

    id: str
    summary: str
    witnesses: tuple[str, ...] = ()
    characters_involved: tuple[str, ...] = ()
    is_secret: bool = False
    message_ids: tuple[int, ...] = ()
    batch_id: str | None = None
    importance: int = 3  # 1-5
    event_type: str | None = None

    @cached_property
    def witness_keys(self) -> frozenset[str]:
        return name_keys(self.witnesses)

    @cached_property
    def involved_keys(self) -> frozenset[str]:
        return name_keys(self.characters_involved)


@dataclass(frozen=True)
class CharacterState:
    """What a single character knows and feels."""

    name: str
    known_events: frozenset[str] = frozenset()
    current_emotion: str = "neutral"
    emotion_from_messages: tuple[int, int] | None = None


@dataclass(frozen=True)
class Relationship:
    """Directed-agnostic bond between two characters."""

    character_a: str
    character_b: str
    relationship_type: str = "acquaintance"
    trust_level: int = 5  # 0-10
    tension_level: int = 0  # 0-10

    def other(self, name: str) -> str | None:
        """Return the counterpart of ``name``, or None if not a party."""
        key = name_key(name)
        if name_key(self.character_a) == key:
            return self.character_b
        if name_key(self.character_b) == key:
            return self.character_a
        return None


@dataclass
class MemoryStore:
    """Snapshot of everything the memory store holds for one chat."""

    memories: list[Memory] = field(default_factory=list)
    characters: dict[str, CharacterState] = field(default_factory=dict)
    relationships: list[Relationship] = field(default_factory=list)
    last_batch_id: str | None = None

    def character(self, name: str) -> CharacterState | None:
        """Look up a character state by exact name, then case-insensitively."""
        state = self.characters.get(name)
        if state is not None:
            return state
        key = name_key(name)
        for candidate, candidate_state in self.characters.items():
            if name_key(candidate) == key:
                return candidate_state
        return None


@dataclass(frozen=True)
class ChatMessage:
    """A single chat turn. Its position in the chat is its message id."""

    text: str
    is_system: bool = False
    is_user: bool = False
    name: str | None = None


@dataclass(frozen=True)
class POVContext:
    """Viewpoint characters for the current scene."""

    pov_characters: tuple[str, ...]
    is_group_chat: bool = False

    def __post_init__(self) -> None:
        if not self.pov_characters:
            raise ValueError("POVContext requires at least one POV character")

    @property
    def primary(self) -> str:
        return self.pov_characters[0]

    @property
    def mode(self) -> str:
        return "group" if self.is_group_chat else "narrator"


@dataclass(frozen=True)
class EmotionalInfo:
    """Emotion of the primary character and the messages it came from."""

    emotion: str = "neutral"
    from_messages: tuple[int, int] | None = None


class RetrievalStatus(str, Enum):
    """Advisory status published by the orchestrator."""

    RETRIEVING = "retrieving"
    READY = "ready"
    ERROR = "error"


@dataclass
class RetrievalResult:
    """Memories chosen for injection and the text that was injected."""

    memories: list[Memory]
    context: str
    status: RetrievalStatus = RetrievalStatus.READY
