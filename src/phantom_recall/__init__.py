"""Phantom Recall - Point-of-view aware memory retrieval for narrative chat."""

from phantom_recall.models import (
    RecallConfig,
    ServerConfig,
    Memory,
    CharacterState,
    Relationship,
    MemoryStore,
    ChatMessage,
    POVContext,
    EmotionalInfo,
    RetrievalStatus,
    RetrievalResult,
)
from phantom_recall.interfaces import (
    ChatSession,
    ParticipantPOVResolver,
    PromptSlot,
    StatusTracker,
)
from phantom_recall.retrieval import RecallOrchestrator
from phantom_recall.selection import (
    KeywordSelector,
    EmbeddingSelector,
    LLMSelector,
    select_relevant,
)
from phantom_recall.store import SqliteMemoryStore
from phantom_recall.visibility import filter_accessible

__version__ = "0.1.0"

__all__ = [
    "RecallOrchestrator",
    "RecallConfig",
    "ServerConfig",
    "Memory",
    "CharacterState",
    "Relationship",
    "MemoryStore",
    "ChatMessage",
    "POVContext",
    "EmotionalInfo",
    "RetrievalStatus",
    "RetrievalResult",
    "ChatSession",
    "ParticipantPOVResolver",
    "PromptSlot",
    "StatusTracker",
    "KeywordSelector",
    "EmbeddingSelector",
    "LLMSelector",
    "select_relevant",
    "SqliteMemoryStore",
    "filter_accessible",
]
