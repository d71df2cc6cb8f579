"""Collaborator contracts for the retrieval pipeline, with default implementations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from phantom_recall.models import (
    ChatMessage,
    EmotionalInfo,
    Memory,
    MemoryStore,
    POVContext,
    Relationship,
    RetrievalStatus,
)

logger = logging.getLogger(__name__)


class SessionAccessor(Protocol):
    """Read access to the current chat session."""

    @property
    def session_key(self) -> str: ...

    @property
    def chat(self) -> Sequence[ChatMessage]: ...

    @property
    def user_name(self) -> str: ...

    @property
    def character_name(self) -> str: ...


class StoreAccessor(Protocol):
    def load_store(self) -> MemoryStore | None:
        """Return the store snapshot, or None when no store is available."""
        ...


class POVResolver(Protocol):
    def resolve(self, session: SessionAccessor) -> POVContext: ...

    def active_characters(self, session: SessionAccessor) -> list[str]: ...


class RelationshipSummarizer(Protocol):
    def __call__(
        self,
        store: MemoryStore,
        primary_character: str,
        active_characters: Sequence[str],
    ) -> list[Relationship]: ...


class ContextFormatter(Protocol):
    def __call__(
        self,
        memories: Sequence[Memory],
        relationships: Sequence[Relationship],
        emotional_info: EmotionalInfo,
        header_name: str,
        token_budget: int,
    ) -> str: ...


class InjectionSink(Protocol):
    def set_prompt(self, text: str) -> bool:
        """Expose ``text`` to the prompt builder. Empty text clears it."""
        ...


class StatusObserver(Protocol):
    def __call__(self, status: RetrievalStatus) -> None: ...


class Notifier(Protocol):
    def __call__(self, level: str, message: str) -> None: ...


@dataclass
class ChatSession:
    """In-process session snapshot."""

    chat: list[ChatMessage] = field(default_factory=list)
    user_name: str = "User"
    character_name: str = ""
    group_members: list[str] = field(default_factory=list)
    session_key: str = "default"


class ParticipantPOVResolver:
    """Resolves POV from the session's participants.

    In a group chat the POV characters are the group members, in order, so
    the first member is the primary. Otherwise the scene is narrated and the
    POV is the session's character.
    """

    def resolve(self, session: SessionAccessor) -> POVContext:
        members = [m for m in getattr(session, "group_members", []) if m]
        if members:
            return POVContext(pov_characters=tuple(members), is_group_chat=True)
        name = session.character_name or session.user_name
        return POVContext(pov_characters=(name,), is_group_chat=False)

    def active_characters(self, session: SessionAccessor) -> list[str]:
        members = [m for m in getattr(session, "group_members", []) if m]
        if members:
            return members
        return [n for n in (session.character_name, session.user_name) if n]


class PromptSlot:
    """Holds the injected text for a prompt builder to read."""

    def __init__(self) -> None:
        self.text = ""

    def set_prompt(self, text: str) -> bool:
        self.text = text
        return True


class StatusTracker:
    """Remembers every status published, latest last."""

    def __init__(self) -> None:
        self.history: list[RetrievalStatus] = []

    def __call__(self, status: RetrievalStatus) -> None:
        self.history.append(status)

    @property
    def current(self) -> RetrievalStatus | None:
        return self.history[-1] if self.history else None


def log_notifier(level: str, message: str) -> None:
    """Default notifier: surface notifications in the log."""
    logger.info("[%s] %s", level, message)
