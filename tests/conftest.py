"""Pytest fixtures for Phantom Recall tests."""

import pytest
from phantom_recall import (
    ChatMessage,
    ChatSession,
    CharacterState,
    Memory,
    MemoryStore,
    ParticipantPOVResolver,
    PromptSlot,
    RecallConfig,
    RecallOrchestrator,
    SqliteMemoryStore,
    StatusTracker,
)


class StaticStore:
    """Store accessor returning a fixed snapshot."""

    def __init__(self, store: MemoryStore | None):
        self.store = store

    def load_store(self) -> MemoryStore | None:
        return self.store


class RecordingSelector:
    """Returns candidates in order and records what it was given."""

    def __init__(self, result=None):
        self.calls = []
        self._result = result

    async def select(self, candidates, recent_text, primary_character, active_characters, max_count):
        self.calls.append(
            {
                "candidates": list(candidates),
                "recent_text": recent_text,
                "primary_character": primary_character,
                "active_characters": list(active_characters),
                "max_count": max_count,
            }
        )
        if self._result is not None:
            return self._result
        return list(candidates)[:max_count]


class RecordingSink(PromptSlot):
    """Prompt slot that remembers every call."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def set_prompt(self, text: str) -> bool:
        self.calls.append(text)
        return super().set_prompt(text)


def make_chat(length: int) -> list[ChatMessage]:
    return [
        ChatMessage(text=f"message {i}", is_user=i % 2 == 0, name="User" if i % 2 == 0 else "Alice")
        for i in range(length)
    ]


@pytest.fixture
def store():
    """Create an in-memory sqlite store for testing."""
    store = SqliteMemoryStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def scenario_store():
    """Alice witnessed one memory, knows another, and Bob keeps a secret."""
    return MemoryStore(
        memories=[
            Memory(
                id="m1",
                summary="Alice found the silver key in the garden",
                witnesses=("Alice",),
                characters_involved=("Alice",),
                message_ids=(1, 2),
            ),
            Memory(
                id="m2",
                summary="Bob hid the ledger under the floorboards",
                witnesses=("Bob",),
                characters_involved=("Bob",),
                is_secret=True,
                message_ids=(3,),
            ),
            Memory(
                id="m3",
                summary="Carol fled the city before dawn",
                witnesses=("Carol",),
                characters_involved=("Carol",),
                message_ids=(4,),
            ),
        ],
        characters={
            "Alice": CharacterState(
                name="Alice",
                known_events=frozenset({"m3"}),
                current_emotion="anxious",
                emotion_from_messages=(5, 6),
            ),
        },
    )


@pytest.fixture
def make_orchestrator():
    """Build an orchestrator around fixed collaborators."""

    def factory(
        memory_store,
        chat=None,
        config=None,
        selector=None,
        group_members=None,
        character_name="Alice",
    ):
        session = ChatSession(
            chat=chat if chat is not None else make_chat(30),
            user_name="User",
            character_name=character_name,
            group_members=list(group_members or []),
        )
        sink = RecordingSink()
        status = StatusTracker()
        notifications = []
        orchestrator = RecallOrchestrator(
            config or RecallConfig(),
            StaticStore(memory_store),
            session,
            ParticipantPOVResolver(),
            selector or RecordingSelector(),
            sink=sink,
            status=status,
            notifier=lambda level, message: notifications.append((level, message)),
        )
        orchestrator.notifications = notifications
        return orchestrator, sink, status

    return factory
