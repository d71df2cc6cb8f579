"""Tests for context formatting."""

from phantom_recall import EmotionalInfo, Memory, MemoryStore, Relationship
from phantom_recall.formatting import (
    estimate_tokens,
    format_context_for_injection,
    format_memory,
    relationship_context,
)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("a" * 40) == 11


def test_format_includes_header_emotion_and_memories():
    memories = [Memory(id="m1", summary="Alice found the key", importance=4)]
    text = format_context_for_injection(
        memories,
        [],
        EmotionalInfo(emotion="anxious", from_messages=(5, 6)),
        "Alice",
        1000,
    )

    assert text.startswith("<scene_memory>")
    assert text.endswith("</scene_memory>")
    assert "[Alice's Memory & State]" in text
    assert "Emotional state: anxious (as of messages #5-6)" in text
    assert "- [★★★★] Alice found the key" in text


def test_scene_header_in_narrator_mode():
    text = format_context_for_injection(
        [Memory(id="m1", summary="x")], [], EmotionalInfo(), "Scene", 1000
    )

    assert "[Scene Memory & State]" in text
    assert "Emotional state" not in text


def test_secret_memories_are_marked():
    assert format_memory(Memory(id="m1", summary="hidden", is_secret=True, importance=1)) == (
        "- [★] [Secret] hidden"
    )


def test_memories_rendered_chronologically():
    memories = [
        Memory(id="late", summary="second event", message_ids=(9,)),
        Memory(id="undated", summary="undated event"),
        Memory(id="early", summary="first event", message_ids=(2, 3)),
    ]

    text = format_context_for_injection(memories, [], EmotionalInfo(), "Alice", 1000)

    assert text.index("first event") < text.index("second event") < text.index("undated event")


def test_token_budget_is_respected():
    memories = [
        Memory(id=f"m{i}", summary=f"event {i} " + "detail " * 20) for i in range(20)
    ]

    text = format_context_for_injection(memories, [], EmotionalInfo(), "Alice", 120)

    assert text
    assert estimate_tokens(text) <= 120
    # Highest ranked memory is admitted first
    assert "event 0 " in text
    assert "event 19 " not in text


def test_nothing_fits_returns_empty():
    memories = [Memory(id="m1", summary="word " * 200)]

    assert format_context_for_injection(memories, [], EmotionalInfo(), "Alice", 20) == ""


def test_relationship_context_filters_to_active_characters():
    store = MemoryStore(
        relationships=[
            Relationship("Alice", "Bob", "friend", trust_level=8, tension_level=1),
            Relationship("Carol", "Alice", "rival", trust_level=2, tension_level=7),
            Relationship("Bob", "Carol", "siblings"),
        ]
    )

    result = relationship_context(store, "alice", ["Carol"])

    assert len(result) == 1
    assert result[0].character_a == "Alice"
    assert result[0].character_b == "Carol"

    everyone = relationship_context(store, "Alice", [])
    assert {r.character_b for r in everyone} == {"Bob", "Carol"}


def test_relationships_rendered():
    relationships = [Relationship("Alice", "Bob", "friend", trust_level=8, tension_level=1)]

    text = format_context_for_injection(
        [Memory(id="m1", summary="x")], relationships, EmotionalInfo(), "Alice", 1000
    )

    assert "Relationships:" in text
    assert "- Bob: friend (trust 8/10, tension 1/10)" in text
