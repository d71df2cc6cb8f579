"""Token-budgeted rendering of selected memories for prompt injection."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from phantom_recall.models import (
    EmotionalInfo,
    Memory,
    MemoryStore,
    Relationship,
    name_key,
    name_keys,
)

SCENE_HEADER = "Scene"


def estimate_tokens(text: str) -> int:
    """Estimate token count using ~4 characters per token."""
    if not text:
        return 0
    return max(1, len(text) // 4 + 1)


def relationship_context(
    store: MemoryStore,
    primary_character: str,
    active_characters: Sequence[str],
) -> list[Relationship]:
    """Relationships between the primary character and others in scene.

    Each relationship is oriented so that ``character_a`` is the primary
    character. With no active characters known, every relationship of the
    primary character is returned.
    """
    active_keys = name_keys(active_characters)
    result = []
    for rel in store.relationships:
        other = rel.other(primary_character)
        if other is None or name_key(other) == name_key(primary_character):
            continue
        if active_keys and name_key(other) not in active_keys:
            continue
        if other == rel.character_a:
            rel = replace(rel, character_a=rel.character_b, character_b=other)
        result.append(rel)
    return result


def _header_line(header_name: str) -> str:
    if header_name == SCENE_HEADER:
        return "[Scene Memory & State]"
    return f"[{header_name}'s Memory & State]"


def _emotion_line(info: EmotionalInfo) -> str | None:
    if info.emotion == "neutral" and info.from_messages is None:
        return None
    line = f"Emotional state: {info.emotion}"
    if info.from_messages is not None:
        start, end = info.from_messages
        span = f"#{start}" if start == end else f"#{start}-{end}"
        line += f" (as of messages {span})"
    return line


def _relationship_line(rel: Relationship) -> str:
    return (
        f"- {rel.character_b}: {rel.relationship_type} "
        f"(trust {rel.trust_level}/10, tension {rel.tension_level}/10)"
    )


def format_memory(memory: Memory) -> str:
    stars = "★" * min(5, max(1, memory.importance))
    secret = " [Secret]" if memory.is_secret else ""
    return f"- [{stars}]{secret} {memory.summary}"


def _chronological(memories: Sequence[Memory]) -> list[Memory]:
    # Memories without message ids keep their ranked order after the rest
    ranked = list(enumerate(memories))
    ranked.sort(
        key=lambda pair: (
            0 if pair[1].message_ids else 1,
            min(pair[1].message_ids) if pair[1].message_ids else 0,
            pair[0],
        )
    )
    return [m for _, m in ranked]


def _render(
    memories: Sequence[Memory],
    relationships: Sequence[Relationship],
    emotional_info: EmotionalInfo,
    header_name: str,
) -> str:
    lines = ["<scene_memory>", _header_line(header_name)]
    emotion = _emotion_line(emotional_info)
    if emotion:
        lines.append(emotion)
    if relationships:
        lines.append("Relationships:")
        lines.extend(_relationship_line(r) for r in relationships)
    lines.append("Relevant memories:")
    lines.extend(format_memory(m) for m in _chronological(memories))
    lines.append("</scene_memory>")
    return "\n".join(lines)


def format_context_for_injection(
    memories: Sequence[Memory],
    relationships: Sequence[Relationship],
    emotional_info: EmotionalInfo,
    header_name: str,
    token_budget: int,
) -> str:
    """Render selected memories into a block of at most ``token_budget`` tokens.

    Memories are admitted in ranked order, skipping any that would overflow
    the budget, then rendered chronologically.

    Args:
        memories: Selected memories, most relevant first
        relationships: Relationships of the primary character
        emotional_info: Emotion of the primary character
        header_name: Character name, or "Scene" in narrator mode
        token_budget: Maximum estimated tokens of the block

    Returns:
        The formatted block, or "" when not even one memory fits
    """
    admitted: list[Memory] = []
    for memory in memories:
        candidate = [*admitted, memory]
        text = _render(candidate, relationships, emotional_info, header_name)
        if estimate_tokens(text) > token_budget:
            continue
        admitted = candidate

    if not admitted:
        return ""
    return _render(admitted, relationships, emotional_info, header_name)
