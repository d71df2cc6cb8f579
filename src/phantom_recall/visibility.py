"""Point-of-view visibility rules.

A memory is accessible to a set of POV characters when any of them:

1. witnessed it,
2. is involved in it and the memory is not secret, or
3. has it in their known events (explicitly told about it).
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from phantom_recall.models import CharacterState, Memory, MemoryStore, name_keys


def collect_known_event_ids(
    pov_characters: Iterable[str],
    characters: Mapping[str, CharacterState] | MemoryStore,
) -> set[str]:
    """Union of known events over all POV characters."""
    store = characters if isinstance(characters, MemoryStore) else MemoryStore(
        characters=dict(characters)
    )
    known: set[str] = set()
    for name in pov_characters:
        state = store.character(name)
        if state is not None:
            known.update(state.known_events)
    return known


def is_accessible(
    memory: Memory,
    pov_keys: frozenset[str],
    known_event_ids: set[str] | frozenset[str],
) -> bool:
    """Access predicate for a single memory."""
    if pov_keys & memory.witness_keys:
        return True
    if not memory.is_secret and pov_keys & memory.involved_keys:
        return True
    return memory.id in known_event_ids


def filter_accessible(
    memories: Sequence[Memory],
    pov_characters: Sequence[str],
    characters: Mapping[str, CharacterState] | MemoryStore,
) -> list[Memory]:
    """Return the memories any POV character may know, in input order."""
    pov_keys = name_keys(pov_characters)
    known = collect_known_event_ids(pov_characters, characters)
    return [m for m in memories if is_accessible(m, pov_keys, known)]
