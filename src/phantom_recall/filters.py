"""Ordered filter stages applied to candidate memories.

Every stage follows the same rule: if it removes every memory from a
non-empty input, its output reverts to the stage's fallback target instead
of starving the pipeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from phantom_recall.models import Memory, MemoryStore, name_keys
from phantom_recall.visibility import collect_known_event_ids, is_accessible

logger = logging.getLogger(__name__)

FALLBACK_INPUT = "input"
FALLBACK_RAW = "raw"


@dataclass(frozen=True)
class FilterStage:
    """A named keep-predicate plus where to revert when it empties the set."""

    name: str
    keep: Callable[[Memory], bool]
    fallback: str = FALLBACK_INPUT  # "input" | "raw"
    fallback_message: str = ""


@dataclass(frozen=True)
class StageResult:
    """Outcome of running one stage."""

    name: str
    output: list[Memory]
    excluded: int
    fell_back: bool


def _preview(memory: Memory) -> str:
    return memory.summary[:40]


def visibility_stage(pov_characters: Sequence[str], store: MemoryStore) -> FilterStage:
    """Keep memories any POV character may know."""
    pov_keys = name_keys(pov_characters)
    known = collect_known_event_ids(pov_characters, store)
    return FilterStage(
        name="visibility",
        keep=lambda m: is_accessible(m, pov_keys, known),
        fallback=FALLBACK_INPUT,
        fallback_message="POV filter returned 0 results, using all memories as fallback",
    )


def recent_message_ids(chat_length: int, window: int) -> frozenset[int]:
    """Indices of the last ``window`` messages of a chat."""
    return frozenset(range(max(0, chat_length - window), chat_length))


def recency_stage(chat_length: int, window: int, fallback: str = FALLBACK_INPUT) -> FilterStage:
    """Drop memories whose every source message is still in the recent window."""
    recent = recent_message_ids(chat_length, window)

    def keep(memory: Memory) -> bool:
        if not memory.message_ids:
            return True
        if all(mid in recent for mid in memory.message_ids):
            logger.debug(
                'Excluding recent memory: "%s..." (from messages %s)',
                _preview(memory),
                ",".join(str(mid) for mid in memory.message_ids),
            )
            return False
        return True

    return FilterStage(
        name="recency",
        keep=keep,
        fallback=fallback,
        fallback_message=_exclusion_fallback_message(fallback),
    )


def batch_stage(last_batch_id: str | None, fallback: str = FALLBACK_INPUT) -> FilterStage:
    """Drop memories produced by the most recent extraction batch."""

    def keep(memory: Memory) -> bool:
        if last_batch_id and memory.batch_id == last_batch_id:
            logger.debug(
                'Excluding last-batch memory: "%s..." (batch: %s)',
                _preview(memory),
                memory.batch_id,
            )
            return False
        return True

    return FilterStage(
        name="batch",
        keep=keep,
        fallback=fallback,
        fallback_message=_exclusion_fallback_message(fallback),
    )


def _exclusion_fallback_message(fallback: str) -> str:
    if fallback == FALLBACK_RAW:
        return "Exclusion filters removed every memory, using all raw memories as fallback"
    return "Exclusion filters removed every memory, keeping accessible memories as fallback"


def run_stages(
    memories: Sequence[Memory],
    stages: Sequence[FilterStage],
) -> tuple[list[Memory], list[StageResult]]:
    """Apply stages in order, reverting any stage that empties its input.

    A stage that falls back to the raw memories ends the run; later stages
    are skipped so the raw set is returned whole.

    Returns:
        The surviving memories and one StageResult per stage
    """
    raw = list(memories)
    current = raw
    results: list[StageResult] = []

    for stage in stages:
        output = [m for m in current if stage.keep(m)]
        excluded = len(current) - len(output)
        fell_back = False
        if not output and current:
            fell_back = True
            excluded = 0
            logger.warning("%s (stage=%s)", stage.fallback_message, stage.name)
            output = list(raw) if stage.fallback == FALLBACK_RAW else list(current)
        results.append(
            StageResult(
                name=stage.name,
                output=output,
                excluded=excluded,
                fell_back=fell_back,
            )
        )
        current = output
        if fell_back and stage.fallback == FALLBACK_RAW:
            break

    return current, results
