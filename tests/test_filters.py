"""Tests for filter stages and their fallbacks."""

from phantom_recall import Memory, MemoryStore
from phantom_recall.filters import (
    FALLBACK_RAW,
    batch_stage,
    recency_stage,
    recent_message_ids,
    run_stages,
    visibility_stage,
)


def test_recent_message_ids_window():
    assert recent_message_ids(30, 10) == frozenset(range(20, 30))
    assert recent_message_ids(4, 10) == frozenset(range(0, 4))
    assert recent_message_ids(0, 10) == frozenset()


def test_recency_keeps_memory_older_than_window():
    """Sources at N-12 and N-11 lie outside the last 10 messages."""
    n = 30
    stage = recency_stage(n, 10)

    assert stage.keep(Memory(id="old", summary="x", message_ids=(n - 12, n - 11)))


def test_recency_drops_memory_inside_window():
    n = 30
    stage = recency_stage(n, 10)

    assert not stage.keep(Memory(id="new", summary="x", message_ids=(n - 3, n - 1)))


def test_recency_keeps_memory_partially_outside_window():
    n = 30
    stage = recency_stage(n, 10)

    assert stage.keep(Memory(id="mixed", summary="x", message_ids=(n - 11, n - 2)))


def test_recency_keeps_memory_without_sources():
    stage = recency_stage(30, 10)

    assert stage.keep(Memory(id="none", summary="x"))


def test_batch_drops_only_matching_batch():
    stage = batch_stage("b2")

    assert not stage.keep(Memory(id="m1", summary="x", batch_id="b2"))
    assert stage.keep(Memory(id="m2", summary="x", batch_id="b1"))
    assert stage.keep(Memory(id="m3", summary="x"))


def test_batch_ignored_when_last_batch_unset():
    stage = batch_stage(None)

    assert stage.keep(Memory(id="m1", summary="x", batch_id="b2"))
    assert stage.keep(Memory(id="m2", summary="x", batch_id=None))


def test_visibility_fallback_uses_all_memories():
    memories = [
        Memory(id="m1", summary="x", witnesses=("Bob",)),
        Memory(id="m2", summary="y", witnesses=("Carol",)),
    ]
    store = MemoryStore(memories=memories)

    output, results = run_stages(memories, [visibility_stage(["Alice"], store)])

    assert output == memories
    assert results[0].fell_back
    assert results[0].excluded == 0


def test_exclusion_fallback_reverts_to_stage_input():
    """Recency emptying the set restores the accessible memories only."""
    memories = [
        Memory(id="visible", summary="x", witnesses=("Alice",), message_ids=(28,)),
        Memory(id="hidden", summary="y", witnesses=("Bob",), message_ids=(1,)),
    ]
    store = MemoryStore(memories=memories)

    output, results = run_stages(
        memories,
        [visibility_stage(["Alice"], store), recency_stage(30, 10), batch_stage(None)],
    )

    assert [m.id for m in output] == ["visible"]
    assert [r.fell_back for r in results] == [False, True, False]


def test_exclusion_fallback_raw_restores_everything():
    memories = [
        Memory(id="visible", summary="x", witnesses=("Alice",), batch_id="b1"),
        Memory(id="hidden", summary="y", witnesses=("Bob",)),
    ]
    store = MemoryStore(memories=memories)

    output, results = run_stages(
        memories,
        [visibility_stage(["Alice"], store), batch_stage("b1", fallback=FALLBACK_RAW)],
    )

    assert [m.id for m in output] == ["visible", "hidden"]
    assert results[1].fell_back


def test_stage_counts_exclusions():
    memories = [
        Memory(id="m1", summary="x", batch_id="b1"),
        Memory(id="m2", summary="y", batch_id="b2"),
        Memory(id="m3", summary="z", batch_id="b2"),
    ]

    output, results = run_stages(memories, [batch_stage("b2")])

    assert [m.id for m in output] == ["m1"]
    assert results[0].excluded == 2
    assert not results[0].fell_back


def test_run_stages_on_empty_input():
    output, results = run_stages([], [batch_stage("b1")])

    assert output == []
    assert not results[0].fell_back


def test_raw_fallback_ends_the_run():
    memories = [
        Memory(id="mine", summary="x", witnesses=("Alice",), message_ids=(28,)),
        Memory(id="fresh", summary="y", witnesses=("Bob",), is_secret=True, batch_id="b1"),
    ]
    store = MemoryStore(memories=memories, last_batch_id="b1")

    output, results = run_stages(
        memories,
        [
            visibility_stage(["Alice"], store),
            recency_stage(30, 10, fallback=FALLBACK_RAW),
            batch_stage("b1", fallback=FALLBACK_RAW),
        ],
    )

    assert [m.id for m in output] == ["mine", "fresh"]
    assert [r.name for r in results] == ["visibility", "recency"]
    assert results[1].fell_back
