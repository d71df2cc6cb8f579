"""Relevance selection over filtered candidate memories."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Protocol, Sequence

from phantom_recall.embedding import EmbeddingBackend, build_embedding_backend, cosine_similarity
from phantom_recall.models import Memory, ServerConfig, name_keys

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z0-9']+")
_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)

_STOPWORDS = frozenset(
    """
    a an and are as at be been but by for from had has have he her hers him his
    i if in into is it its me my no not of on or our she so than that the their
    them then there they this to up was we were what when where which who will
    with would you your
    """.split()
)


class RelevanceSelector(Protocol):
    """Ranks candidates by relevance to the recent conversation."""

    async def select(
        self,
        candidates: Sequence[Memory],
        recent_text: str,
        primary_character: str,
        active_characters: Sequence[str],
        max_count: int,
    ) -> list[Memory] | None: ...


async def select_relevant(
    selector: RelevanceSelector,
    candidates: Sequence[Memory],
    recent_text: str,
    primary_character: str,
    active_characters: Sequence[str],
    max_count: int,
) -> list[Memory]:
    """Call a selector and hold it to its contract.

    Failures resolve to an empty list. The result only ever contains
    memories from ``candidates`` (no duplicates) and at most ``max_count``
    of them.
    """
    if not candidates or max_count <= 0:
        return []

    try:
        selected = await selector.select(
            candidates, recent_text, primary_character, active_characters, max_count
        )
    except Exception:
        logger.warning("Relevance selector failed, treating as no relevant memories", exc_info=True)
        return []

    if not selected:
        return []

    by_id = {m.id: m for m in candidates}
    seen: set[str] = set()
    result: list[Memory] = []
    for memory in selected:
        memory_id = getattr(memory, "id", None)
        if memory_id not in by_id or memory_id in seen:
            logger.warning("Selector returned unknown or duplicate memory: %r", memory_id)
            continue
        seen.add(memory_id)
        result.append(by_id[memory_id])
        if len(result) >= max_count:
            break
    return result


def _terms(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 2 and w not in _STOPWORDS}


class KeywordSelector:
    """Deterministic term-overlap scoring.

    Score = 2 per shared term + 1.5 per active character the memory names +
    0.5 per importance point. Ties go to the more recent memory.
    """

    async def select(
        self,
        candidates: Sequence[Memory],
        recent_text: str,
        primary_character: str,
        active_characters: Sequence[str],
        max_count: int,
    ) -> list[Memory]:
        query_terms = _terms(recent_text)
        active_keys = name_keys(active_characters)

        scored = []
        for position, memory in enumerate(candidates):
            overlap = len(query_terms & _terms(memory.summary))
            named = len(
                active_keys & name_keys((*memory.witnesses, *memory.characters_involved))
            )
            score = 2.0 * overlap + 1.5 * named + 0.5 * memory.importance
            scored.append((score, position, memory))

        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        logger.debug(
            "Keyword scores: %s",
            ", ".join(f"{m.id}={s:.1f}" for s, _, m in scored[:max_count]),
        )
        return [m for _, _, m in scored[:max_count]]


class EmbeddingSelector:
    """Ranks candidates by cosine similarity to the recent conversation."""

    def __init__(self, backend: EmbeddingBackend, query_chars: int = 2000):
        self._backend = backend
        # Only the tail of the conversation is embedded
        self._query_chars = query_chars

    async def select(
        self,
        candidates: Sequence[Memory],
        recent_text: str,
        primary_character: str,
        active_characters: Sequence[str],
        max_count: int,
    ) -> list[Memory]:
        query = recent_text[-self._query_chars :]
        summaries = [m.summary for m in candidates]

        query_vec, memory_vecs = await asyncio.to_thread(self._embed, query, summaries)

        ranked = sorted(
            zip(candidates, memory_vecs),
            key=lambda pair: cosine_similarity(query_vec, pair[1]),
            reverse=True,
        )
        return [m for m, _ in ranked[:max_count]]

    def _embed(self, query: str, summaries: list[str]) -> tuple[list[float], list[list[float]]]:
        return self._backend.embed(query), self._backend.embed_batch(summaries)


_LLM_SYSTEM_PROMPT = (
    "You select which stored story memories are relevant to the current scene. "
    "You are given numbered memories and the recent conversation. "
    'Reply with a JSON object {"selected": [numbers]} listing at most the requested '
    "number of memories, most relevant first. Reply with an empty list if none apply."
)


class LLMSelector:
    """Lets a chat model pick relevant memories."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str = "gpt-4o-mini",
        max_conversation_chars: int = 6000,
    ):
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI()
        self._client = client
        self._model = model
        self._max_conversation_chars = max_conversation_chars

    def build_prompt(
        self,
        candidates: Sequence[Memory],
        recent_text: str,
        primary_character: str,
        active_characters: Sequence[str],
        max_count: int,
    ) -> str:
        lines = [f"[{i}] {m.summary}" for i, m in enumerate(candidates, start=1)]
        return "\n".join(
            [
                f"Point of view: {primary_character}",
                f"Characters present: {', '.join(active_characters) or 'unknown'}",
                f"Select at most {max_count} memories.",
                "",
                "Memories:",
                *lines,
                "",
                "Recent conversation:",
                recent_text[-self._max_conversation_chars :],
            ]
        )

    async def select(
        self,
        candidates: Sequence[Memory],
        recent_text: str,
        primary_character: str,
        active_characters: Sequence[str],
        max_count: int,
    ) -> list[Memory]:
        prompt = self.build_prompt(
            candidates, recent_text, primary_character, active_characters, max_count
        )
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": _LLM_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0,
        )
        content = response.choices[0].message.content or ""
        indices = parse_selection(content)
        logger.debug("LLM selected indices: %s", indices)

        selected = []
        for index in indices:
            if 1 <= index <= len(candidates):
                selected.append(candidates[index - 1])
        return selected[:max_count]


def parse_selection(content: str) -> list[int]:
    """Parse ``{"selected": [...]}`` from a model reply.

    Raises:
        ValueError: If the reply holds no usable JSON
    """
    match = _JSON_BLOCK_RE.search(content)
    payload = match.group(1) if match else content
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Unparseable selector reply: {content[:80]!r}") from e

    if isinstance(data, dict):
        data = data.get("selected", [])
    if not isinstance(data, list):
        raise ValueError(f"Unexpected selector reply: {content[:80]!r}")
    indices = []
    for item in data:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            indices.append(item)
        elif isinstance(item, str) and item.strip().isdigit():
            indices.append(int(item))
    return indices


def build_selector(config: ServerConfig) -> RelevanceSelector:
    """Create the selector named by ``config.selector_backend``."""
    if config.selector_backend == "keyword":
        return KeywordSelector()
    if config.selector_backend == "embedding":
        backend = build_embedding_backend(
            config.embedding_backend,
            embedding_model=config.embedding_model,
            openai_model=config.openai_embedding_model,
        )
        return EmbeddingSelector(backend)
    if config.selector_backend == "llm":
        return LLMSelector(model=config.llm_model)
    raise ValueError(f"Unknown selector backend: {config.selector_backend}")
