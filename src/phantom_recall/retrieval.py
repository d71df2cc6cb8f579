"""Retrieval orchestration: pick memories for the current turn and inject them."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from phantom_recall.filters import (
    FALLBACK_INPUT,
    FALLBACK_RAW,
    FilterStage,
    batch_stage,
    recency_stage,
    run_stages,
    visibility_stage,
)
from phantom_recall.formatting import (
    SCENE_HEADER,
    format_context_for_injection,
    relationship_context,
)
from phantom_recall.interfaces import (
    ContextFormatter,
    InjectionSink,
    Notifier,
    POVResolver,
    PromptSlot,
    RelationshipSummarizer,
    SessionAccessor,
    StatusObserver,
    StoreAccessor,
    log_notifier,
)
from phantom_recall.models import (
    ChatMessage,
    EmotionalInfo,
    MemoryStore,
    RecallConfig,
    RetrievalResult,
    RetrievalStatus,
)
from phantom_recall.selection import RelevanceSelector, select_relevant

logger = logging.getLogger(__name__)

PENDING_MESSAGE_PREFIX = "\n\n[User is about to say]: "


def recent_conversation(chat: Sequence[ChatMessage], pending_user_message: str = "") -> str:
    """Join visible chat messages, plus a not-yet-sent user message."""
    text = "\n".join(m.text for m in chat if not m.is_system)
    if pending_user_message:
        text += PENDING_MESSAGE_PREFIX + pending_user_message
    return text


class RecallOrchestrator:
    """Runs the retrieval pipeline for one chat session.

    Two entry points share the pipeline: ``retrieve_and_inject`` for explicit
    requests and ``update_injection`` for the automatic pre-generation hook.
    Neither raises; every path ends in an injection or a clean no-op.
    """

    def __init__(
        self,
        config: RecallConfig,
        store: StoreAccessor,
        session: SessionAccessor,
        pov_resolver: POVResolver,
        selector: RelevanceSelector,
        *,
        formatter: ContextFormatter = format_context_for_injection,
        relationships: RelationshipSummarizer = relationship_context,
        sink: InjectionSink | None = None,
        status: StatusObserver | None = None,
        notifier: Notifier = log_notifier,
    ):
        self.config = config
        self.store = store
        self.session = session
        self.pov_resolver = pov_resolver
        self.selector = selector
        self.formatter = formatter
        self.relationships = relationships
        self.sink = sink if sink is not None else PromptSlot()
        self._status = status
        self._notify = notifier
        self._inflight: dict[str, asyncio.Task[RetrievalResult | None]] = {}

    # -------------------------------------------------------------------------
    # Injection
    # -------------------------------------------------------------------------

    def inject_context(self, text: str) -> None:
        """Inject ``text`` into the prompt; empty text clears the injection."""
        if not text:
            self.sink.set_prompt("")
            return

        if self.sink.set_prompt(text):
            logger.info("Context injected into prompt")
        else:
            logger.warning("Failed to inject context")

    def _clear(self) -> None:
        try:
            self.inject_context("")
        except Exception:
            logger.exception("Failed to clear injected context")

    def _publish(self, status: RetrievalStatus) -> None:
        if self._status is not None:
            self._status(status)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def retrieve_and_inject(self) -> RetrievalResult | None:
        """Retrieve relevant memories on demand and inject them.

        Returns:
            The selected memories and formatted context, or None when there
            was nothing to retrieve or retrieval failed
        """
        if not self.config.enabled:
            logger.info("Memory recall disabled, skipping retrieval")
            return None

        try:
            chat = list(self.session.chat)
            store = self.store.load_store() if chat else None
        except Exception:
            logger.exception("Failed to read chat or memory store")
            self._publish(RetrievalStatus.ERROR)
            return None

        if not chat:
            logger.info("No chat to retrieve context for")
            return None

        if store is None:
            logger.info("No memory store available")
            return None

        if not store.memories:
            logger.info("No memories stored yet")
            return None

        self._publish(RetrievalStatus.RETRIEVING)
        try:
            result = await self._run(store, chat, exclude_recent=False)
            if result is not None and result.context:
                self.inject_context(result.context)
                logger.info("Injected %d memories into context", len(result.memories))
                self._notify("success", f"Retrieved {len(result.memories)} relevant memories")
        except Exception:
            logger.exception("Retrieval error")
            self._publish(RetrievalStatus.ERROR)
            return None

        self._publish(RetrievalStatus.READY)
        return result

    async def update_injection(self, pending_user_message: str = "") -> RetrievalResult | None:
        """Rebuild and re-inject context for automatic mode.

        Concurrent calls for the same session share one in-flight update.

        Args:
            pending_user_message: User message not yet in the chat, used to
                anticipate what will be relevant

        Returns:
            The injected result, or None when the injection was cleared
        """
        key = self.session.session_key
        task = self._inflight.get(key)
        if task is not None and not task.done():
            logger.debug("Update already in flight for session %s, joining it", key)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self._update(pending_user_message))
        self._inflight[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight.get(key) is task and task.done():
                del self._inflight[key]

    async def _update(self, pending_user_message: str) -> RetrievalResult | None:
        if not self.config.enabled or not self.config.automatic_mode:
            self._clear()
            return None

        try:
            chat = list(self.session.chat)
            store = self.store.load_store() if chat else None
        except Exception:
            logger.exception("Failed to read chat or memory store")
            self._clear()
            self._publish(RetrievalStatus.ERROR)
            return None

        if store is None or not store.memories:
            self._clear()
            return None

        self._publish(RetrievalStatus.RETRIEVING)
        try:
            result = await self._run(
                store, chat, exclude_recent=True, pending_user_message=pending_user_message
            )
            if result is None or not result.context:
                self._clear()
                self._publish(RetrievalStatus.READY)
                return None
            self.inject_context(result.context)
            logger.info("Injection updated: %d memories", len(result.memories))
        except Exception:
            logger.exception("Injection update error")
            self._clear()
            self._publish(RetrievalStatus.ERROR)
            return None

        self._publish(RetrievalStatus.READY)
        return result

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _stages(
        self,
        store: MemoryStore,
        chat_length: int,
        pov_characters: Sequence[str],
        exclude_recent: bool,
    ) -> list[FilterStage]:
        stages = [visibility_stage(pov_characters, store)]
        if exclude_recent:
            fallback = FALLBACK_RAW if self.config.exclusion_fallback == "all" else FALLBACK_INPUT
            stages.append(recency_stage(chat_length, self.config.recent_message_window, fallback))
            stages.append(batch_stage(store.last_batch_id, fallback))
        return stages

    async def _run(
        self,
        store: MemoryStore,
        chat: list[ChatMessage],
        exclude_recent: bool,
        pending_user_message: str = "",
    ) -> RetrievalResult | None:
        pov = self.pov_resolver.resolve(self.session)
        active_characters = self.pov_resolver.active_characters(self.session)

        stages = self._stages(store, len(chat), pov.pov_characters, exclude_recent)
        candidates, results = run_stages(store.memories, stages)
        logger.info(
            "POV filter: mode=%s, characters=[%s], total=%d, %s",
            pov.mode,
            ", ".join(pov.pov_characters),
            len(store.memories),
            ", ".join(f"after {r.name}={len(r.output)}" for r in results),
        )

        if not candidates:
            logger.info("No memories available")
            return None

        if pov.is_group_chat:
            primary_character = pov.primary
        else:
            primary_character = self.session.character_name or pov.primary

        if pending_user_message:
            logger.debug("Including pending user message in retrieval context")
        recent_text = recent_conversation(chat, pending_user_message)

        selected = await select_relevant(
            self.selector,
            candidates,
            recent_text,
            primary_character,
            active_characters,
            self.config.max_memories_per_retrieval,
        )
        if not selected:
            logger.info("No relevant memories found")
            return None

        relationships = self.relationships(store, primary_character, active_characters)
        state = store.character(primary_character)
        if state is not None:
            emotional_info = EmotionalInfo(
                emotion=state.current_emotion or "neutral",
                from_messages=state.emotion_from_messages,
            )
        else:
            emotional_info = EmotionalInfo()

        header_name = primary_character if pov.is_group_chat else SCENE_HEADER

        context = self.formatter(
            selected,
            relationships,
            emotional_info,
            header_name,
            self.config.token_budget,
        )
        if not context:
            logger.info("No selected memory fit the token budget")
        return RetrievalResult(memories=selected, context=context)
