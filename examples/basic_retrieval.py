"""Basic retrieval example.

This example demonstrates:
- Storing memories with witnesses, involvement and secrecy
- Telling a character about an event they did not witness
- On-demand retrieval from one character's point of view
- Automatic re-injection before the next generation

The keyword selector runs offline. Swap in EmbeddingSelector or LLMSelector
for model-based relevance.
"""

import asyncio

from phantom_recall import (
    ChatMessage,
    ChatSession,
    KeywordSelector,
    Memory,
    ParticipantPOVResolver,
    PromptSlot,
    RecallConfig,
    RecallOrchestrator,
    Relationship,
    SqliteMemoryStore,
)
from phantom_recall.logging import configure_logging


async def main():
    configure_logging("INFO")
    store = SqliteMemoryStore("story.db")

    try:
        # Webb researched the experiment alone
        store.add_memory(
            Memory(
                id="webb-research",
                summary="Webb found records of the 1980 experiment in the archive",
                witnesses=("Dr. Webb",),
                characters_involved=("Dr. Webb",),
                message_ids=(0, 1),
                importance=4,
            )
        )
        # Alex's father is involved, but this stays secret
        store.add_memory(
            Memory(
                id="father-secret",
                summary="Alex's father was part of the 1980 experiment",
                witnesses=("Dr. Webb",),
                characters_involved=("Alex",),
                is_secret=True,
                message_ids=(2,),
                importance=5,
            )
        )
        store.add_memory(
            Memory(
                id="first-meeting",
                summary="Alex and Webb met at the campus library",
                witnesses=("Alex", "Dr. Webb"),
                message_ids=(3, 4),
                batch_id="batch-2",
            )
        )
        store.set_last_batch_id("batch-2")
        store.set_character_state("Alex", "guarded", (3, 4))
        store.set_relationship(Relationship("Alex", "Dr. Webb", "new acquaintance", 4, 3))

        chat = [
            ChatMessage(text="Webb leafs through old archive boxes.", is_system=True),
            ChatMessage(text="The experiment files are thinner than expected.", name="Dr. Webb"),
            ChatMessage(text="A name stands out on the roster.", name="Dr. Webb"),
            ChatMessage(text="Are you Alex? I've been looking for you.", name="Dr. Webb"),
            ChatMessage(text="Who's asking?", name="Alex"),
        ]
        session = ChatSession(chat=chat, user_name="Dr. Webb", character_name="Alex")
        slot = PromptSlot()

        recall = RecallOrchestrator(
            RecallConfig(token_budget=400),
            store,
            session,
            ParticipantPOVResolver(),
            KeywordSelector(),
            sink=slot,
        )

        # Alex only sees the meeting: the secret involves Alex but Alex never witnessed it
        result = await recall.retrieve_and_inject()
        print(f"Alex remembers: {[m.id for m in result.memories] if result else []}")
        print(slot.text)

        # Webb tells Alex about the experiment; now it's known
        store.add_known_event("Alex", "father-secret")
        chat.append(ChatMessage(text="Your father was there in 1980.", name="Dr. Webb"))

        await recall.update_injection(pending_user_message="What did he do there?")
        print("\n--- After the reveal ---")
        print(slot.text)

    finally:
        store.close()


if __name__ == "__main__":
    asyncio.run(main())
