"""SQL query builders for the memory store."""

LAST_BATCH_KEY = "last_batch_id"


def build_memories_query() -> str:
    """Build query for all memories in chronological (insertion) order."""
    return """
    SELECT id, summary, witnesses, characters_involved, is_secret,
           message_ids, batch_id, importance, event_type
    FROM memories
    ORDER BY seq
    """


def build_memory_insert() -> str:
    """Build insert for a memory row."""
    return """
    INSERT INTO memories (
        id, summary, witnesses, characters_involved, is_secret,
        message_ids, batch_id, importance, event_type
    )
    VALUES (
        :id, :summary, :witnesses, :characters_involved, :is_secret,
        :message_ids, :batch_id, :importance, :event_type
    )
    """


def build_character_states_query() -> str:
    """Build query for character states with their known events.

    Known events are folded into a JSON array per character.
    """
    return """
    SELECT cs.name, cs.current_emotion, cs.emotion_from_start, cs.emotion_from_end,
           (
               SELECT json_group_array(ke.memory_id)
               FROM known_events ke
               WHERE ke.character_name = cs.name
           ) AS known_events
    FROM character_states cs
    ORDER BY cs.name
    """


def build_character_upsert() -> str:
    """Build upsert for a character state row."""
    return """
    INSERT INTO character_states (name, current_emotion, emotion_from_start, emotion_from_end)
    VALUES (:name, :current_emotion, :emotion_from_start, :emotion_from_end)
    ON CONFLICT(name) DO UPDATE SET
        current_emotion = excluded.current_emotion,
        emotion_from_start = excluded.emotion_from_start,
        emotion_from_end = excluded.emotion_from_end
    """


def build_relationships_query() -> str:
    """Build query for all relationships."""
    return """
    SELECT character_a, character_b, relationship_type, trust_level, tension_level
    FROM relationships
    ORDER BY character_a, character_b
    """


def build_relationship_upsert() -> str:
    """Build upsert for a relationship row."""
    return """
    INSERT INTO relationships (character_a, character_b, relationship_type, trust_level, tension_level)
    VALUES (:character_a, :character_b, :relationship_type, :trust_level, :tension_level)
    ON CONFLICT(character_a, character_b) DO UPDATE SET
        relationship_type = excluded.relationship_type,
        trust_level = excluded.trust_level,
        tension_level = excluded.tension_level
    """
