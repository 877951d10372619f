"""Conversation centroid similarity tests."""

import numpy as np
import pytest

from convrag.conversations.models import Conversation
from convrag.search.conversations import ConversationSimilarityEngine
from convrag.vectorstore.models import Document


@pytest.fixture
def similarity_engine(embedding_store, conversation_store):
    return ConversationSimilarityEngine(embedding_store, conversation_store)


@pytest.fixture
def add_conversation(conversation_store, document_store, embedding_store):
    """Save a conversation and one embedded chunk per given (text, vector)."""

    async def _add(conversation_id: str, chunks: list[tuple[str, list[float]]]) -> Conversation:
        conversation = Conversation(title=f"Chat {conversation_id}", id=conversation_id)
        await conversation_store.save_conversation(conversation)
        for index, (text, vector) in enumerate(chunks):
            document = Document(
                source_type="conversation",
                source_id=conversation_id,
                chunk_text=text,
                chunk_index=index,
            )
            await document_store.upsert(document)
            await embedding_store.save(document.id, vector)
        return conversation

    return _add


async def test_colinear_conversations_match_without_shared_words(
    similarity_engine, add_conversation
):
    """Conversations with no words in common are matched by their vectors."""
    direction = np.array([0.2, 0.5, 0.1, 0.8])
    await add_conversation("cats", [("feline grooming habits", list(direction))])
    await add_conversation("orbits", [("kepler ellipse periapsis", list(direction * 3.0))])
    await add_conversation("noise", [("perlin octave lacunarity", [0.8, -0.2, 0.0, -0.1])])

    similar = await similarity_engine.find_similar("cats")
    reverse = await similarity_engine.find_similar("orbits")

    assert similar[0].id == "orbits"
    assert reverse[0].id == "cats"


async def test_rank_similar_uses_centroids(similarity_engine, add_conversation):
    await add_conversation("target", [("a", [1.0, 0.0]), ("b", [0.0, 1.0])])
    # Centroid (0.5, 0.5) points the same way as the target's centroid
    await add_conversation("balanced", [("c", [1.0, 0.0]), ("d", [0.0, 1.0])])
    await add_conversation("lopsided", [("e", [1.0, 0.0]), ("f", [1.0, 0.0])])

    ranked = await similarity_engine.rank_similar("target")

    assert [conversation_id for conversation_id, _ in ranked] == ["balanced", "lopsided"]
    assert ranked[0][1] == pytest.approx(1.0)
    assert ranked[1][1] == pytest.approx(1 / np.sqrt(2))


async def test_target_is_excluded(similarity_engine, add_conversation):
    await add_conversation("self", [("x", [1.0, 0.0])])
    await add_conversation("other", [("y", [0.0, 1.0])])

    ranked = await similarity_engine.rank_similar("self")

    assert [conversation_id for conversation_id, _ in ranked] == ["other"]


async def test_top_k_limits_results(similarity_engine, add_conversation):
    await add_conversation("target", [("x", [1.0, 0.0])])
    for i in range(4):
        await add_conversation(f"other-{i}", [(f"y{i}", [1.0, float(i)])])

    similar = await similarity_engine.find_similar("target", top_k=2)

    assert [c.id for c in similar] == ["other-0", "other-1"]


async def test_different_dimensions_are_skipped(similarity_engine, add_conversation):
    await add_conversation("target", [("x", [1.0, 0.0, 0.0])])
    await add_conversation("same-space", [("y", [1.0, 1.0, 0.0])])
    await add_conversation("other-space", [("z", [1.0, 0.0])])

    ranked = await similarity_engine.rank_similar("target")

    assert [conversation_id for conversation_id, _ in ranked] == ["same-space"]


async def test_conversation_without_embeddings(similarity_engine, add_conversation):
    await add_conversation("empty", [])
    await add_conversation("other", [("y", [1.0, 0.0])])

    assert await similarity_engine.find_similar("empty") == []
    assert await similarity_engine.find_similar("unknown") == []


async def test_unknown_ranked_ids_are_dropped(
    similarity_engine, add_conversation, document_store, embedding_store
):
    """Indexed chunks whose conversation record is gone are not returned."""
    await add_conversation("target", [("x", [1.0, 0.0])])
    await add_conversation("kept", [("y", [0.5, 0.5])])
    orphan = Document(source_type="conversation", source_id="orphan", chunk_text="z")
    await document_store.upsert(orphan)
    await embedding_store.save(orphan.id, [1.0, 0.0])

    similar = await similarity_engine.find_similar("target")

    assert [c.id for c in similar] == ["kept"]


async def test_lookup_limit_bounds_resolution(
    embedding_store, conversation_store, add_conversation
):
    await add_conversation("target", [("x", [1.0, 0.0])])
    await add_conversation("match", [("y", [1.0, 0.0])])
    await add_conversation("latest", [])
    engine = ConversationSimilarityEngine(embedding_store, conversation_store, lookup_limit=1)

    ranked = await engine.rank_similar("target")
    similar = await engine.find_similar("target")

    # Only the most recently updated conversation is looked up
    assert [conversation_id for conversation_id, _ in ranked] == ["match"]
    assert similar == []
