"""Conversation-to-conversation similarity by embedding centroids."""

import logging
from collections import defaultdict

import numpy as np

from convrag.constants import (
    CONVERSATION_SOURCE_TYPE,
    DEFAULT_SIMILAR_CONVERSATIONS,
    SIMILAR_CONVERSATION_LOOKUP_LIMIT,
)
from convrag.conversations.models import Conversation
from convrag.conversations.store import ConversationSource
from convrag.search.similarity import cosine_similarity, mean_vector
from convrag.vectorstore.embeddings import EmbeddingStore

logger = logging.getLogger(__name__)


class ConversationSimilarityEngine:
    """Finds conversations whose indexed content resembles a given one.

    Each conversation is represented by the mean of its chunk embeddings.
    Centroids are computed per call and never cached.
    """

    def __init__(
        self,
        embeddings: EmbeddingStore,
        conversations: ConversationSource,
        lookup_limit: int = SIMILAR_CONVERSATION_LOOKUP_LIMIT,
    ) -> None:
        self._embeddings = embeddings
        self._conversations = conversations
        self._lookup_limit = lookup_limit

    async def rank_similar(
        self, conversation_id: str, top_k: int = DEFAULT_SIMILAR_CONVERSATIONS
    ) -> list[tuple[str, float]]:
        """Rank other conversations by centroid similarity to this one.

        Args:
            conversation_id: Conversation to compare against.
            top_k: Maximum number of conversations to return.

        Returns:
            (conversation_id, score) pairs, best first. Empty if the target
            has no embeddings.
        """
        target_vectors = await self._embeddings.load_for_source(conversation_id)
        if not target_vectors:
            logger.debug(f"No embeddings for conversation {conversation_id}")
            return []

        dimension = target_vectors[0].shape[0]
        target = mean_vector([v for v in target_vectors if v.shape[0] == dimension])

        grouped: dict[str, list[np.ndarray]] = defaultdict(list)
        for document, vector in await self._embeddings.load_all(CONVERSATION_SOURCE_TYPE):
            if document.source_id == conversation_id:
                continue
            # Vectors of another dimension come from a different embedding space
            if vector.shape[0] != dimension:
                continue
            grouped[document.source_id].append(vector)

        scored = [
            (source_id, cosine_similarity(target, mean_vector(vectors)))
            for source_id, vectors in grouped.items()
        ]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:top_k]

    async def find_similar(
        self, conversation_id: str, top_k: int = DEFAULT_SIMILAR_CONVERSATIONS
    ) -> list[Conversation]:
        """Find the conversations most similar to this one.

        Ranked ids the conversation source does not return are dropped.
        """
        ranked = await self.rank_similar(conversation_id, top_k)
        if not ranked:
            return []

        known = {c.id: c for c in await self._conversations.load_conversations(self._lookup_limit)}
        return [known[source_id] for source_id, _ in ranked if source_id in known]
