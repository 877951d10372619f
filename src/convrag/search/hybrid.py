"""Hybrid keyword + vector search."""

import logging

from convrag.config import SearchConfig
from convrag.constants import (
    DEFAULT_HYBRID_TOP_K,
    DEFAULT_SEMANTIC_TOP_K,
    KEYWORD_CANDIDATE_LIMIT,
    KEYWORD_WEIGHT,
    SEMANTIC_WEIGHT,
)
from convrag.embeddings.base import EmbeddingGenerator
from convrag.search import similarity
from convrag.vectorstore.documents import DocumentStore
from convrag.vectorstore.embeddings import EmbeddingStore
from convrag.vectorstore.models import SearchResult

logger = logging.getLogger(__name__)


def keyword_rank_score(position: int, total: int) -> float:
    """Positional keyword score for the candidate at position of total.

    The best keyword match scores 1.0 and the last scores 1/total.
    """
    return (total - position) / total


class HybridSearchEngine:
    """Re-scores full-text matches by semantic similarity to the query.

    Keyword search proposes candidates; each candidate's final score blends
    its cosine similarity to the query embedding with its position in the
    keyword ranking:

        final = semantic_weight * cosine + keyword_weight * (N - i) / N

    When keyword search finds nothing, pure semantic search is used instead.
    """

    def __init__(
        self,
        documents: DocumentStore,
        embeddings: EmbeddingStore,
        generator: EmbeddingGenerator,
        config: SearchConfig | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            documents: Store providing full-text search.
            embeddings: Store providing candidate vectors.
            generator: Embeds the query text.
            config: Weights and limits; module defaults when omitted.
        """
        self._documents = documents
        self._embeddings = embeddings
        self._generator = generator
        if config is not None:
            self._candidate_limit = config.keyword_candidate_limit
            self._semantic_weight = config.semantic_weight
            self._keyword_weight = config.keyword_weight
            self._default_top_k = config.default_top_k
        else:
            self._candidate_limit = KEYWORD_CANDIDATE_LIMIT
            self._semantic_weight = SEMANTIC_WEIGHT
            self._keyword_weight = KEYWORD_WEIGHT
            self._default_top_k = DEFAULT_HYBRID_TOP_K

    @property
    def default_top_k(self) -> int:
        return self._default_top_k

    async def hybrid_search(
        self,
        query: str,
        top_k: int | None = None,
        source_type: str | None = None,
    ) -> list[SearchResult]:
        """Search with keyword candidates re-scored by vector similarity.

        Args:
            query: Free-text query.
            top_k: Maximum number of results.
            source_type: Optional source type filter.

        Returns:
            Results sorted by descending blended score. Candidates without a
            stored embedding are left out.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            StorageError: If a store read fails.
        """
        limit = top_k if top_k is not None else self._default_top_k
        candidates = await self._documents.full_text_search(
            query, limit=self._candidate_limit, source_type=source_type
        )
        if not candidates:
            logger.debug(f"No keyword matches for {query!r}, using semantic search")
            return await self.semantic_search(query, top_k=limit, source_type=source_type)

        query_vector = await self._generator.generate(query)
        total = len(candidates)

        results: list[SearchResult] = []
        for position, document in enumerate(candidates):
            vector = await self._embeddings.load(document.id, self._generator.model)
            if vector is None:
                continue
            semantic = similarity.cosine_similarity(query_vector, vector)
            keyword = keyword_rank_score(position, total)
            score = self._semantic_weight * semantic + self._keyword_weight * keyword
            results.append(SearchResult(document=document, relevance_score=score))

        # Stable sort keeps keyword order among equal scores
        results.sort(key=lambda r: r.relevance_score, reverse=True)
        return results[:limit]

    async def semantic_search(
        self,
        query: str,
        top_k: int = DEFAULT_SEMANTIC_TOP_K,
        source_type: str | None = None,
    ) -> list[SearchResult]:
        """Brute-force vector search over every stored embedding.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            StorageError: If a store read fails.
        """
        query_vector = await self._generator.generate(query)
        pairs = await self._embeddings.load_all(
            source_type=source_type, model=self._generator.model
        )
        by_id = {document.id: document for document, _ in pairs}
        ranked = similarity.top_k(
            query_vector, ((document.id, vector) for document, vector in pairs), top_k
        )
        return [
            SearchResult(document=by_id[doc_id], relevance_score=score) for doc_id, score in ranked
        ]

    async def keyword_search(
        self,
        query: str,
        top_k: int | None = None,
        source_type: str | None = None,
    ) -> list[SearchResult]:
        """Full-text search only, scored by keyword rank position."""
        limit = top_k if top_k is not None else self._default_top_k
        candidates = await self._documents.full_text_search(
            query, limit=min(limit, self._candidate_limit), source_type=source_type
        )
        total = len(candidates)
        return [
            SearchResult(document=document, relevance_score=keyword_rank_score(i, total))
            for i, document in enumerate(candidates)
        ]
