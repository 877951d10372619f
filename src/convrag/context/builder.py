"""Token-budgeted prompt context from search results."""

import logging
from collections.abc import Iterable

from convrag.config import ContextConfig
from convrag.constants import (
    CHARS_PER_TOKEN,
    CODE_CONTEXT_HEADER,
    CODE_CONTEXT_MAX_CHUNKS,
    CODE_CONTEXT_TOP_K,
    CODE_INDICATORS,
    CONVERSATION_CONTEXT_HEADER,
    CONVERSATION_CONTEXT_TOP_K,
    CONVERSATION_SOURCE_TYPE,
    DEFAULT_CONTEXT_TOP_K,
    GENERAL_CONTEXT_HEADER,
    MAX_CONTEXT_TOKENS,
    MULTI_TURN_CONTEXT_HEADER,
    MULTI_TURN_MAX_SOURCES,
    MULTI_TURN_TOP_K,
    OVERFETCH_FACTOR,
    SCOPE_METADATA_KEY,
    TRUNCATION_MARKER,
)
from convrag.db.connection import StorageError
from convrag.embeddings.base import EmbeddingError
from convrag.indexing.chunking import estimate_tokens
from convrag.search.hybrid import HybridSearchEngine
from convrag.vectorstore.models import SearchResult

logger = logging.getLogger(__name__)


def format_ranked_chunk(result: SearchResult) -> str:
    """Chunk with its relevance percentage and source type."""
    percent = int(result.relevance_score * 100)
    return (
        f"---\n**Relevance**: {percent}% | **Source**: {result.document.source_type}\n"
        f"{result.document.chunk_text}\n\n"
    )


def format_plain_chunk(result: SearchResult) -> str:
    """Chunk text on its own line."""
    return f"{result.document.chunk_text}\n"


def format_code_chunk(result: SearchResult) -> str:
    """Chunk wrapped in a fenced code block."""
    return f"```\n{result.document.chunk_text}\n```\n"


def format_turn_chunk(result: SearchResult) -> str:
    """Chunk after a separator rule."""
    return f"---\n{result.document.chunk_text}\n"


def looks_like_code(text: str) -> bool:
    """Whether text contains any of the code indicator substrings."""
    lowered = text.lower()
    return any(indicator in lowered for indicator in CODE_INDICATORS)


def filter_by_scope(results: list[SearchResult], scope: str | None) -> list[SearchResult]:
    """Keep results whose scope metadata equals scope; no-op when scope is None."""
    if scope is None:
        return results
    return [r for r in results if r.document.metadata.get(SCOPE_METADATA_KEY) == scope]


def truncate_context(text: str, max_tokens: int) -> str:
    """Cut text down to roughly max_tokens, marking that it was truncated.

    Args:
        text: Assembled context.
        max_tokens: Token budget.

    Returns:
        The text unchanged if it fits, otherwise its first max_tokens * 4
        characters followed by a truncation marker.
    """
    if estimate_tokens(text) <= max_tokens:
        return text
    return text[: max_tokens * CHARS_PER_TOKEN] + TRUNCATION_MARKER


class ContextAssembler:
    """Packs hybrid search results into a prompt fragment under a token budget.

    Every variant returns either "" or a header followed by whole chunks. A
    chunk is added only if the string including it stays within the budget;
    packing stops at the first chunk that does not fit.
    """

    def __init__(self, search: HybridSearchEngine, config: ContextConfig | None = None) -> None:
        self._search = search
        if config is not None:
            self.max_tokens = config.max_context_tokens
            self._conversation_top_k = config.conversation_top_k
            self._code_top_k = config.code_top_k
            self._code_max_chunks = config.code_max_chunks
            self._multi_turn_top_k = config.multi_turn_top_k
            self._multi_turn_max_sources = config.multi_turn_max_sources
        else:
            self.max_tokens = MAX_CONTEXT_TOKENS
            self._conversation_top_k = CONVERSATION_CONTEXT_TOP_K
            self._code_top_k = CODE_CONTEXT_TOP_K
            self._code_max_chunks = CODE_CONTEXT_MAX_CHUNKS
            self._multi_turn_top_k = MULTI_TURN_TOP_K
            self._multi_turn_max_sources = MULTI_TURN_MAX_SOURCES

    def _pack(self, header: str, chunks: Iterable[str]) -> tuple[str, int]:
        """Append chunks to header while the whole string fits the budget.

        Returns:
            The packed string ("" if no chunk fit) and the number of chunks used.
        """
        context = header
        included = 0
        for chunk in chunks:
            if estimate_tokens(context + chunk) > self.max_tokens:
                logger.debug(
                    f"Reached token limit ({self.max_tokens}), stopping at {included} chunks"
                )
                break
            context += chunk
            included += 1
        if included == 0:
            return "", 0
        return context, included

    async def build_context(
        self, query: str, scope: str | None = None, top_k: int = DEFAULT_CONTEXT_TOP_K
    ) -> str:
        """Build context from prior conversations for a user query.

        Args:
            query: The user's query.
            scope: Optional library id; only chunks indexed under it are used.
            top_k: Maximum number of chunks.

        Returns:
            Packed context, or "" if nothing relevant was found or fit.
        """
        results = await self._search.hybrid_search(query, top_k=top_k * OVERFETCH_FACTOR)
        results = filter_by_scope(results, scope)[:top_k]
        if not results:
            logger.debug("No relevant context found")
            return ""

        context, included = self._pack(
            GENERAL_CONTEXT_HEADER, (format_ranked_chunk(r) for r in results)
        )
        if included:
            tokens = estimate_tokens(context)
            logger.info(f"Built context with {included} chunks (~{tokens} tokens)")
        return context

    async def build_conversation_context(
        self, source_id: str, query: str, top_k: int | None = None
    ) -> str:
        """Build context from one conversation's own history."""
        results = await self._search.hybrid_search(
            query,
            top_k=top_k or self._conversation_top_k,
            source_type=CONVERSATION_SOURCE_TYPE,
        )
        results = [r for r in results if r.document.source_id == source_id]
        if not results:
            return ""
        context, _ = self._pack(
            CONVERSATION_CONTEXT_HEADER, (format_plain_chunk(r) for r in results)
        )
        return context

    async def build_code_context(self, query: str, language: str | None = None) -> str:
        """Build context from chunks that look like code.

        Args:
            query: The user's query.
            language: Optional language hint appended to the search query.
        """
        search_query = f"{query} {language} code example" if language else query
        results = await self._search.hybrid_search(search_query, top_k=self._code_top_k)
        code_results = [r for r in results if looks_like_code(r.document.chunk_text)]
        if not code_results:
            logger.debug("No code examples found")
            return ""
        context, _ = self._pack(
            CODE_CONTEXT_HEADER,
            (format_code_chunk(r) for r in code_results[: self._code_max_chunks]),
        )
        return context

    async def build_multi_turn_context(
        self, recent_queries: list[str], scope: str | None = None
    ) -> str:
        """Build context for several recent user messages at once.

        The messages are searched as one compound query and at most one chunk
        per source is kept.
        """
        compound = " ".join(recent_queries)
        if not compound.strip():
            return ""
        results = await self._search.hybrid_search(compound, top_k=self._multi_turn_top_k)
        results = filter_by_scope(results, scope)

        seen: set[str] = set()
        unique: list[SearchResult] = []
        for result in results:
            if result.document.source_id in seen:
                continue
            seen.add(result.document.source_id)
            unique.append(result)
            if len(unique) >= self._multi_turn_max_sources:
                break

        context, _ = self._pack(MULTI_TURN_CONTEXT_HEADER, (format_turn_chunk(r) for r in unique))
        return context

    def truncate_context(self, text: str, max_tokens: int | None = None) -> str:
        """Truncate text to max_tokens, defaulting to the assembler's budget."""
        return truncate_context(text, self.max_tokens if max_tokens is None else max_tokens)

    async def try_build_context(
        self, query: str, scope: str | None = None, top_k: int = DEFAULT_CONTEXT_TOP_K
    ) -> str:
        """Like build_context, but returns "" instead of raising on search failure."""
        try:
            return await self.build_context(query, scope=scope, top_k=top_k)
        except (EmbeddingError, StorageError) as e:
            logger.warning(f"Context unavailable, continuing without it: {e}")
            return ""
