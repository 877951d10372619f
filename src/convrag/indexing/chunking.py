"""Splitting message text into indexable chunks."""

from __future__ import annotations

from convrag.constants import CHARS_PER_TOKEN, CHUNK_MAX_TOKENS, CHUNK_OVERLAP_TOKENS


def estimate_tokens(text: str) -> int:
    """Estimate token count for text.

    Uses a simple heuristic of ~4 characters per token.

    Args:
        text: Text to estimate tokens for.

    Returns:
        Estimated token count.
    """
    return len(text) // CHARS_PER_TOKEN


def chunk_text(
    text: str,
    max_tokens: int = CHUNK_MAX_TOKENS,
    overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
) -> list[str]:
    """Split text into chunks of at most max_tokens, overlapping on word boundaries.

    Text that already fits is returned unchanged as a single chunk, so short
    messages keep their original formatting. Longer text is split on
    whitespace; each chunk after the first repeats up to overlap_tokens worth
    of trailing words from the previous one. A single word longer than the
    budget becomes a chunk of its own.

    Args:
        text: Text to split.
        max_tokens: Maximum estimated tokens per chunk.
        overlap_tokens: Estimated tokens repeated between neighbouring chunks.

    Returns:
        List of chunk strings; empty for blank text.
    """
    if not text.strip():
        return []
    if estimate_tokens(text) <= max_tokens:
        return [text]

    max_chars = max_tokens * CHARS_PER_TOKEN
    overlap_chars = min(overlap_tokens * CHARS_PER_TOKEN, max_chars // 2)
    words = text.split()

    chunks: list[str] = []
    start = 0
    while start < len(words):
        end = start
        length = 0
        while end < len(words):
            added = len(words[end]) + (1 if end > start else 0)
            if end > start and length + added > max_chars:
                break
            length += added
            end += 1
        chunks.append(" ".join(words[start:end]))

        if end >= len(words):
            break

        # Step back over trailing words that fit in the overlap budget
        next_start = end
        overlap = 0
        while next_start - 1 > start and overlap + len(words[next_start - 1]) + 1 <= overlap_chars:
            next_start -= 1
            overlap += len(words[next_start]) + 1
        start = next_start

    return chunks
