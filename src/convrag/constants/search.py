"""Search and vector store configuration.

These settings control hybrid search (keyword + semantic) over indexed
conversation content. Hybrid search pre-filters candidates with SQLite FTS5
full-text search, then re-scores them by cosine similarity against stored
embeddings.
"""

# =============================================================================
# Source Types
# =============================================================================
# Documents are grouped by (source_type, source_id). Chat messages are indexed
# under the "conversation" source type with the conversation id as source_id.

CONVERSATION_SOURCE_TYPE = "conversation"

# =============================================================================
# Keyword Candidates
# =============================================================================
# Number of FTS5 matches pulled before semantic re-scoring. Only these
# candidates can appear in a hybrid result, so this also bounds hybrid recall.

KEYWORD_CANDIDATE_LIMIT = 50

# =============================================================================
# Score Blending
# =============================================================================
# final = SEMANTIC_WEIGHT * cosine + KEYWORD_WEIGHT * keyword, where keyword is
# the candidate's position in the FTS ranking mapped to (0, 1]:
# (N - i) / N for candidate i of N.

SEMANTIC_WEIGHT = 0.6
KEYWORD_WEIGHT = 0.4

# =============================================================================
# Result Limits
# =============================================================================

DEFAULT_HYBRID_TOP_K = 10
DEFAULT_SEMANTIC_TOP_K = 5
DEFAULT_LIST_LIMIT = 100

# =============================================================================
# Conversation Similarity
# =============================================================================
# Similar conversations are ranked by centroid cosine similarity, then resolved
# against at most SIMILAR_CONVERSATION_LOOKUP_LIMIT recently updated
# conversations.

DEFAULT_SIMILAR_CONVERSATIONS = 5
SIMILAR_CONVERSATION_LOOKUP_LIMIT = 1000
