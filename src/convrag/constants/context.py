"""Context assembly configuration.

The context assembler packs search results into a prompt fragment for the
chat model. Budgets are in estimated tokens, using the same rough heuristic
everywhere: one token per CHARS_PER_TOKEN characters of English text.
"""

# =============================================================================
# Token Budget
# =============================================================================
# MAX_CONTEXT_TOKENS leaves room for the user's query and the model's reply in
# a small context window. The budget covers the whole assembled string,
# header included.

MAX_CONTEXT_TOKENS = 3000
CHARS_PER_TOKEN = 4

# =============================================================================
# Candidate Counts
# =============================================================================
# build_context over-fetches so that scope filtering still leaves top_k
# results. The scoped variants use fixed candidate counts.

DEFAULT_CONTEXT_TOP_K = 10
OVERFETCH_FACTOR = 2
CONVERSATION_CONTEXT_TOP_K = 5
CODE_CONTEXT_TOP_K = 8
CODE_CONTEXT_MAX_CHUNKS = 5
MULTI_TURN_TOP_K = 15
MULTI_TURN_MAX_SOURCES = 8

# =============================================================================
# Scope Filtering
# =============================================================================
# Indexed messages carry the 3D library that was active when they were
# written. Scope filters compare against this metadata field.

SCOPE_METADATA_KEY = "library_id"

# =============================================================================
# Code Detection
# =============================================================================
# A chunk counts as code if its lower-cased text contains any of these.

CODE_INDICATORS = ("function", "const", "class", "import", "```", "{", "=>")

# =============================================================================
# Headers and Markers
# =============================================================================

GENERAL_CONTEXT_HEADER = "# Relevant Context from Previous Conversations:\n\n"
CONVERSATION_CONTEXT_HEADER = "# Relevant Context from This Conversation:\n\n"
CODE_CONTEXT_HEADER = "# Relevant Code Examples:\n\n"
MULTI_TURN_CONTEXT_HEADER = "# Relevant Context (Multi-Turn):\n\n"
TRUNCATION_MARKER = "\n\n...(context truncated)"
