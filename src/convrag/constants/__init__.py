"""Configuration constants.

Re-exports all config for convenient importing:
    from convrag.constants import MAX_CONTEXT_TOKENS, SEMANTIC_WEIGHT
"""

from convrag.constants.context import *  # noqa: F403
from convrag.constants.embedding import *  # noqa: F403
from convrag.constants.indexing import *  # noqa: F403
from convrag.constants.search import *  # noqa: F403
