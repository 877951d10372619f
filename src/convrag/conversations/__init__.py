"""Conversation storage."""

from convrag.conversations.models import Conversation, Message
from convrag.conversations.store import ConversationSource, ConversationStore

__all__ = ["Conversation", "ConversationSource", "ConversationStore", "Message"]
