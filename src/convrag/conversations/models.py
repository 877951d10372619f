"""Conversation and message records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from convrag.vectorstore.models import new_id, utc_now


@dataclass
class Message:
    """A single chat message."""

    content: str
    is_user: bool
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)
    library_id: str | None = None


@dataclass
class Conversation:
    """A titled sequence of messages.

    Attributes:
        title: Display title.
        messages: Messages in chronological order.
        id: Unique identifier; also the source_id of the conversation's
            indexed documents.
        created_at: When the conversation was started.
        updated_at: When the conversation last changed.
        library_id: Library the conversation was held against, if any.
        model_used: Chat model that produced the replies, if known.
    """

    title: str
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    library_id: str | None = None
    model_used: str | None = None
