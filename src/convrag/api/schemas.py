"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from convrag.conversations.models import Conversation
from convrag.vectorstore.models import Document, SearchResult

SearchMode = Literal["hybrid", "semantic", "keyword"]
ContextKind = Literal["general", "conversation", "code", "multi_turn"]


class DocumentOut(BaseModel):
    """A stored document."""

    id: str
    source_type: str
    source_id: str
    chunk_text: str
    chunk_index: int
    metadata: dict[str, str]
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentOut":
        return cls(
            id=document.id,
            source_type=document.source_type,
            source_id=document.source_id,
            chunk_text=document.chunk_text,
            chunk_index=document.chunk_index,
            metadata=document.metadata,
            created_at=document.created_at,
        )


class SearchHit(BaseModel):
    """A document with its relevance to the query."""

    document: DocumentOut
    score: float

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchHit":
        return cls(
            document=DocumentOut.from_document(result.document), score=result.relevance_score
        )


class SearchResponse(BaseModel):
    """Search response with results."""

    query: str
    mode: SearchMode
    results: list[SearchHit]
    total: int


class ContextRequest(BaseModel):
    """Request for assembled prompt context."""

    query: str = Field("", description="User query; ignored for multi_turn")
    kind: ContextKind = Field("general", description="Which assembly variant to use")
    scope: str | None = Field(None, description="Library id to restrict results to")
    top_k: int | None = Field(None, ge=1, le=50, description="Maximum chunks")
    source_id: str | None = Field(None, description="Conversation id for kind=conversation")
    language: str | None = Field(None, description="Language hint for kind=code")
    recent_queries: list[str] = Field(
        default_factory=list, description="Recent user messages for kind=multi_turn"
    )
    best_effort: bool = Field(
        False, description="Return empty context instead of failing on search errors"
    )


class ContextResponse(BaseModel):
    """Assembled context and its estimated size."""

    context: str
    estimated_tokens: int


class DocumentCreate(BaseModel):
    """A document to index."""

    id: str | None = Field(None, description="Document id; generated when omitted")
    source_type: str = Field(..., min_length=1)
    source_id: str = Field(..., min_length=1)
    chunk_text: str = Field(..., min_length=1)
    chunk_index: int = Field(0, ge=0)
    metadata: dict[str, str] = Field(default_factory=dict)


class DocumentQueued(BaseModel):
    """Acknowledgement that a document was queued for indexing."""

    id: str
    status: str = "queued"


class DocumentList(BaseModel):
    """A page of stored documents."""

    documents: list[DocumentOut]
    total: int


class ConversationSummary(BaseModel):
    """A conversation without its messages."""

    id: str
    title: str
    message_count: int
    library_id: str | None
    updated_at: datetime

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationSummary":
        return cls(
            id=conversation.id,
            title=conversation.title,
            message_count=len(conversation.messages),
            library_id=conversation.library_id,
            updated_at=conversation.updated_at,
        )


class SimilarConversations(BaseModel):
    """Conversations similar to a given one, most similar first."""

    conversation_id: str
    results: list[ConversationSummary]


class BackfillRequest(BaseModel):
    """Request to index existing conversations."""

    unindexed_only: bool = Field(False, description="Only conversations with nothing indexed")


class BackfillStatus(BaseModel):
    """Backfill launch result."""

    started: bool
    message: str


class BackfillReport(BaseModel):
    """Counts from a finished backfill."""

    indexed: int
    failed: int
    skipped: int
    cancelled: bool


class BackfillProgress(BaseModel):
    """Whether a backfill is running and how the last one ended."""

    running: bool
    last_report: BackfillReport | None = None
    last_error: str | None = None
