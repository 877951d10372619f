"""Document endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from convrag.api.deps import get_engine
from convrag.api.schemas import DocumentCreate, DocumentList, DocumentOut, DocumentQueued
from convrag.constants import DEFAULT_LIST_LIMIT
from convrag.engine import RAGEngine
from convrag.vectorstore.models import Document

router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.post("", response_model=DocumentQueued, status_code=status.HTTP_202_ACCEPTED)
async def create_document(
    request: DocumentCreate,
    engine: RAGEngine = Depends(get_engine),
) -> DocumentQueued:
    """Queue a document for background embedding and indexing."""
    fields = request.model_dump(exclude_none=True)
    document = Document(**fields)
    await engine.indexer.submit(document)
    return DocumentQueued(id=document.id)


@router.get("", response_model=DocumentList)
async def list_documents(
    source_type: str | None = Query(None),
    source_id: str | None = Query(None),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    engine: RAGEngine = Depends(get_engine),
) -> DocumentList:
    """List stored documents, newest first."""
    documents = await engine.documents.list(
        source_type=source_type, source_id=source_id, limit=limit, offset=offset
    )
    return DocumentList(
        documents=[DocumentOut.from_document(d) for d in documents],
        total=len(documents),
    )


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: str,
    engine: RAGEngine = Depends(get_engine),
) -> DocumentOut:
    """Get a stored document."""
    document = await engine.documents.get(document_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return DocumentOut.from_document(document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str,
    engine: RAGEngine = Depends(get_engine),
) -> None:
    """Delete a document with its embeddings and keyword index entry."""
    if not await engine.documents.delete(document_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
