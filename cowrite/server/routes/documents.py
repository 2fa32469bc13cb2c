"""
Working Document API Routes.

Every route is scoped to a conversation the current user owns.

Endpoints:
- GET/PATCH /api/conversations/{id}/doc - The default document
- GET/POST /api/conversations/{id}/docs - List / create documents
- GET/PATCH/DELETE /api/conversations/{id}/docs/{doc_id}
- POST /api/conversations/{id}/docs/{doc_id}/undo
- POST /api/conversations/{id}/docs/{doc_id}/redo
- POST /api/conversations/{id}/docs/{doc_id}/take-control

Lock conflicts map to 409, unknown documents to 404, and refused
operations (deleting the last document, empty history) to 400.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from cowrite.agents.state import Services
from cowrite.core.documents import (
    Document,
    DocumentConflictError,
    DocumentNotFoundError,
    HistoryEmptyError,
    LastDocumentError,
    LockHolder,
)
from cowrite.server.deps import get_services, require_conversation
from cowrite.server.models import (
    CreateDocumentRequest,
    DocumentResponse,
    UpdateDocumentRequest,
)
from cowrite.server.serializers import serialize_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations/{conversation_id}", tags=["documents"])


# ============================================================================
# ERROR TRANSLATION
# ============================================================================

@contextmanager
def document_errors() -> Iterator[None]:
    """Translate document store errors into HTTP errors."""
    try:
        yield
    except DocumentConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Doc not found")
    except (LastDocumentError, HistoryEmptyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))


def apply_document_update(
    services: Services,
    doc: Document,
    request: UpdateDocumentRequest
) -> Document:
    """
    Apply a partial update as the user.

    A content write goes through the lock arbiter and records history
    unless explicit stacks are supplied. A body that only carries
    lock_holder sets the lock unconditionally.
    """
    documents = services.documents
    sent = request.model_fields_set
    lock_holder: Optional[LockHolder] = None
    if "lock_holder" in sent:
        lock_holder = LockHolder.from_db(request.lock_holder)

    if request.title is not None:
        doc = documents.rename_document(doc.id, doc.conversation_id, request.title)

    if request.content is not None:
        doc = documents.write_document_content(
            doc.id,
            request.content,
            LockHolder.USER,
            undo_stack=request.undo_stack,
            redo_stack=request.redo_stack,
            lock_holder=lock_holder,
        )
    elif lock_holder is not None:
        doc = documents.set_lock(doc.id, lock_holder)

    return doc


# ============================================================================
# DEFAULT DOCUMENT
# ============================================================================

@router.get("/doc", response_model=DocumentResponse)
async def get_default_document(
    conversation_id: str,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    """The conversation's default document, created on first access."""
    require_conversation(services, conversation_id)
    return serialize_document(services.documents.get_document(conversation_id))


@router.patch("/doc", response_model=DocumentResponse)
async def update_default_document(
    conversation_id: str,
    request: UpdateDocumentRequest,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    require_conversation(services, conversation_id)
    with document_errors():
        doc = services.documents.get_document(conversation_id)
        doc = apply_document_update(services, doc, request)
    return serialize_document(doc)


# ============================================================================
# DOCUMENT COLLECTION
# ============================================================================

@router.get("/docs", response_model=List[DocumentResponse])
async def list_documents(
    conversation_id: str,
    services: Services = Depends(get_services)
) -> List[DocumentResponse]:
    """All documents of the conversation; the first is the default."""
    require_conversation(services, conversation_id)
    services.documents.get_document(conversation_id)
    return [serialize_document(doc) for doc in services.documents.list_documents(conversation_id)]


@router.post("/docs", response_model=DocumentResponse)
async def create_document(
    conversation_id: str,
    request: CreateDocumentRequest,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    require_conversation(services, conversation_id)
    doc = services.documents.create_document(
        conversation_id, title=request.title, content=request.content
    )
    return serialize_document(doc)


# ============================================================================
# SINGLE DOCUMENT
# ============================================================================

@router.get("/docs/{doc_id}", response_model=DocumentResponse)
async def get_document(
    conversation_id: str,
    doc_id: str,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    require_conversation(services, conversation_id)
    with document_errors():
        doc = services.documents.get_document(conversation_id, doc_id)
    return serialize_document(doc)


@router.patch("/docs/{doc_id}", response_model=DocumentResponse)
async def update_document(
    conversation_id: str,
    doc_id: str,
    request: UpdateDocumentRequest,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    """
    Update title, content and/or lock.

    Returns 409 when the agent holds the lock and content is written.
    """
    require_conversation(services, conversation_id)
    with document_errors():
        doc = services.documents.get_document(conversation_id, doc_id)
        doc = apply_document_update(services, doc, request)
    return serialize_document(doc)


@router.delete("/docs/{doc_id}")
async def delete_document(
    conversation_id: str,
    doc_id: str,
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """Delete a document; the conversation's last document is refused (400)."""
    require_conversation(services, conversation_id)
    with document_errors():
        services.documents.delete_document(doc_id, conversation_id)
    return {"success": True}


# ============================================================================
# HISTORY AND LOCK
# ============================================================================

@router.post("/docs/{doc_id}/undo", response_model=DocumentResponse)
async def undo_document(
    conversation_id: str,
    doc_id: str,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    require_conversation(services, conversation_id)
    with document_errors():
        doc = services.documents.undo(doc_id, conversation_id)
    return serialize_document(doc)


@router.post("/docs/{doc_id}/redo", response_model=DocumentResponse)
async def redo_document(
    conversation_id: str,
    doc_id: str,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    require_conversation(services, conversation_id)
    with document_errors():
        doc = services.documents.redo(doc_id, conversation_id)
    return serialize_document(doc)


@router.post("/docs/{doc_id}/take-control", response_model=DocumentResponse)
async def take_control(
    conversation_id: str,
    doc_id: str,
    services: Services = Depends(get_services)
) -> DocumentResponse:
    """
    Force the lock to the user.

    Used to reclaim a document left locked by an interrupted agent turn.
    """
    require_conversation(services, conversation_id)
    with document_errors():
        doc = services.documents.get_document(conversation_id, doc_id)
        doc = services.documents.set_lock(doc.id, LockHolder.USER)
    logger.info(f"User took control of document {doc.id}")
    return serialize_document(doc)


__all__ = ["router", "apply_document_update"]
