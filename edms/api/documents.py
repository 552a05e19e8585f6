from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from edms.api.deps import get_actor_id, get_db, get_request_context
from edms.schemas.common import ListResponse
from edms.schemas.document import (
    DocumentCreate,
    DocumentRead,
    DocumentUpdate,
    DocumentVersionCreate,
    DocumentVersionRead,
)
from edms.services import documents as document_service
from edms.services.audit import RequestContext

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
def create_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return document_service.documents.create(db, payload, actor_id, context)


@router.get("/due-for-review", response_model=list[DocumentRead])
def documents_due_for_review(
    days_ahead: int = Query(default=30, ge=0, le=3650),
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return document_service.documents.due_for_review(db, actor_id, days_ahead)


@router.get("/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return document_service.documents.get(db, document_id, actor_id, context)


@router.get("", response_model=ListResponse[DocumentRead])
def list_documents(
    status: str | None = None,
    type: str | None = None,
    department: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return document_service.documents.list_response(
        db,
        actor_id,
        status,
        type,
        department,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.patch("/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return document_service.documents.update(db, document_id, payload, actor_id, context)


@router.delete("/{document_id}", response_model=DocumentRead)
def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return document_service.documents.delete(db, document_id, actor_id, context)


@router.post(
    "/{document_id}/versions",
    response_model=DocumentVersionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_document_version(
    document_id: str,
    payload: DocumentVersionCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return document_service.documents.create_version(
        db, document_id, payload, actor_id, context
    )


@router.get("/{document_id}/versions", response_model=list[DocumentVersionRead])
def document_version_history(
    document_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return document_service.documents.version_history(db, document_id, actor_id, context)
