from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from edms.config import settings
from edms.exceptions import (
    EDMSError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from edms.models.audit import AuditOutcome
from edms.models.document import Document, DocumentStatus, DocumentType, DocumentVersion
from edms.models.user import User
from edms.schemas.document import DocumentCreate, DocumentUpdate, DocumentVersionCreate
from edms.services.audit import AuditEntry, RequestContext, SqlAuditRecorder, safe_append
from edms.services.authorization import get_resolver, require_permission
from edms.services.common import apply_ordering, apply_pagination, coerce_uuid, try_uuid
from edms.services.response import ListResponseMixin
from edms.services.store import store_errors
from edms.services.vocabulary import (
    AUDIT_ALIASES,
    DEPARTMENTS,
    Action,
    AuditAction,
    ResourceType,
)
from edms.services.workflow import get_workflow_engine

logger = logging.getLogger(__name__)


def next_document_code(db: Session, doc_type: DocumentType, department: str) -> str:
    """``<TYPE>-<DEPT>-<NNN>``, numbered per type and department."""
    prefix = f"{doc_type.value}-{department}-"
    existing = db.scalar(
        select(func.count(Document.id)).where(Document.document_code.like(f"{prefix}%"))
    )
    sequence = (existing or 0) + 1
    while db.scalars(
        select(Document.id).where(Document.document_code == f"{prefix}{sequence:03d}")
    ).first():
        sequence += 1
    return f"{prefix}{sequence:03d}"


def _require_user(db: Session, user_id, label: str) -> None:
    if user_id is None:
        return
    user = db.get(User, coerce_uuid(user_id))
    if not user or not user.is_active:
        raise ValidationError(f"{label} not found or inactive")


def _audit(db: Session, action: AuditAction, document: Document, actor_id, details, context):
    SqlAuditRecorder(db).append(
        AuditEntry(
            action=action,
            resource_type=ResourceType.document,
            resource_id=document.id,
            outcome=AuditOutcome.success,
            actor_id=actor_id,
            details=details,
            context=context,
        )
    )


class Documents(ListResponseMixin):
    @staticmethod
    def create(
        db: Session,
        payload: DocumentCreate,
        actor_id,
        context: RequestContext | None = None,
    ) -> Document:
        require_permission(
            db, actor_id, Action.CREATE_DOCUMENT, ResourceType.document, None, context
        )
        if payload.department not in DEPARTMENTS:
            raise ValidationError(f"Invalid department: {payload.department}")
        _require_user(db, payload.reviewer_id, "Reviewer")
        _require_user(db, payload.approver_id, "Approver")

        data = payload.model_dump()
        if data["review_cycle"] is None:
            data["review_cycle"] = settings.default_review_cycle_days
        if data["retention_period"] is None:
            data["retention_period"] = settings.default_retention_period_days
        document = Document(
            **data,
            document_code=next_document_code(db, payload.type, payload.department),
            status=DocumentStatus.draft,
            author_id=coerce_uuid(actor_id),
        )
        db.add(document)
        db.flush()
        _audit(
            db,
            AuditAction.DOCUMENT_CREATED,
            document,
            actor_id,
            {"document_code": document.document_code, "type": document.type},
            context,
        )
        db.commit()
        db.refresh(document)
        logger.info("Created document %s (%s)", document.id, document.document_code)
        return document

    @staticmethod
    def get(
        db: Session, document_id: str, actor_id, context: RequestContext | None = None
    ) -> Document:
        document = db.get(Document, try_uuid(document_id)) if try_uuid(document_id) else None
        if not document:
            raise NotFoundError("Document not found")
        require_permission(
            db, actor_id, Action.VIEW_DOCUMENT, ResourceType.document, document.id, context
        )
        db.commit()
        return document

    @staticmethod
    def list(
        db: Session,
        actor_id,
        status: str | None,
        doc_type: str | None,
        department: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Document]:
        stmt = select(Document)
        try:
            if status is not None:
                stmt = stmt.where(Document.status == DocumentStatus(status))
            if doc_type is not None:
                stmt = stmt.where(Document.type == DocumentType(doc_type))
        except ValueError as exc:
            raise ValidationError(str(exc))
        if department is not None:
            stmt = stmt.where(Document.department == department)
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "created_at": Document.created_at,
                "updated_at": Document.updated_at,
                "document_code": Document.document_code,
                "title": Document.title,
            },
        )
        resolver = get_resolver(db)
        return [
            document
            for document in db.scalars(apply_pagination(stmt, limit, offset)).all()
            if resolver.evaluate(
                actor_id, Action.VIEW_DOCUMENT, ResourceType.document, document.id
            ).allowed
        ]

    @staticmethod
    def update(
        db: Session,
        document_id: str,
        payload: DocumentUpdate,
        actor_id,
        context: RequestContext | None = None,
    ) -> Document:
        document = db.get(Document, try_uuid(document_id)) if try_uuid(document_id) else None
        if not document:
            raise NotFoundError("Document not found")
        require_permission(
            db, actor_id, Action.EDIT_DOCUMENT, ResourceType.document, document.id, context
        )
        data = payload.model_dump(exclude_unset=True)
        _require_user(db, data.get("reviewer_id"), "Reviewer")
        _require_user(db, data.get("approver_id"), "Approver")
        for key, value in data.items():
            if key in ("review_cycle", "retention_period") and value is None:
                continue
            setattr(document, key, value)
        _audit(db, AuditAction.DOCUMENT_UPDATED, document, actor_id, {"fields": sorted(data)}, context)
        db.commit()
        db.refresh(document)
        logger.info("Updated document %s", document.id)
        return document

    @staticmethod
    def delete(
        db: Session,
        document_id: str,
        actor_id,
        context: RequestContext | None = None,
    ) -> Document:
        """Soft delete: the document is archived, never removed.

        Administrators may delete any document; authors only their own drafts.
        """
        document = db.get(Document, try_uuid(document_id)) if try_uuid(document_id) else None
        if not document:
            raise NotFoundError("Document not found")
        own_draft = (
            document.status is DocumentStatus.draft
            and document.author_id == try_uuid(actor_id)
        )
        if not own_draft:
            require_permission(
                db, actor_id, Action.DELETE_DOCUMENT, ResourceType.document, document.id, context
            )
        original_status = document.status
        result = get_workflow_engine(db).transition_status(
            document.id,
            DocumentStatus.archived,
            actor_id,
            comment="Document deleted",
            context=context,
        )
        if not result.success:
            raise _transition_error(result)
        db.refresh(document)
        _audit(
            db,
            AUDIT_ALIASES[Action.DELETE_DOCUMENT],
            document,
            actor_id,
            {
                "document_code": document.document_code,
                "title": document.title,
                "original_status": original_status,
                "transition_id": result.transition_id,
            },
            context,
        )
        db.commit()
        logger.info("Deleted (archived) document %s", document.id)
        return document

    @staticmethod
    def create_version(
        db: Session,
        document_id: str,
        payload: DocumentVersionCreate,
        actor_id,
        context: RequestContext | None = None,
    ) -> DocumentVersion:
        document = db.get(Document, try_uuid(document_id)) if try_uuid(document_id) else None
        if not document:
            raise NotFoundError("Document not found")
        require_permission(
            db, actor_id, Action.CREATE_VERSION, ResourceType.document, document.id, context
        )
        current = document.version
        if _version_key(payload.version) <= _version_key(current):
            raise ValidationError(
                f"Version {payload.version} must be greater than current version {current}",
                details={"current_version": current},
            )

        entry = DocumentVersion(
            document_id=document.id,
            version=current,
            status=document.status,
            change_reason=payload.change_reason,
            change_summary=payload.change_summary,
            created_by=coerce_uuid(actor_id),
        )
        with store_errors("create_version"):
            updated = db.execute(
                update(Document)
                .where(Document.id == document.id, Document.version == current)
                .values(version=payload.version, updated_at=datetime.now(timezone.utc))
            ).rowcount
            if updated != 1:
                db.rollback()
                raise PersistenceError(
                    "Document version changed concurrently; reload and retry",
                    retryable=True,
                )
            db.add(entry)
            db.flush()
            _audit(
                db,
                AUDIT_ALIASES[Action.CREATE_VERSION],
                document,
                actor_id,
                {
                    "old_version": current,
                    "new_version": payload.version,
                    "change_reason": payload.change_reason,
                },
                context,
            )
            db.commit()
        db.refresh(entry)
        db.refresh(document)
        logger.info("Document %s moved to version %s", document.id, document.version)
        return entry

    @staticmethod
    def version_history(
        db: Session, document_id: str, actor_id, context: RequestContext | None = None
    ) -> list[DocumentVersion]:
        document = db.get(Document, try_uuid(document_id)) if try_uuid(document_id) else None
        if not document:
            raise NotFoundError("Document not found")
        require_permission(
            db,
            actor_id,
            Action.VIEW_VERSION_HISTORY,
            ResourceType.document,
            document.id,
            context,
        )
        stmt = (
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document.id)
            .order_by(DocumentVersion.created_at.desc())
        )
        with store_errors("version_history"):
            history = list(db.scalars(stmt).all())
        safe_append(
            SqlAuditRecorder(db),
            AuditEntry(
                action=AUDIT_ALIASES[Action.VIEW_VERSION_HISTORY],
                resource_type=ResourceType.document,
                resource_id=document.id,
                outcome=AuditOutcome.success,
                actor_id=actor_id,
                details={"version_count": len(history), "current_version": document.version},
                context=context,
            ),
        )
        db.commit()
        return history

    @staticmethod
    def due_for_review(db: Session, actor_id, days_ahead: int = 30) -> list[Document]:
        """Published documents whose next review falls within ``days_ahead`` days."""
        if days_ahead < 0:
            raise ValidationError("days_ahead must not be negative")
        actor = db.get(User, try_uuid(actor_id)) if try_uuid(actor_id) else None
        if not actor or not actor.is_active:
            raise NotFoundError("User not found or inactive")
        cutoff = datetime.now(timezone.utc).date() + timedelta(days=days_ahead)
        stmt = (
            select(Document)
            .where(
                Document.status == DocumentStatus.published,
                Document.next_review_date.is_not(None),
                Document.next_review_date <= cutoff,
            )
            .order_by(Document.next_review_date.asc())
        )
        with store_errors("due_for_review"):
            candidates = db.scalars(stmt).all()
        resolver = get_resolver(db)
        return [
            document
            for document in candidates
            if resolver.evaluate(
                actor.id, Action.VIEW_DOCUMENT, ResourceType.document, document.id
            ).allowed
        ]


def _version_key(version: str) -> tuple[int, int]:
    major, minor = version.split(".")
    return int(major), int(minor)


def _transition_error(result) -> EDMSError:
    if result.error == "not_found":
        return NotFoundError(result.reason)
    if result.error == "denied":
        return PermissionDeniedError(result.reason)
    if result.error in ("conflict", "busy"):
        return PersistenceError(result.reason, retryable=True)
    if result.error == "error":
        return PersistenceError(result.reason, retryable=False)
    return ValidationError(result.reason)


documents = Documents()
