import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from edms.exceptions import NotFoundError, ValidationError
from edms.models.audit import AuditOutcome
from edms.models.document import Document, DocumentPermission
from edms.models.user import User
from edms.schemas.permission import DocumentPermissionCreate
from edms.services.audit import AuditEntry, RequestContext, SqlAuditRecorder
from edms.services.authorization import require_permission
from edms.services.common import apply_ordering, apply_pagination, coerce_uuid, try_uuid
from edms.services.response import ListResponseMixin
from edms.services.vocabulary import DEPARTMENTS, Action, AuditAction, ResourceType

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _get_document(db: Session, document_id) -> Document:
    document = db.get(Document, try_uuid(document_id)) if try_uuid(document_id) else None
    if not document:
        raise NotFoundError("Document not found")
    return document


def _audit(db: Session, action: AuditAction, grant: DocumentPermission, actor_id, context):
    SqlAuditRecorder(db).append(
        AuditEntry(
            action=action,
            resource_type=ResourceType.permission,
            resource_id=grant.id,
            outcome=AuditOutcome.success,
            actor_id=actor_id,
            details={
                "document_id": grant.document_id,
                "user_id": grant.user_id,
                "department": grant.department,
                "permission_type": grant.permission_type,
                "expires_at": grant.expires_at.isoformat() if grant.expires_at else None,
            },
            context=context,
        )
    )


class DocumentPermissions(ListResponseMixin):
    @staticmethod
    def grant(
        db: Session,
        document_id: str,
        payload: DocumentPermissionCreate,
        actor_id,
        context: RequestContext | None = None,
    ) -> DocumentPermission:
        document = _get_document(db, document_id)
        require_permission(
            db, actor_id, Action.MANAGE_PERMISSIONS, ResourceType.document, document.id, context
        )
        if (payload.user_id is None) == (payload.department is None):
            raise ValidationError("Exactly one of user_id or department must be set")
        if payload.user_id is not None:
            target = db.get(User, payload.user_id)
            if not target or not target.is_active:
                raise NotFoundError("Target user not found or inactive")
        elif payload.department not in DEPARTMENTS:
            raise ValidationError(f"Invalid department: {payload.department}")
        if payload.expires_at is not None and _aware(payload.expires_at) <= datetime.now(
            timezone.utc
        ):
            raise ValidationError("expires_at must be in the future")

        grant = DocumentPermission(
            document_id=document.id,
            user_id=payload.user_id,
            department=payload.department,
            permission_type=payload.permission_type,
            granted_by=coerce_uuid(actor_id),
            expires_at=payload.expires_at,
        )
        db.add(grant)
        db.flush()
        _audit(db, AuditAction.PERMISSION_GRANTED, grant, actor_id, context)
        db.commit()
        db.refresh(grant)
        logger.info(
            "Granted %s on document %s to %s",
            grant.permission_type.value,
            document.id,
            grant.user_id or grant.department,
        )
        return grant

    @staticmethod
    def get(db: Session, permission_id: str) -> DocumentPermission:
        uid = try_uuid(permission_id)
        grant = db.get(DocumentPermission, uid) if uid else None
        if not grant:
            raise NotFoundError("Permission not found")
        return grant

    @staticmethod
    def revoke(
        db: Session,
        permission_id: str,
        actor_id,
        context: RequestContext | None = None,
    ) -> DocumentPermission:
        grant = DocumentPermissions.get(db, permission_id)
        require_permission(
            db,
            actor_id,
            Action.MANAGE_PERMISSIONS,
            ResourceType.document,
            grant.document_id,
            context,
        )
        if not grant.is_active:
            return grant
        now = datetime.now(timezone.utc)
        grant.is_active = False
        grant.expires_at = now
        grant.revoked_by = coerce_uuid(actor_id)
        grant.revoked_at = now
        _audit(db, AuditAction.PERMISSION_REVOKED, grant, actor_id, context)
        db.commit()
        db.refresh(grant)
        logger.info("Revoked permission %s", grant.id)
        return grant

    @staticmethod
    def list(
        db: Session,
        document_id: str,
        is_active: bool | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[DocumentPermission]:
        stmt = select(DocumentPermission).where(
            DocumentPermission.document_id == coerce_uuid(document_id)
        )
        if is_active is None:
            stmt = stmt.where(DocumentPermission.is_active.is_(True))
        else:
            stmt = stmt.where(DocumentPermission.is_active == is_active)
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "granted_at": DocumentPermission.granted_at,
                "expires_at": DocumentPermission.expires_at,
            },
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


document_permissions = DocumentPermissions()
