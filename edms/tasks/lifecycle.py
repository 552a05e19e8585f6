from datetime import datetime, time, timezone

from edms.celery_app import celery_app
from edms.logging import get_logger

logger = get_logger(__name__)


def _already_flagged(db, action, document, due_date) -> bool:
    from sqlalchemy import select

    from edms.models.audit import AuditEvent

    since = datetime.combine(due_date, time.min, tzinfo=timezone.utc)
    stmt = select(AuditEvent.id).where(
        AuditEvent.action == action.value,
        AuditEvent.resource_id == str(document.id),
        AuditEvent.occurred_at >= since,
    )
    return db.scalars(stmt).first() is not None


@celery_app.task(name="edms.tasks.lifecycle.expire_permissions", ignore_result=True)
def expire_permissions() -> None:
    """Deactivate grants whose ``expires_at`` has passed."""
    from edms.db import SessionLocal
    from edms.models.audit import AuditOutcome
    from edms.models.document import DocumentPermission
    from edms.services.audit import AuditEntry, SqlAuditRecorder
    from edms.services.vocabulary import AuditAction, ResourceType

    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)
        expired = (
            db.query(DocumentPermission)
            .filter(
                DocumentPermission.is_active.is_(True),
                DocumentPermission.expires_at.is_not(None),
                DocumentPermission.expires_at <= now,
            )
            .all()
        )

        recorder = SqlAuditRecorder(db)
        count = 0
        for grant in expired:
            try:
                grant.is_active = False
                recorder.append(
                    AuditEntry(
                        action=AuditAction.PERMISSION_EXPIRED,
                        resource_type=ResourceType.permission,
                        resource_id=grant.id,
                        outcome=AuditOutcome.success,
                        details={
                            "document_id": grant.document_id,
                            "user_id": grant.user_id,
                            "department": grant.department,
                            "permission_type": grant.permission_type,
                        },
                    )
                )
                db.commit()
                count += 1
            except Exception as e:
                db.rollback()
                logger.warning(
                    "permission_expiry_failed",
                    permission_id=str(grant.id),
                    error=str(e),
                )

        logger.info("permissions_expired", count=count)
    except Exception as e:
        logger.exception("permission_expiry_run_failed", error=str(e))
    finally:
        db.close()


def _flag_due(task_name: str, status, date_column, action) -> int:
    from edms.db import SessionLocal
    from edms.models.audit import AuditOutcome
    from edms.models.document import Document
    from edms.services.audit import AuditEntry, SqlAuditRecorder
    from edms.services.vocabulary import ResourceType

    db = SessionLocal()
    count = 0
    try:
        today = datetime.now(timezone.utc).date()
        due = (
            db.query(Document)
            .filter(
                Document.status == status,
                date_column.is_not(None),
                date_column <= today,
            )
            .all()
        )

        recorder = SqlAuditRecorder(db)
        for document in due:
            due_date = getattr(document, date_column.key)
            if _already_flagged(db, action, document, due_date):
                continue
            recorder.append(
                AuditEntry(
                    action=action,
                    resource_type=ResourceType.document,
                    resource_id=document.id,
                    outcome=AuditOutcome.success,
                    details={
                        "document_code": document.document_code,
                        "department": document.department,
                        date_column.key: due_date.isoformat(),
                    },
                )
            )
            count += 1
        db.commit()
        logger.info("documents_flagged", task=task_name, count=count)
    except Exception as e:
        db.rollback()
        logger.exception("flag_run_failed", task=task_name, error=str(e))
    finally:
        db.close()
    return count


@celery_app.task(name="edms.tasks.lifecycle.flag_review_due", ignore_result=True)
def flag_review_due() -> None:
    """Record REVIEW_DUE for published documents past ``next_review_date``."""
    from edms.models.document import Document, DocumentStatus
    from edms.services.vocabulary import AuditAction

    _flag_due(
        "flag_review_due",
        DocumentStatus.published,
        Document.next_review_date,
        AuditAction.REVIEW_DUE,
    )


@celery_app.task(name="edms.tasks.lifecycle.flag_disposal_due", ignore_result=True)
def flag_disposal_due() -> None:
    """Record DISPOSAL_DUE for archived documents past ``disposal_date``."""
    from edms.models.document import Document, DocumentStatus
    from edms.services.vocabulary import AuditAction

    _flag_due(
        "flag_disposal_due",
        DocumentStatus.archived,
        Document.disposal_date,
        AuditAction.DISPOSAL_DUE,
    )
