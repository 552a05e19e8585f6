import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from edms.exceptions import PersistenceError
from edms.models.document import Document, DocumentPermission
from edms.models.user import User
from edms.services.common import try_uuid

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(operation: str):
    """Translate driver errors into ``PersistenceError``.

    Lock waits, statement timeouts and pool exhaustion are retryable.
    """
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        logger.warning("Store busy during %s: %s", operation, exc)
        raise PersistenceError(
            f"Store busy during {operation}", details=str(exc), retryable=True
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("Store failure during %s", operation)
        raise PersistenceError(
            f"Store failure during {operation}", details=str(exc), retryable=False
        ) from exc


class ResourceStore:
    """Read access to users, documents and grants over one session."""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id) -> User | None:
        uid = try_uuid(user_id)
        if uid is None:
            return None
        with store_errors("get_user"):
            return self.db.get(User, uid)

    def get_document(self, document_id, for_update: bool = False) -> Document | None:
        did = try_uuid(document_id)
        if did is None:
            return None
        with store_errors("get_document"):
            if not for_update:
                return self.db.get(Document, did)
            stmt = (
                select(Document)
                .where(Document.id == did)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return self.db.scalars(stmt).first()

    def list_grants(
        self,
        document_id: uuid.UUID,
        user_id: uuid.UUID,
        department: str | None,
        now: datetime | None = None,
    ) -> list[DocumentPermission]:
        """Active, unexpired grants on a document for a user or their department."""
        now = now or datetime.now(timezone.utc)
        target = DocumentPermission.user_id == user_id
        if department:
            target = or_(
                target,
                and_(
                    DocumentPermission.user_id.is_(None),
                    DocumentPermission.department == department,
                ),
            )
        stmt = select(DocumentPermission).where(
            DocumentPermission.document_id == document_id,
            DocumentPermission.is_active.is_(True),
            or_(
                DocumentPermission.expires_at.is_(None),
                DocumentPermission.expires_at > now,
            ),
            target,
        )
        with store_errors("list_grants"):
            return list(self.db.scalars(stmt).all())
