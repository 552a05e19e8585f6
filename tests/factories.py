import uuid
from datetime import datetime, timedelta, timezone

from edms.models.document import (
    Document,
    DocumentPermission,
    DocumentStatus,
    DocumentType,
    PermissionType,
    SecurityLevel,
)
from edms.models.user import User, UserRole


def make_user(db_session, *, role="user", department="QC", name="Tester", is_active=True):
    user = User(
        email=f"user-{uuid.uuid4().hex[:8]}@test.com",
        name=name,
        department=department,
        role=UserRole(role),
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def make_document(
    db_session,
    author,
    *,
    doc_type="TD",
    department=None,
    status="draft",
    security_level="internal",
    reviewer=None,
    approver=None,
    next_review_date=None,
):
    doc = Document(
        document_code=f"{doc_type}-{uuid.uuid4().hex[:8]}",
        title=f"doc_{uuid.uuid4().hex[:8]}",
        type=DocumentType(doc_type),
        department=department or author.department,
        status=DocumentStatus(status),
        security_level=SecurityLevel(security_level),
        author_id=author.id,
        reviewer_id=reviewer.id if reviewer else None,
        approver_id=approver.id if approver else None,
        next_review_date=next_review_date,
    )
    db_session.add(doc)
    db_session.commit()
    db_session.refresh(doc)
    return doc


def make_grant(
    db_session,
    document,
    granted_by,
    *,
    user=None,
    department=None,
    permission_type="read",
    expires_in_days=None,
    is_active=True,
):
    expires_at = None
    if expires_in_days is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)
    grant = DocumentPermission(
        document_id=document.id,
        user_id=user.id if user else None,
        department=department,
        permission_type=PermissionType(permission_type),
        granted_by=granted_by.id,
        expires_at=expires_at,
        is_active=is_active,
    )
    db_session.add(grant)
    db_session.commit()
    db_session.refresh(grant)
    return grant
