import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from edms.db import Base


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DocumentType(enum.Enum):
    PL = "PL"  # policy
    PR = "PR"  # procedure
    WI = "WI"  # work instruction
    FM = "FM"  # form
    TD = "TD"  # technical document
    TR = "TR"  # training material
    RC = "RC"  # record


class DocumentStatus(enum.Enum):
    draft = "draft"
    review = "review"
    published = "published"
    archived = "archived"
    disposed = "disposed"


class SecurityLevel(enum.Enum):
    public = "public"
    internal = "internal"
    confidential = "confidential"
    restricted = "restricted"

    @property
    def rank(self) -> int:
        return _SECURITY_RANKS[self]


_SECURITY_RANKS = {
    SecurityLevel.public: 0,
    SecurityLevel.internal: 1,
    SecurityLevel.confidential: 2,
    SecurityLevel.restricted: 3,
}


class PermissionType(enum.Enum):
    read = "read"
    write = "write"
    approve = "approve"
    admin = "admin"


class WorkflowDecision(enum.Enum):
    approved = "approved"
    rejected = "rejected"
    returned = "returned"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("document_code", name="uq_documents_document_code"),
        Index("ix_documents_author_id", "author_id"),
        Index("ix_documents_status", "status"),
        Index("ix_documents_department", "department"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_code: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    type: Mapped[DocumentType] = mapped_column(Enum(DocumentType), nullable=False)
    department: Mapped[str] = mapped_column(String(120), nullable=False)
    version: Mapped[str] = mapped_column(String(16), nullable=False, default="1.0")
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False, default=DocumentStatus.draft
    )
    security_level: Mapped[SecurityLevel] = mapped_column(
        Enum(SecurityLevel), nullable=False, default=SecurityLevel.internal
    )

    author_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    approver_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )

    review_cycle: Mapped[int] = mapped_column(Integer, nullable=False, default=365)
    retention_period: Mapped[int] = mapped_column(
        Integer, nullable=False, default=2555
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_review_date: Mapped[date | None] = mapped_column(Date)
    disposal_date: Mapped[date | None] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    author = relationship("User", foreign_keys=[author_id])
    reviewer = relationship("User", foreign_keys=[reviewer_id])
    approver = relationship("User", foreign_keys=[approver_id])
    permissions = relationship("DocumentPermission", back_populates="document")
    transitions = relationship(
        "WorkflowTransition",
        back_populates="document",
        order_by="WorkflowTransition.transitioned_at.desc()",
    )
    versions = relationship(
        "DocumentVersion",
        back_populates="document",
        order_by="DocumentVersion.created_at.desc()",
    )


# ---------------------------------------------------------------------------
# Explicit permission grants (soft-revoked, never deleted)
# ---------------------------------------------------------------------------


class DocumentPermission(Base):
    __tablename__ = "document_permissions"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (department IS NULL)",
            name="ck_document_permissions_single_target",
        ),
        Index("ix_document_permissions_document_id", "document_id"),
        Index("ix_document_permissions_user_id", "user_id"),
        Index("ix_document_permissions_department", "department"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    department: Mapped[str | None] = mapped_column(String(120))
    permission_type: Mapped[PermissionType] = mapped_column(
        Enum(PermissionType), nullable=False
    )
    granted_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    revoked_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    document = relationship("Document", back_populates="permissions")
    user = relationship("User", foreign_keys=[user_id])
    grantor = relationship("User", foreign_keys=[granted_by])


# ---------------------------------------------------------------------------
# Workflow transitions (immutable, no updated_at)
# ---------------------------------------------------------------------------


class WorkflowTransition(Base):
    __tablename__ = "workflow_transitions"
    __table_args__ = (
        Index("ix_workflow_transitions_document_id", "document_id"),
        Index("ix_workflow_transitions_transitioned_by", "transitioned_by"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    from_status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False
    )
    to_status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus), nullable=False
    )
    decision: Mapped[WorkflowDecision | None] = mapped_column(Enum(WorkflowDecision))
    comment: Mapped[str | None] = mapped_column(Text)
    transitioned_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    transitioned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(512))
    session_id: Mapped[str | None] = mapped_column(String(128))
    # No updated_at; immutable record

    document = relationship("Document", back_populates="transitions")
    actor = relationship("User", foreign_keys=[transitioned_by])


# ---------------------------------------------------------------------------
# Version history (metadata only; content storage is out of scope)
# ---------------------------------------------------------------------------


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "version", name="uq_document_versions_document_version"
        ),
        Index("ix_document_versions_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    # The version being superseded, as it stood before the bump
    version: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[DocumentStatus] = mapped_column(Enum(DocumentStatus), nullable=False)
    change_reason: Mapped[str] = mapped_column(Text, nullable=False)
    change_summary: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    document = relationship("Document", back_populates="versions")
    creator = relationship("User", foreign_keys=[created_by])
