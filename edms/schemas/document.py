from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from edms.models.document import DocumentStatus, DocumentType, SecurityLevel


class DocumentBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    type: DocumentType
    department: str = Field(min_length=1, max_length=120)
    security_level: SecurityLevel = SecurityLevel.internal
    reviewer_id: UUID | None = None
    approver_id: UUID | None = None
    review_cycle: int | None = Field(default=None, ge=1)
    retention_period: int | None = Field(default=None, ge=1)


class DocumentCreate(DocumentBase):
    pass


class DocumentUpdate(BaseModel):
    # Status only changes through workflow transitions
    title: str | None = Field(default=None, max_length=500)
    description: str | None = None
    security_level: SecurityLevel | None = None
    reviewer_id: UUID | None = None
    approver_id: UUID | None = None
    review_cycle: int | None = Field(default=None, ge=1)
    retention_period: int | None = Field(default=None, ge=1)


class DocumentRead(DocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_code: str
    version: str
    status: DocumentStatus
    author_id: UUID
    review_cycle: int
    retention_period: int
    published_at: datetime | None = None
    archived_at: datetime | None = None
    next_review_date: date | None = None
    disposal_date: date | None = None
    created_at: datetime
    updated_at: datetime


class DocumentVersionCreate(BaseModel):
    version: str = Field(pattern=r"^\d+\.\d+$", max_length=16)
    change_reason: str = Field(min_length=1)
    change_summary: str | None = None


class DocumentVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    version: str
    status: DocumentStatus
    change_reason: str
    change_summary: str | None = None
    created_by: UUID
    created_at: datetime
