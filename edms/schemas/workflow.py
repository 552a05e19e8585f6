from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from edms.models.document import DocumentStatus, WorkflowDecision


class TransitionRequest(BaseModel):
    # Plain strings so unknown states reach the engine and get audited
    to_status: str = Field(min_length=1, max_length=40)
    comment: str | None = None
    decision: str | None = None


class TransitionResultRead(BaseModel):
    success: bool
    from_status: DocumentStatus | None = None
    to_status: DocumentStatus | None = None
    transition_id: UUID | None = None
    reason: str | None = None
    error: str | None = None
    retryable: bool = False


class AvailableTransitionRead(BaseModel):
    to_status: DocumentStatus
    label: str
    allowed: bool
    reason: str
    requires_comment: bool
    requires_decision: bool
    decisions: list[WorkflowDecision] = Field(default_factory=list)


class WorkflowTransitionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    from_status: DocumentStatus
    to_status: DocumentStatus
    decision: WorkflowDecision | None = None
    comment: str | None = None
    transitioned_by: UUID
    transitioned_at: datetime


class WorkflowStatisticsRead(BaseModel):
    department: str | None = None
    total: int
    by_status: dict[str, int]
