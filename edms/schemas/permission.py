from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from edms.models.document import PermissionType


class PermissionCheckRequest(BaseModel):
    action: str = Field(min_length=1, max_length=80)
    resource_type: str = Field(min_length=1, max_length=40)
    resource_id: str | None = None


class PermissionDecisionRead(BaseModel):
    allowed: bool
    reason: str
    grant_type: PermissionType | None = None
    source: str | None = None
    retryable: bool = False


class EffectivePermissionsRead(BaseModel):
    resource_type: str
    resource_id: str | None = None
    actions: list[str]


class DocumentPermissionCreate(BaseModel):
    user_id: UUID | None = None
    department: str | None = Field(default=None, max_length=120)
    permission_type: PermissionType
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _single_target(self):
        if (self.user_id is None) == (self.department is None):
            raise ValueError("Exactly one of user_id or department must be set")
        return self


class DocumentPermissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    user_id: UUID | None = None
    department: str | None = None
    permission_type: PermissionType
    granted_by: UUID
    granted_at: datetime
    expires_at: datetime | None = None
    is_active: bool
    revoked_by: UUID | None = None
    revoked_at: datetime | None = None
