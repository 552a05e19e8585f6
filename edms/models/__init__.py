from edms.models.audit import AuditEvent, AuditOutcome  # noqa: F401
from edms.models.document import (  # noqa: F401
    Document,
    DocumentPermission,
    DocumentStatus,
    DocumentType,
    DocumentVersion,
    PermissionType,
    SecurityLevel,
    WorkflowDecision,
    WorkflowTransition,
)
from edms.models.user import User, UserRole  # noqa: F401
