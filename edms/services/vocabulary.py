"""Closed vocabularies for authorization decisions.

Present-tense ``Action`` members are the only names accepted by the
resolver. Past-tense ``AuditAction`` members exist for the audit log only;
``AUDIT_ALIASES`` maps a request action to its log synonym.
"""

import enum

from edms.models.document import DocumentStatus, DocumentType, PermissionType
from edms.models.user import UserRole


class Action(enum.Enum):
    # Documents
    VIEW_DOCUMENT = "VIEW_DOCUMENT"
    CREATE_DOCUMENT = "CREATE_DOCUMENT"
    EDIT_DOCUMENT = "EDIT_DOCUMENT"
    DELETE_DOCUMENT = "DELETE_DOCUMENT"
    REVIEW_DOCUMENT = "REVIEW_DOCUMENT"
    APPROVE_DOCUMENT = "APPROVE_DOCUMENT"
    PUBLISH_DOCUMENT = "PUBLISH_DOCUMENT"
    ARCHIVE_DOCUMENT = "ARCHIVE_DOCUMENT"
    DISPOSE_DOCUMENT = "DISPOSE_DOCUMENT"
    SUBMIT_FOR_REVIEW = "SUBMIT_FOR_REVIEW"
    # Versions
    CREATE_VERSION = "CREATE_VERSION"
    VIEW_VERSION_HISTORY = "VIEW_VERSION_HISTORY"
    RESTORE_VERSION = "RESTORE_VERSION"
    # Administration
    MANAGE_PERMISSIONS = "MANAGE_PERMISSIONS"
    VIEW_USERS = "VIEW_USERS"
    EDIT_USER_PROFILE = "EDIT_USER_PROFILE"
    MANAGE_USERS = "MANAGE_USERS"
    UPLOAD_FILES = "UPLOAD_FILES"
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"
    # Workflow edges without a dedicated rule fall back to these
    TRANSITION_DRAFT_TO_REVIEW = "TRANSITION_DRAFT_TO_REVIEW"
    TRANSITION_DRAFT_TO_ARCHIVED = "TRANSITION_DRAFT_TO_ARCHIVED"
    TRANSITION_REVIEW_TO_PUBLISHED = "TRANSITION_REVIEW_TO_PUBLISHED"
    TRANSITION_REVIEW_TO_DRAFT = "TRANSITION_REVIEW_TO_DRAFT"
    TRANSITION_REVIEW_TO_ARCHIVED = "TRANSITION_REVIEW_TO_ARCHIVED"
    TRANSITION_PUBLISHED_TO_ARCHIVED = "TRANSITION_PUBLISHED_TO_ARCHIVED"
    TRANSITION_PUBLISHED_TO_REVIEW = "TRANSITION_PUBLISHED_TO_REVIEW"
    TRANSITION_ARCHIVED_TO_DISPOSED = "TRANSITION_ARCHIVED_TO_DISPOSED"
    TRANSITION_ARCHIVED_TO_PUBLISHED = "TRANSITION_ARCHIVED_TO_PUBLISHED"


class ResourceType(enum.Enum):
    document = "document"
    version = "version"
    file = "file"
    user = "user"
    workflow = "workflow"
    permission = "permission"
    audit_log = "audit_log"
    system = "system"


class AuditAction(enum.Enum):
    PERMISSION_CHECKED = "PERMISSION_CHECKED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    PERMISSION_GRANTED = "PERMISSION_GRANTED"
    PERMISSION_REVOKED = "PERMISSION_REVOKED"
    PERMISSION_EXPIRED = "PERMISSION_EXPIRED"
    WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
    WORKFLOW_TRANSITION_FAILED = "WORKFLOW_TRANSITION_FAILED"
    WORKFLOW_HISTORY_VIEWED = "WORKFLOW_HISTORY_VIEWED"
    DOCUMENT_CREATED = "DOCUMENT_CREATED"
    DOCUMENT_VIEWED = "DOCUMENT_VIEWED"
    DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"
    DOCUMENT_APPROVED = "DOCUMENT_APPROVED"
    DOCUMENT_PUBLISHED = "DOCUMENT_PUBLISHED"
    DOCUMENT_ARCHIVED = "DOCUMENT_ARCHIVED"
    DOCUMENT_DISPOSED = "DOCUMENT_DISPOSED"
    VERSION_CREATED = "VERSION_CREATED"
    VERSION_RESTORED = "VERSION_RESTORED"
    VERSION_HISTORY_VIEWED = "VERSION_HISTORY_VIEWED"
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_ACTIVATED = "USER_ACTIVATED"
    REVIEW_DUE = "REVIEW_DUE"
    DISPOSAL_DUE = "DISPOSAL_DUE"
    SYSTEM_ERROR = "SYSTEM_ERROR"


AUDIT_ALIASES: dict[Action, AuditAction] = {
    Action.VIEW_DOCUMENT: AuditAction.DOCUMENT_VIEWED,
    Action.CREATE_DOCUMENT: AuditAction.DOCUMENT_CREATED,
    Action.EDIT_DOCUMENT: AuditAction.DOCUMENT_UPDATED,
    Action.DELETE_DOCUMENT: AuditAction.DOCUMENT_DELETED,
    Action.APPROVE_DOCUMENT: AuditAction.DOCUMENT_APPROVED,
    Action.PUBLISH_DOCUMENT: AuditAction.DOCUMENT_PUBLISHED,
    Action.ARCHIVE_DOCUMENT: AuditAction.DOCUMENT_ARCHIVED,
    Action.DISPOSE_DOCUMENT: AuditAction.DOCUMENT_DISPOSED,
    Action.CREATE_VERSION: AuditAction.VERSION_CREATED,
    Action.VIEW_VERSION_HISTORY: AuditAction.VERSION_HISTORY_VIEWED,
    Action.RESTORE_VERSION: AuditAction.VERSION_RESTORED,
    Action.MANAGE_USERS: AuditAction.USER_UPDATED,
}


# ---------------------------------------------------------------------------
# Role tables
# ---------------------------------------------------------------------------

ROLE_ACTIONS: dict[UserRole, frozenset[Action]] = {
    UserRole.admin: frozenset(Action),
    UserRole.user: frozenset(
        {
            Action.VIEW_DOCUMENT,
            Action.CREATE_DOCUMENT,
            Action.EDIT_DOCUMENT,
            Action.CREATE_VERSION,
            Action.VIEW_VERSION_HISTORY,
            Action.SUBMIT_FOR_REVIEW,
            Action.VIEW_USERS,
            Action.EDIT_USER_PROFILE,
            Action.UPLOAD_FILES,
        }
    ),
    UserRole.guest: frozenset({Action.VIEW_DOCUMENT}),
}

ROLE_CLEARANCE: dict[UserRole, int] = {
    UserRole.admin: 3,
    UserRole.user: 1,
    UserRole.guest: 0,
}


# Minimal grant levels satisfying each document action. Actions absent
# here cannot be satisfied by an explicit grant.
ACTION_GRANT_LEVELS: dict[Action, tuple[PermissionType, ...]] = {
    Action.VIEW_DOCUMENT: (
        PermissionType.read,
        PermissionType.write,
        PermissionType.approve,
        PermissionType.admin,
    ),
    Action.EDIT_DOCUMENT: (
        PermissionType.write,
        PermissionType.approve,
        PermissionType.admin,
    ),
    Action.DELETE_DOCUMENT: (PermissionType.admin,),
    Action.APPROVE_DOCUMENT: (PermissionType.approve, PermissionType.admin),
    Action.PUBLISH_DOCUMENT: (PermissionType.approve, PermissionType.admin),
    Action.ARCHIVE_DOCUMENT: (PermissionType.admin,),
    Action.DISPOSE_DOCUMENT: (PermissionType.admin,),
    Action.CREATE_VERSION: (
        PermissionType.write,
        PermissionType.approve,
        PermissionType.admin,
    ),
    Action.VIEW_VERSION_HISTORY: (
        PermissionType.read,
        PermissionType.write,
        PermissionType.approve,
        PermissionType.admin,
    ),
    Action.RESTORE_VERSION: (PermissionType.admin,),
    Action.MANAGE_PERMISSIONS: (PermissionType.admin,),
}

AUTHOR_ACTIONS = frozenset(
    {
        Action.VIEW_DOCUMENT,
        Action.EDIT_DOCUMENT,
        Action.CREATE_VERSION,
        Action.VIEW_VERSION_HISTORY,
        Action.SUBMIT_FOR_REVIEW,
    }
)

ARCHIVED_ACTIONS = frozenset(
    {Action.VIEW_DOCUMENT, Action.RESTORE_VERSION, Action.DISPOSE_DOCUMENT}
)

# Actions meaningful for each resource type; enumerated by effective permissions
RESOURCE_ACTIONS: dict[ResourceType, tuple[Action, ...]] = {
    ResourceType.document: (
        Action.VIEW_DOCUMENT,
        Action.CREATE_DOCUMENT,
        Action.EDIT_DOCUMENT,
        Action.DELETE_DOCUMENT,
        Action.REVIEW_DOCUMENT,
        Action.APPROVE_DOCUMENT,
        Action.PUBLISH_DOCUMENT,
        Action.ARCHIVE_DOCUMENT,
        Action.DISPOSE_DOCUMENT,
        Action.SUBMIT_FOR_REVIEW,
        Action.CREATE_VERSION,
        Action.VIEW_VERSION_HISTORY,
        Action.RESTORE_VERSION,
        Action.MANAGE_PERMISSIONS,
    ),
    ResourceType.version: (
        Action.CREATE_VERSION,
        Action.VIEW_VERSION_HISTORY,
        Action.RESTORE_VERSION,
    ),
    ResourceType.file: (Action.UPLOAD_FILES,),
    ResourceType.user: (
        Action.VIEW_USERS,
        Action.EDIT_USER_PROFILE,
        Action.MANAGE_USERS,
    ),
    ResourceType.workflow: tuple(
        action for action in Action if action.value.startswith("TRANSITION_")
    ),
    ResourceType.permission: (Action.MANAGE_PERMISSIONS,),
    ResourceType.audit_log: (Action.VIEW_AUDIT_LOGS,),
    ResourceType.system: (),
}


# ---------------------------------------------------------------------------
# Department defaults
# ---------------------------------------------------------------------------

def _types(*codes: str) -> frozenset[DocumentType]:
    return frozenset(DocumentType(code) for code in codes)


_ALL_TYPES = frozenset(DocumentType)

DEPARTMENT_DOCUMENT_TYPES: dict[str, frozenset[DocumentType]] = {
    "BOD": _ALL_TYPES,
    "FRANCHISE": _types("PL", "PR", "WI", "TD", "FM"),
    "TRAINING": _types("WI", "TD", "TR", "FM"),
    "MARKETING": _types("PR", "WI", "TD", "PL", "FM"),
    "QC": _types("PR", "WI", "FM", "TD", "RC"),
    "FINANCE": _types("PR", "WI", "FM", "PL", "RC"),
    "IT": _types("PR", "WI", "TD", "PL", "RC"),
    "LEGAL": _types("PL", "PR", "WI", "FM", "RC"),
    "CUSTOMER_SERVICE": _types("WI", "TD", "FM", "RC"),
    "GARAGE_ENGINEERING": _types("WI", "TD", "TR", "FM", "RC"),
    "GARAGE_QC": _types("WI", "FM", "TD", "RC"),
    "GARAGE_WAREHOUSE": _types("WI", "FM", "PR", "RC"),
    "GARAGE_MARKETING": _types("WI", "TD", "PR", "FM"),
    "GARAGE_MANAGEMENT": _ALL_TYPES,
}

DEPARTMENTS = frozenset(DEPARTMENT_DOCUMENT_TYPES)


# ---------------------------------------------------------------------------
# Workflow adjacency
# ---------------------------------------------------------------------------

TRANSITIONS: dict[DocumentStatus, tuple[DocumentStatus, ...]] = {
    DocumentStatus.draft: (DocumentStatus.review, DocumentStatus.archived),
    DocumentStatus.review: (
        DocumentStatus.published,
        DocumentStatus.draft,
        DocumentStatus.archived,
    ),
    DocumentStatus.published: (DocumentStatus.archived, DocumentStatus.review),
    DocumentStatus.archived: (DocumentStatus.disposed, DocumentStatus.published),
    DocumentStatus.disposed: (),
}


def transition_action(from_status: DocumentStatus, to_status: DocumentStatus) -> Action:
    return Action(
        f"TRANSITION_{from_status.value.upper()}_TO_{to_status.value.upper()}"
    )


def parse_action(value) -> Action | None:
    if isinstance(value, Action):
        return value
    try:
        return Action(str(value).strip().upper())
    except ValueError:
        return None


def parse_resource_type(value) -> ResourceType | None:
    if isinstance(value, ResourceType):
        return value
    try:
        return ResourceType(str(value).strip().lower())
    except ValueError:
        return None


def _assert_exhaustive() -> None:
    missing_roles = set(UserRole) - set(ROLE_ACTIONS)
    if missing_roles:
        raise RuntimeError(
            f"ROLE_ACTIONS missing roles: {sorted(r.value for r in missing_roles)}"
        )
    missing_clearance = set(UserRole) - set(ROLE_CLEARANCE)
    if missing_clearance:
        raise RuntimeError(
            f"ROLE_CLEARANCE missing roles: {sorted(r.value for r in missing_clearance)}"
        )
    missing_states = set(DocumentStatus) - set(TRANSITIONS)
    if missing_states:
        raise RuntimeError(
            f"TRANSITIONS missing states: {sorted(s.value for s in missing_states)}"
        )
    covered = {action for actions in RESOURCE_ACTIONS.values() for action in actions}
    uncovered = set(Action) - covered
    if uncovered:
        raise RuntimeError(
            f"Actions not assigned to any resource type: {sorted(a.value for a in uncovered)}"
        )
    for source, targets in TRANSITIONS.items():
        for target in targets:
            transition_action(source, target)


_assert_exhaustive()
