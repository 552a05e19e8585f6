"""Authorization resolver.

Decides whether an actor may perform an action on a resource. Document
decisions run through an ordered pipeline of pure rules (explicit grant,
author, department default) that stops at the first rule returning a
decision; the security and status gates run afterwards and can only turn
an allow into a deny.

Every evaluation is appended to the audit recorder. Recorder failures are
reported on a separate channel and never change a decision.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlalchemy.orm import Session

from edms.exceptions import PermissionDeniedError, PersistenceError
from edms.models.audit import AuditOutcome
from edms.models.document import Document, DocumentPermission, DocumentStatus, PermissionType
from edms.models.user import User, UserRole
from edms.services.audit import (
    AuditEntry,
    AuditRecorder,
    NullAuditRecorder,
    RequestContext,
    SqlAuditRecorder,
    safe_append,
)
from edms.services.common import try_uuid
from edms.services.store import ResourceStore
from edms.services.vocabulary import (
    ACTION_GRANT_LEVELS,
    ARCHIVED_ACTIONS,
    AUDIT_ALIASES,
    AUTHOR_ACTIONS,
    DEPARTMENT_DOCUMENT_TYPES,
    RESOURCE_ACTIONS,
    ROLE_ACTIONS,
    ROLE_CLEARANCE,
    Action,
    AuditAction,
    ResourceType,
    parse_action,
    parse_resource_type,
)


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str
    grant_type: PermissionType | None = None
    source: str | None = None
    # True only for transient store failures ("busy"); never for real denials
    retryable: bool = False

    def as_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "grant_type": self.grant_type.value if self.grant_type else None,
            "source": self.source,
            "retryable": self.retryable,
        }


def allow(reason: str, source: str, grant_type: PermissionType | None = None):
    return PermissionDecision(True, reason, grant_type=grant_type, source=source)


def deny(reason: str, source: str, retryable: bool = False):
    return PermissionDecision(False, reason, source=source, retryable=retryable)


@dataclass(frozen=True)
class DocumentRequest:
    actor: User
    document: Document
    action: Action
    grants: tuple[DocumentPermission, ...] = ()


DocumentRule = Callable[[DocumentRequest], PermissionDecision | None]
DocumentGate = Callable[[DocumentRequest, PermissionDecision], PermissionDecision]


# ---------------------------------------------------------------------------
# Document rules (first decision wins)
# ---------------------------------------------------------------------------


def explicit_grant_rule(request: DocumentRequest) -> PermissionDecision | None:
    levels = ACTION_GRANT_LEVELS.get(request.action, ())
    held = {grant.permission_type for grant in request.grants}
    # Strongest matching grant is recorded so admin grants keep their exemptions
    for level in reversed(levels):
        if level in held:
            return allow(
                f"Explicit '{level.value}' permission found",
                "grant",
                grant_type=level,
            )
    return None


def author_rule(request: DocumentRequest) -> PermissionDecision | None:
    if request.document.author_id != request.actor.id:
        return None
    if request.action in AUTHOR_ACTIONS:
        return allow("Document author", "author")
    if request.action is Action.DELETE_DOCUMENT:
        if request.document.status is DocumentStatus.draft:
            return allow("Document author may delete own draft", "author")
        return deny("Author can only delete their own draft documents", "author")
    return None


def department_default_rule(request: DocumentRequest) -> PermissionDecision | None:
    actor, document = request.actor, request.document
    allowed_types = DEPARTMENT_DOCUMENT_TYPES.get(actor.department, frozenset())
    if document.type not in allowed_types:
        return deny(
            f"User's department ({actor.department}) has no default access "
            f"to document type ({document.type.value})",
            "department",
        )
    if request.action is Action.VIEW_DOCUMENT:
        return allow("Allowed by department and document type for viewing", "department")
    if (
        request.action is Action.EDIT_DOCUMENT
        and document.status is DocumentStatus.draft
        and document.department == actor.department
    ):
        return allow("Allowed to edit draft within own department", "department")
    return None


DOCUMENT_RULES: tuple[DocumentRule, ...] = (
    explicit_grant_rule,
    author_rule,
    department_default_rule,
)


# ---------------------------------------------------------------------------
# Gates (may only flip allow -> deny)
# ---------------------------------------------------------------------------


def _admin_equivalent(request: DocumentRequest, decision: PermissionDecision) -> bool:
    return (
        request.actor.role is UserRole.admin
        or decision.grant_type is PermissionType.admin
    )


def security_gate(
    request: DocumentRequest, decision: PermissionDecision
) -> PermissionDecision:
    if not decision.allowed or decision.grant_type is PermissionType.admin:
        return decision
    clearance = ROLE_CLEARANCE[request.actor.role]
    level = request.document.security_level
    if clearance < level.rank:
        return deny(
            f"Insufficient security clearance for document level '{level.value}'. "
            f"User clearance: {clearance}, document rating: {level.rank}",
            "security",
        )
    return decision


def status_gate(
    request: DocumentRequest, decision: PermissionDecision
) -> PermissionDecision:
    if not decision.allowed:
        return decision
    status = request.document.status
    if status is DocumentStatus.disposed:
        return deny("Disposed document cannot be accessed or modified", "status")
    if (
        status is DocumentStatus.published
        and request.action in (Action.EDIT_DOCUMENT, Action.DELETE_DOCUMENT)
        and not _admin_equivalent(request, decision)
    ):
        return deny(
            "Published documents cannot be edited or deleted without "
            "admin rights on the document",
            "status",
        )
    if status is DocumentStatus.archived and request.action not in ARCHIVED_ACTIONS:
        return deny(
            "Archived document is read-only; only viewing, version restore "
            "and disposal are permitted",
            "status",
        )
    return decision


DOCUMENT_GATES: tuple[DocumentGate, ...] = (security_gate, status_gate)


def resolve_document(
    request: DocumentRequest,
    rules: Sequence[DocumentRule] = DOCUMENT_RULES,
    gates: Sequence[DocumentGate] = DOCUMENT_GATES,
) -> PermissionDecision:
    decision = None
    for rule in rules:
        decision = rule(request)
        if decision is not None:
            break
    if decision is None:
        decision = deny("No matching document permission rule", "default")
    for gate in gates:
        gated = gate(request, decision)
        # Gates never upgrade a denial
        decision = gated if not gated.allowed else decision
    return decision


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class AuthorizationResolver:
    def __init__(
        self,
        store: ResourceStore,
        recorder: AuditRecorder | None = None,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.recorder = recorder or NullAuditRecorder()
        self.logger = logger or logging.getLogger(__name__)

    def check_permission(
        self,
        actor_id,
        action,
        resource_type,
        resource_id=None,
        context: RequestContext | None = None,
    ) -> PermissionDecision:
        details: dict = {
            "action_attempted": getattr(action, "value", action),
            "resource_type": getattr(resource_type, "value", resource_type),
            "resource_id": str(resource_id) if resource_id is not None else None,
        }
        alias = AUDIT_ALIASES.get(parse_action(action))
        if alias is not None:
            details["audit_alias"] = alias.value
        try:
            decision = self._evaluate(
                actor_id, action, resource_type, resource_id, details
            )
        except PersistenceError as exc:
            decision = deny(
                f"Permission check failed: {exc.message}",
                "error",
                retryable=exc.retryable,
            )
            self._record_error(actor_id, resource_type, resource_id, exc, details, context)
        except Exception as exc:
            self.logger.exception(
                "Permission check crashed for actor=%s action=%s", actor_id, action
            )
            decision = deny(f"Permission check failed: {exc}", "error")
            self._record_error(actor_id, resource_type, resource_id, exc, details, context)

        self._record(actor_id, resource_type, resource_id, decision, details, context)
        return decision

    def evaluate(self, actor_id, action, resource_type, resource_id=None) -> PermissionDecision:
        """Same decision as ``check_permission`` without an audit entry.

        Used when filtering listings.
        """
        try:
            return self._evaluate(actor_id, action, resource_type, resource_id, {})
        except PersistenceError as exc:
            return deny(
                f"Permission check failed: {exc.message}",
                "error",
                retryable=exc.retryable,
            )

    def get_effective_permissions(
        self,
        actor_id,
        resource_type,
        resource_id=None,
        context: RequestContext | None = None,
    ) -> list[str]:
        rtype = parse_resource_type(resource_type)
        if rtype is None:
            return []
        allowed = []
        for action in RESOURCE_ACTIONS[rtype]:
            decision = self.check_permission(
                actor_id, action, rtype, resource_id, context=context
            )
            if decision.allowed:
                allowed.append(action.value)
        return allowed

    # ------------------------------------------------------------------

    def _evaluate(self, actor_id, raw_action, raw_resource_type, resource_id, details):
        action = parse_action(raw_action)
        if action is None:
            return deny(f"Invalid action: {raw_action}", "validation")
        resource_type = parse_resource_type(raw_resource_type)
        if resource_type is None:
            return deny(f"Invalid resource type: {raw_resource_type}", "validation")

        if actor_id is None or actor_id == "":
            return deny("User ID not provided", "actor")
        actor = self.store.get_user(actor_id)
        if actor is None:
            return deny("User not found", "actor")
        if not actor.is_active:
            return deny("User account is inactive", "actor")
        details["user_role"] = actor.role.value
        details["user_department"] = actor.department

        document = None
        if resource_type is ResourceType.document and resource_id is not None:
            document = self.store.get_document(resource_id)
            if document is None:
                return deny("Document not found", "document")
            details.update(
                document_status=document.status.value,
                document_type=document.type.value,
                document_department=document.department,
                document_security=document.security_level.value,
            )

        if actor.role is UserRole.admin:
            if document is not None and document.status is DocumentStatus.disposed:
                return deny("Disposed document cannot be accessed or modified", "status")
            return allow("Admin access", "admin")

        if action not in ROLE_ACTIONS[actor.role]:
            return deny(
                f"Insufficient role permissions: action '{action.value}' "
                f"not permitted for role '{actor.role.value}'",
                "role",
            )

        if (
            resource_type is ResourceType.document
            and document is None
            and action is Action.CREATE_DOCUMENT
        ):
            return allow("Role allows document creation", "role")
        if resource_type is ResourceType.audit_log and action is Action.VIEW_AUDIT_LOGS:
            return allow("Role allows viewing audit logs", "role")
        if resource_type is ResourceType.user and action is Action.EDIT_USER_PROFILE:
            if try_uuid(resource_id) == actor.id:
                return allow("Editing own profile", "role")
            return deny("User can only edit their own profile", "role")

        if document is not None:
            grants = tuple(
                self.store.list_grants(document.id, actor.id, actor.department)
            )
            if grants:
                details["grant_types"] = sorted(g.permission_type.value for g in grants)
            return resolve_document(DocumentRequest(actor, document, action, grants))

        return allow("Role permission granted", "role")

    def _record(self, actor_id, resource_type, resource_id, decision, details, context):
        safe_append(
            self.recorder,
            AuditEntry(
                action=(
                    AuditAction.PERMISSION_CHECKED
                    if decision.allowed
                    else AuditAction.PERMISSION_DENIED
                ),
                resource_type=getattr(resource_type, "value", resource_type),
                resource_id=resource_id,
                outcome=AuditOutcome.allowed if decision.allowed else AuditOutcome.denied,
                actor_id=actor_id,
                details={
                    **details,
                    "result": "allowed" if decision.allowed else "denied",
                    "reason": decision.reason,
                    "grant_type": decision.grant_type,
                    "source": decision.source,
                },
                context=context,
            ),
        )
        self.logger.debug(
            "Permission %s for actor=%s action=%s: %s",
            "allowed" if decision.allowed else "denied",
            actor_id,
            details.get("action_attempted"),
            decision.reason,
        )

    def _record_error(self, actor_id, resource_type, resource_id, exc, details, context):
        safe_append(
            self.recorder,
            AuditEntry(
                action=AuditAction.SYSTEM_ERROR,
                resource_type=getattr(resource_type, "value", resource_type),
                resource_id=resource_id,
                outcome=AuditOutcome.error,
                actor_id=actor_id,
                details={
                    **details,
                    "operation": "check_permission",
                    "error": str(exc),
                },
                context=context,
            ),
        )


def get_resolver(db: Session) -> AuthorizationResolver:
    return AuthorizationResolver(ResourceStore(db), SqlAuditRecorder(db))


def require_permission(
    db: Session,
    actor_id,
    action,
    resource_type,
    resource_id=None,
    context: RequestContext | None = None,
) -> PermissionDecision:
    """Raising form of ``check_permission`` for administration edges."""
    decision = get_resolver(db).check_permission(
        actor_id, action, resource_type, resource_id, context
    )
    if decision.allowed:
        return decision
    # Keep the denial audit entry even though the request fails
    db.commit()
    if decision.retryable:
        raise PersistenceError(decision.reason, retryable=True)
    raise PermissionDeniedError(decision.reason, details=decision.as_dict())
