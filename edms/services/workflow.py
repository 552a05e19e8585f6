import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from edms.exceptions import NotFoundError, PermissionDeniedError, PersistenceError
from edms.models.audit import AuditOutcome
from edms.models.document import (
    Document,
    DocumentStatus,
    WorkflowDecision,
    WorkflowTransition,
)
from edms.models.user import User, UserRole
from edms.services.audit import (
    AuditEntry,
    AuditRecorder,
    RequestContext,
    SqlAuditRecorder,
    safe_append,
)
from edms.services.authorization import (
    AuthorizationResolver,
    PermissionDecision,
    allow,
    deny,
)
from edms.services.store import ResourceStore, store_errors
from edms.services.vocabulary import (
    TRANSITIONS,
    Action,
    AuditAction,
    ResourceType,
    transition_action,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionSpec:
    label: str
    requires_comment: bool = False
    decisions: tuple[WorkflowDecision, ...] = ()

    @property
    def requires_decision(self) -> bool:
        return bool(self.decisions)


_S = DocumentStatus

TRANSITION_META: dict[tuple[DocumentStatus, DocumentStatus], TransitionSpec] = {
    (_S.draft, _S.review): TransitionSpec("Submit for review"),
    (_S.draft, _S.archived): TransitionSpec("Archive draft"),
    (_S.review, _S.published): TransitionSpec(
        "Approve & publish", True, (WorkflowDecision.approved,)
    ),
    (_S.review, _S.draft): TransitionSpec(
        "Return for revision",
        True,
        (WorkflowDecision.rejected, WorkflowDecision.returned),
    ),
    (_S.review, _S.archived): TransitionSpec("Cancel & archive", True),
    (_S.published, _S.archived): TransitionSpec("Archive"),
    (_S.published, _S.review): TransitionSpec("Request re-review", True),
    (_S.archived, _S.disposed): TransitionSpec("Dispose", True),
    (_S.archived, _S.published): TransitionSpec("Restore (republish)"),
}

# Workflow verbs -> (target state, action checked against the resolver first)
WORKFLOW_ACTIONS: dict[str, tuple[DocumentStatus, Action]] = {
    "SUBMIT_FOR_REVIEW": (_S.review, Action.SUBMIT_FOR_REVIEW),
    "APPROVE": (_S.published, Action.APPROVE_DOCUMENT),
    "REJECT": (_S.draft, Action.APPROVE_DOCUMENT),
    "RETURN_FOR_REVISION": (_S.draft, Action.REVIEW_DOCUMENT),
    "PUBLISH": (_S.published, Action.PUBLISH_DOCUMENT),
    "ARCHIVE": (_S.archived, Action.ARCHIVE_DOCUMENT),
    "DISPOSE": (_S.disposed, Action.DISPOSE_DOCUMENT),
}


@dataclass(frozen=True)
class TransitionResult:
    success: bool
    from_status: DocumentStatus | None = None
    to_status: DocumentStatus | None = None
    transition_id: uuid.UUID | None = None
    reason: str | None = None
    # validation | not_found | denied | conflict | busy | error
    error: str | None = None
    retryable: bool = False


def parse_status(value) -> DocumentStatus | None:
    if isinstance(value, DocumentStatus):
        return value
    try:
        return DocumentStatus(str(value).strip().lower())
    except ValueError:
        return None


def parse_decision(value) -> WorkflowDecision | None:
    if isinstance(value, WorkflowDecision):
        return value
    try:
        return WorkflowDecision(str(value).strip().lower())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Edge rules
# ---------------------------------------------------------------------------


def _author_or_department(actor: User, document: Document) -> PermissionDecision:
    if document.author_id == actor.id:
        return allow("Document author", "edge")
    if document.department == actor.department:
        return allow("Member of the document's department", "edge")
    return deny(
        "Only the author or members of the document's department can perform "
        "this transition",
        "edge",
    )


def _author_or_reviewer(actor: User, document: Document) -> PermissionDecision:
    if actor.id in (document.author_id, document.reviewer_id):
        return allow("Author or reviewer", "edge")
    return deny("Only the author or reviewer can perform this transition", "edge")


def _approver(actor: User, document: Document) -> PermissionDecision:
    if document.approver_id is not None:
        if actor.id == document.approver_id:
            return allow("Designated approver", "edge")
        return deny("Only the designated approver can publish this document", "edge")
    if document.reviewer_id is not None and actor.id == document.reviewer_id:
        return allow("Designated reviewer (no approver assigned)", "edge")
    return deny("Only the designated approver or reviewer can publish this document", "edge")


EdgeRule = Callable[[User, Document], PermissionDecision]

EDGE_RULES: dict[tuple[DocumentStatus, DocumentStatus], EdgeRule] = {
    (_S.draft, _S.review): _author_or_department,
    (_S.published, _S.review): _author_or_department,
    (_S.review, _S.published): _approver,
    (_S.review, _S.draft): _author_or_reviewer,
    (_S.published, _S.archived): _author_or_department,
    (_S.archived, _S.published): _author_or_department,
    (_S.draft, _S.archived): _author_or_reviewer,
    (_S.review, _S.archived): _author_or_reviewer,
}


class WorkflowEngine:
    def __init__(
        self,
        db: Session,
        recorder: AuditRecorder | None = None,
        resolver: AuthorizationResolver | None = None,
        logger: logging.Logger | None = None,
    ):
        self.db = db
        self.store = ResourceStore(db)
        self.recorder = recorder or SqlAuditRecorder(db)
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or AuthorizationResolver(
            self.store, self.recorder, self.logger
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def authorize_edge(
        self,
        actor: User,
        document: Document,
        to_status: DocumentStatus,
        context: RequestContext | None = None,
    ) -> PermissionDecision:
        from_status = document.status
        if to_status not in TRANSITIONS[from_status]:
            return deny(
                f"Invalid transition from {from_status.value} to {to_status.value}",
                "edge",
            )
        if actor.role is UserRole.admin:
            return allow("Admin access", "admin")
        rule = EDGE_RULES.get((from_status, to_status))
        if rule is not None:
            return rule(actor, document)
        return self.resolver.check_permission(
            actor.id,
            transition_action(from_status, to_status),
            ResourceType.document,
            document.id,
            context=context,
        )

    def get_available_transitions(
        self, document_id, actor_id, context: RequestContext | None = None
    ) -> list[dict]:
        document = self._require_document(document_id)
        actor = self._require_actor(actor_id)
        available = []
        for target in TRANSITIONS[document.status]:
            spec = TRANSITION_META[(document.status, target)]
            decision = self.authorize_edge(actor, document, target, context)
            available.append(
                {
                    "to_status": target,
                    "label": spec.label,
                    "allowed": decision.allowed,
                    "reason": decision.reason,
                    "requires_comment": spec.requires_comment,
                    "requires_decision": spec.requires_decision,
                    "decisions": list(spec.decisions),
                }
            )
        self.db.commit()
        return available

    def get_workflow_history(
        self, document_id, actor_id, context: RequestContext | None = None
    ) -> list[WorkflowTransition]:
        document = self._require_document(document_id)
        decision = self.resolver.check_permission(
            actor_id, Action.VIEW_DOCUMENT, ResourceType.document, document.id, context
        )
        if not decision.allowed:
            self.db.commit()
            raise PermissionDeniedError(decision.reason)
        stmt = (
            select(WorkflowTransition)
            .where(WorkflowTransition.document_id == document.id)
            .order_by(WorkflowTransition.transitioned_at.desc())
        )
        with store_errors("get_workflow_history"):
            history = list(self.db.scalars(stmt).all())
        safe_append(
            self.recorder,
            AuditEntry(
                action=AuditAction.WORKFLOW_HISTORY_VIEWED,
                resource_type=ResourceType.document,
                resource_id=document.id,
                outcome=AuditOutcome.success,
                actor_id=actor_id,
                details={"transition_count": len(history)},
                context=context,
            ),
        )
        self.db.commit()
        return history

    def can_perform_workflow_action(
        self,
        document_id,
        actor_id,
        workflow_action: str,
        context: RequestContext | None = None,
    ) -> PermissionDecision:
        mapping = WORKFLOW_ACTIONS.get(str(workflow_action).strip().upper())
        if mapping is None:
            return deny(f"Unknown workflow action: {workflow_action}", "validation")
        target, required = mapping
        document = self.store.get_document(document_id)
        if document is None:
            return deny("Document not found", "document")
        actor = self.store.get_user(actor_id)
        if actor is None or not actor.is_active:
            return deny("User not found or inactive", "actor")
        general = self.resolver.check_permission(
            actor.id, required, ResourceType.document, document.id, context
        )
        if not general.allowed:
            self.db.commit()
            return general
        decision = self.authorize_edge(actor, document, target, context)
        self.db.commit()
        return decision

    def get_pending_approvals(self, actor_id) -> list[Document]:
        actor = self._require_actor(actor_id)
        stmt = select(Document).where(Document.status == DocumentStatus.review)
        if actor.role is not UserRole.admin:
            stmt = stmt.where(
                or_(Document.reviewer_id == actor.id, Document.approver_id == actor.id)
            )
        stmt = stmt.order_by(Document.updated_at.asc())
        with store_errors("get_pending_approvals"):
            return list(self.db.scalars(stmt).all())

    def get_workflow_statistics(self, department: str | None = None) -> dict:
        stmt = select(Document.status, func.count(Document.id)).group_by(
            Document.status
        )
        if department:
            stmt = stmt.where(Document.department == department)
        with store_errors("get_workflow_statistics"):
            rows = self.db.execute(stmt).all()
        by_status = {status.value: 0 for status in DocumentStatus}
        for status, count in rows:
            by_status[status.value] = count
        return {
            "department": department,
            "total": sum(by_status.values()),
            "by_status": by_status,
        }

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    def transition_status(
        self,
        document_id,
        new_status,
        actor_id,
        comment: str | None = None,
        decision=None,
        context: RequestContext | None = None,
    ) -> TransitionResult:
        target = parse_status(new_status)
        parsed_decision = parse_decision(decision) if decision is not None else None
        if target is None:
            result = TransitionResult(
                False, reason=f"Invalid workflow state: {new_status}", error="validation"
            )
        elif decision is not None and parsed_decision is None:
            result = TransitionResult(
                False,
                to_status=target,
                reason=f"Invalid workflow decision: {decision}",
                error="validation",
            )
        else:
            try:
                result = self._transition(
                    document_id, target, actor_id, comment, parsed_decision, context
                )
            except PersistenceError as exc:
                self.db.rollback()
                result = TransitionResult(
                    False,
                    to_status=target,
                    reason=exc.message,
                    error="busy" if exc.retryable else "error",
                    retryable=exc.retryable,
                )
            except Exception as exc:
                self.db.rollback()
                self.logger.exception(
                    "Transition of document %s to %s failed", document_id, target
                )
                result = TransitionResult(
                    False, to_status=target, reason=str(exc), error="error"
                )

        if not result.success:
            self._record_failure(document_id, actor_id, new_status, decision, result, context)
        return result

    def _transition(
        self,
        document_id,
        target: DocumentStatus,
        actor_id,
        comment: str | None,
        decision: WorkflowDecision | None,
        context: RequestContext | None,
    ) -> TransitionResult:
        document = self.store.get_document(document_id, for_update=True)
        if document is None:
            return TransitionResult(
                False, to_status=target, reason="Document not found", error="not_found"
            )
        from_status = document.status

        def failed(reason: str, error: str, retryable: bool = False):
            return TransitionResult(
                False,
                from_status=from_status,
                to_status=target,
                reason=reason,
                error=error,
                retryable=retryable,
            )

        actor = self.store.get_user(actor_id)
        if actor is None or not actor.is_active:
            return failed("User not found or inactive", "denied")
        if target not in TRANSITIONS[from_status]:
            return failed(
                f"Invalid transition from {from_status.value} to {target.value}",
                "validation",
            )

        authorization = self.authorize_edge(actor, document, target, context)
        if not authorization.allowed:
            return failed(
                authorization.reason,
                "busy" if authorization.retryable else "denied",
                authorization.retryable,
            )

        spec = TRANSITION_META[(from_status, target)]
        if spec.requires_comment and not (comment and comment.strip()):
            return failed(
                f"Comment is required for transition from {from_status.value} "
                f"to {target.value}",
                "validation",
            )
        if spec.requires_decision:
            if decision is None:
                return failed(
                    f"Decision is required for transition from {from_status.value} "
                    f"to {target.value}",
                    "validation",
                )
            if decision not in spec.decisions:
                allowed = ", ".join(d.value for d in spec.decisions)
                return failed(
                    f"Decision '{decision.value}' is not valid for this transition. "
                    f"Allowed: {allowed}",
                    "validation",
                )
        elif decision is not None:
            return failed(
                f"Transition from {from_status.value} to {target.value} "
                "does not take a decision",
                "validation",
            )

        now = datetime.now(timezone.utc)
        values = {"status": target, "updated_at": now}
        if target is DocumentStatus.published:
            values["published_at"] = now
            values["next_review_date"] = now.date() + timedelta(
                days=document.review_cycle
            )
            if (
                document.approver_id is None
                or document.approver_id == actor.id
                or actor.role is UserRole.admin
            ):
                values["approver_id"] = actor.id
        elif target is DocumentStatus.archived:
            values["archived_at"] = now
            values["disposal_date"] = now.date() + timedelta(
                days=document.retention_period
            )

        transition_id = uuid.uuid4()
        with store_errors("transition_status"):
            updated = self.db.execute(
                update(Document)
                .where(Document.id == document.id, Document.status == from_status)
                .values(**values)
            ).rowcount
            if updated != 1:
                self.db.rollback()
                return failed(
                    "Document status changed concurrently; reload and retry",
                    "conflict",
                    True,
                )
            self.db.add(
                WorkflowTransition(
                    id=transition_id,
                    document_id=document.id,
                    from_status=from_status,
                    to_status=target,
                    decision=decision,
                    comment=comment,
                    transitioned_by=actor.id,
                    transitioned_at=now,
                    ip_address=context.ip_address if context else None,
                    user_agent=context.user_agent if context else None,
                    session_id=context.session_id if context else None,
                )
            )
            # Part of the transition's own unit of work, unlike decision audits
            self.db.add(
                AuditEntry(
                    action=AuditAction.WORKFLOW_TRANSITION,
                    resource_type=ResourceType.document,
                    resource_id=document.id,
                    outcome=AuditOutcome.success,
                    actor_id=actor.id,
                    details={
                        "from_status": from_status,
                        "to_status": target,
                        "comment": comment,
                        "decision": decision,
                        "transition_id": transition_id,
                    },
                    context=context,
                ).to_model()
            )
            self.db.commit()

        self.logger.info(
            "Document %s transitioned %s -> %s by %s",
            document_id,
            from_status.value,
            target.value,
            actor.id,
        )
        return TransitionResult(
            True,
            from_status=from_status,
            to_status=target,
            transition_id=transition_id,
            reason=f"Document moved from {from_status.value} to {target.value}",
        )

    def _record_failure(self, document_id, actor_id, new_status, decision, result, context):
        safe_append(
            self.recorder,
            AuditEntry(
                action=AuditAction.WORKFLOW_TRANSITION_FAILED,
                resource_type=ResourceType.document,
                resource_id=document_id,
                outcome=AuditOutcome.failure,
                actor_id=actor_id,
                details={
                    "from_status": result.from_status,
                    "requested_status": str(getattr(new_status, "value", new_status)),
                    "decision": decision,
                    "reason": result.reason,
                    "error": result.error,
                },
                context=context,
            ),
        )
        try:
            self.db.commit()
        except Exception:
            self.logger.exception(
                "Could not persist failure audit for document %s", document_id
            )
            self.db.rollback()

    # ------------------------------------------------------------------

    def _require_document(self, document_id) -> Document:
        document = self.store.get_document(document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return document

    def _require_actor(self, actor_id) -> User:
        actor = self.store.get_user(actor_id)
        if actor is None or not actor.is_active:
            raise NotFoundError("User not found or inactive")
        return actor


def get_workflow_engine(db: Session) -> WorkflowEngine:
    return WorkflowEngine(db)
