import enum
import logging
import uuid
from dataclasses import dataclass, field

from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.orm import Session

from edms.exceptions import AuditFailure
from edms.models.audit import AuditEvent, AuditOutcome
from edms.services.common import apply_ordering, apply_pagination, try_uuid
from edms.services.response import ListResponseMixin

# Separate channel for audit sink failures; never reaches callers
failure_logger = logging.getLogger("edms.audit.failures")

AUDIT_APPEND_FAILURES = Counter(
    "edms_audit_append_failures_total",
    "Audit entries that could not be written",
    ["action"],
)


@dataclass(frozen=True)
class RequestContext:
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None


@dataclass
class AuditEntry:
    action: str
    resource_type: str
    outcome: AuditOutcome
    actor_id: uuid.UUID | str | None = None
    resource_id: uuid.UUID | str | None = None
    details: dict = field(default_factory=dict)
    context: RequestContext | None = None

    def to_model(self) -> AuditEvent:
        context = self.context or RequestContext()
        return AuditEvent(
            actor_id=try_uuid(self.actor_id),
            action=_value(self.action),
            resource_type=_value(self.resource_type),
            resource_id=str(self.resource_id) if self.resource_id is not None else None,
            outcome=self.outcome,
            details=_jsonable(self.details),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            session_id=context.session_id,
        )


def _value(item) -> str:
    return item.value if isinstance(item, enum.Enum) else str(item)


def _jsonable(value):
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class AuditRecorder:
    """Append-only sink. ``append`` must never raise."""

    def append(self, entry: AuditEntry) -> None:
        raise NotImplementedError


class NullAuditRecorder(AuditRecorder):
    def append(self, entry: AuditEntry) -> None:
        return None


class SqlAuditRecorder(AuditRecorder):
    """Writes entries through the caller's session inside a SAVEPOINT.

    A failed append rolls back only its own savepoint, so the caller's
    transaction and the decision being recorded are unaffected.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: AuditEntry) -> None:
        try:
            with self.db.begin_nested():
                self.db.add(entry.to_model())
        except Exception as exc:
            record_failure(entry, exc)


def record_failure(entry: AuditEntry, exc: Exception) -> AuditFailure:
    failure = AuditFailure(
        f"Audit append failed for {_value(entry.action)} on "
        f"{_value(entry.resource_type)}/{entry.resource_id}: {exc}",
        details={
            "action": _value(entry.action),
            "resource_type": _value(entry.resource_type),
            "resource_id": str(entry.resource_id) if entry.resource_id is not None else None,
            "actor_id": str(entry.actor_id) if entry.actor_id is not None else None,
        },
    )
    failure.__cause__ = exc
    AUDIT_APPEND_FAILURES.labels(action=failure.details["action"]).inc()
    failure_logger.error(
        failure.message,
        exc_info=exc,
        extra={"audit_failure": failure.details},
    )
    return failure


def safe_append(recorder: AuditRecorder, entry: AuditEntry) -> None:
    """Guard for recorders supplied by callers."""
    try:
        recorder.append(entry)
    except Exception as exc:
        record_failure(entry, exc)


# ---------------------------------------------------------------------------
# AuditEvents (read side)
# ---------------------------------------------------------------------------


class AuditEvents(ListResponseMixin):
    @staticmethod
    def list(
        db: Session,
        actor_id: str | None,
        action: str | None,
        resource_type: str | None,
        resource_id: str | None,
        outcome: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[AuditEvent]:
        stmt = select(AuditEvent)
        if actor_id is not None:
            stmt = stmt.where(AuditEvent.actor_id == try_uuid(actor_id))
        if action is not None:
            stmt = stmt.where(AuditEvent.action == action.upper())
        if resource_type is not None:
            stmt = stmt.where(AuditEvent.resource_type == resource_type.lower())
        if resource_id is not None:
            stmt = stmt.where(AuditEvent.resource_id == str(resource_id))
        if outcome is not None:
            stmt = stmt.where(AuditEvent.outcome == AuditOutcome(outcome))
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {"occurred_at": AuditEvent.occurred_at, "action": AuditEvent.action},
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()


audit_events = AuditEvents()
