from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from edms.api.deps import get_actor_id, get_db, get_request_context
from edms.schemas.audit import AuditEventRead
from edms.schemas.common import ListResponse
from edms.services import audit as audit_service
from edms.services.audit import RequestContext
from edms.services.authorization import require_permission
from edms.services.vocabulary import Action, ResourceType

router = APIRouter(prefix="/audit-events", tags=["audit"])


@router.get("", response_model=ListResponse[AuditEventRead])
def list_audit_events(
    actor_id_filter: str | None = Query(default=None, alias="actor_id"),
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    outcome: str | None = Query(
        default=None, pattern="^(allowed|denied|success|failure|error)$"
    ),
    order_by: str = Query(default="occurred_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    require_permission(
        db, actor_id, Action.VIEW_AUDIT_LOGS, ResourceType.audit_log, None, context
    )
    db.commit()
    return audit_service.audit_events.list_response(
        db,
        actor_id_filter,
        action,
        resource_type,
        resource_id,
        outcome,
        order_by,
        order_dir,
        limit,
        offset,
    )
