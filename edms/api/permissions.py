from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from edms.api.deps import get_actor_id, get_db, get_request_context
from edms.schemas.common import ListResponse
from edms.schemas.permission import (
    DocumentPermissionCreate,
    DocumentPermissionRead,
    EffectivePermissionsRead,
    PermissionCheckRequest,
    PermissionDecisionRead,
)
from edms.services import permissions as permission_service
from edms.services.audit import RequestContext
from edms.services.authorization import get_resolver, require_permission
from edms.services.vocabulary import Action, ResourceType

router = APIRouter(tags=["permissions"])


@router.post("/permissions/check", response_model=PermissionDecisionRead)
def check_permission(
    payload: PermissionCheckRequest,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    decision = get_resolver(db).check_permission(
        actor_id, payload.action, payload.resource_type, payload.resource_id, context
    )
    db.commit()
    return decision.as_dict()


@router.get("/permissions/effective", response_model=EffectivePermissionsRead)
def effective_permissions(
    resource_type: str = Query(...),
    resource_id: str | None = None,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    actions = get_resolver(db).get_effective_permissions(
        actor_id, resource_type, resource_id, context
    )
    db.commit()
    return {"resource_type": resource_type, "resource_id": resource_id, "actions": actions}


# ------------------------------------------------------------------
# Grants
# ------------------------------------------------------------------


@router.post(
    "/documents/{document_id}/permissions",
    response_model=DocumentPermissionRead,
    status_code=status.HTTP_201_CREATED,
)
def grant_permission(
    document_id: str,
    payload: DocumentPermissionCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return permission_service.document_permissions.grant(
        db, document_id, payload, actor_id, context
    )


@router.get(
    "/documents/{document_id}/permissions",
    response_model=ListResponse[DocumentPermissionRead],
)
def list_document_permissions(
    document_id: str,
    is_active: bool | None = None,
    order_by: str = Query(default="granted_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    require_permission(
        db, actor_id, Action.MANAGE_PERMISSIONS, ResourceType.document, document_id, context
    )
    db.commit()
    return permission_service.document_permissions.list_response(
        db, document_id, is_active, order_by, order_dir, limit, offset
    )


@router.delete("/permissions/{permission_id}", response_model=DocumentPermissionRead)
def revoke_permission(
    permission_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return permission_service.document_permissions.revoke(
        db, permission_id, actor_id, context
    )
