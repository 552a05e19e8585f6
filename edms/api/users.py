from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from edms.api.deps import get_actor_id, get_db, get_request_context
from edms.schemas.common import ListResponse
from edms.schemas.user import UserCreate, UserRead, UserUpdate
from edms.services import users as user_service
from edms.services.audit import RequestContext
from edms.services.authorization import require_permission
from edms.services.vocabulary import Action, ResourceType

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return user_service.users.create(db, payload, actor_id, context)


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    require_permission(db, actor_id, Action.VIEW_USERS, ResourceType.user, user_id, context)
    db.commit()
    return user_service.users.get(db, user_id)


@router.get("", response_model=ListResponse[UserRead])
def list_users(
    department: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    require_permission(db, actor_id, Action.VIEW_USERS, ResourceType.user, None, context)
    db.commit()
    return user_service.users.list_response(
        db, department, role, is_active, order_by, order_dir, limit, offset
    )


@router.patch("/{user_id}", response_model=UserRead)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return user_service.users.update(db, user_id, payload, actor_id, context)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    user_service.users.deactivate(db, user_id, actor_id, context)


@router.post("/{user_id}/activate", response_model=UserRead)
def activate_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return user_service.users.activate(db, user_id, actor_id, context)
