import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from edms.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from edms.models.audit import AuditOutcome
from edms.models.user import User, UserRole
from edms.schemas.user import UserCreate, UserUpdate
from edms.services.audit import AuditEntry, RequestContext, SqlAuditRecorder
from edms.services.authorization import require_permission
from edms.services.common import apply_ordering, apply_pagination, coerce_uuid, try_uuid
from edms.services.response import ListResponseMixin
from edms.services.vocabulary import DEPARTMENTS, Action, AuditAction, ResourceType

logger = logging.getLogger(__name__)


def _validate_department(department: str) -> None:
    if department not in DEPARTMENTS:
        raise ValidationError(
            f"Invalid department: {department}",
            details={"allowed": sorted(DEPARTMENTS)},
        )


def _audit(db: Session, action: AuditAction, user: User, actor_id, details, context):
    SqlAuditRecorder(db).append(
        AuditEntry(
            action=action,
            resource_type=ResourceType.user,
            resource_id=user.id,
            outcome=AuditOutcome.success,
            actor_id=actor_id,
            details=details,
            context=context,
        )
    )


class Users(ListResponseMixin):
    @staticmethod
    def create(
        db: Session,
        payload: UserCreate,
        actor_id,
        context: RequestContext | None = None,
    ) -> User:
        require_permission(db, actor_id, Action.MANAGE_USERS, ResourceType.user, None, context)
        _validate_department(payload.department)
        email = payload.email.strip().lower()
        if db.scalars(select(User).where(User.email == email)).first():
            raise ValidationError(f"User with email {email} already exists")

        data = payload.model_dump()
        data["email"] = email
        user = User(**data, created_by=coerce_uuid(actor_id))
        db.add(user)
        db.flush()
        _audit(
            db,
            AuditAction.USER_CREATED,
            user,
            actor_id,
            {"email": email, "role": user.role, "department": user.department},
            context,
        )
        db.commit()
        db.refresh(user)
        logger.info("Created user %s (%s)", user.id, user.role.value)
        return user

    @staticmethod
    def get(db: Session, user_id: str) -> User:
        user = db.get(User, try_uuid(user_id)) if try_uuid(user_id) else None
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def list(
        db: Session,
        department: str | None,
        role: str | None,
        is_active: bool | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[User]:
        stmt = select(User)
        if department is not None:
            stmt = stmt.where(User.department == department)
        if role is not None:
            try:
                stmt = stmt.where(User.role == UserRole(role))
            except ValueError:
                raise ValidationError(f"Invalid role: {role}")
        if is_active is None:
            stmt = stmt.where(User.is_active.is_(True))
        else:
            stmt = stmt.where(User.is_active == is_active)
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {"created_at": User.created_at, "name": User.name, "email": User.email},
        )
        return db.scalars(apply_pagination(stmt, limit, offset)).all()

    @staticmethod
    def update(
        db: Session,
        user_id: str,
        payload: UserUpdate,
        actor_id,
        context: RequestContext | None = None,
    ) -> User:
        user = Users.get(db, user_id)
        decision = require_permission(
            db, actor_id, Action.EDIT_USER_PROFILE, ResourceType.user, user.id, context
        )
        data = payload.model_dump(exclude_unset=True)
        privileged = {"role", "is_active"} & set(data)
        if privileged and decision.source != "admin":
            raise PermissionDeniedError(
                "Only administrators can change role or active status",
                details={"fields": sorted(privileged)},
            )
        if data.get("department") is not None:
            _validate_department(data["department"])
        for key, value in data.items():
            setattr(user, key, value)
        _audit(db, AuditAction.USER_UPDATED, user, actor_id, {"fields": sorted(data)}, context)
        db.commit()
        db.refresh(user)
        logger.info("Updated user %s", user.id)
        return user

    @staticmethod
    def deactivate(
        db: Session,
        user_id: str,
        actor_id,
        context: RequestContext | None = None,
    ) -> None:
        user = Users.get(db, user_id)
        require_permission(db, actor_id, Action.MANAGE_USERS, ResourceType.user, user.id, context)
        if user.id == try_uuid(actor_id):
            raise ValidationError("Users cannot deactivate themselves")
        user.is_active = False
        _audit(db, AuditAction.USER_DEACTIVATED, user, actor_id, {}, context)
        db.commit()
        logger.info("Deactivated user %s", user_id)

    @staticmethod
    def activate(
        db: Session,
        user_id: str,
        actor_id,
        context: RequestContext | None = None,
    ) -> User:
        user = Users.get(db, user_id)
        require_permission(db, actor_id, Action.MANAGE_USERS, ResourceType.user, user.id, context)
        if user.is_active:
            raise ValidationError("User is already active")
        user.is_active = True
        _audit(db, AuditAction.USER_ACTIVATED, user, actor_id, {}, context)
        db.commit()
        db.refresh(user)
        logger.info("Activated user %s", user.id)
        return user


users = Users()
