from dataclasses import asdict

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from edms.api.deps import get_actor_id, get_db, get_request_context
from edms.schemas.document import DocumentRead
from edms.schemas.permission import PermissionDecisionRead
from edms.schemas.workflow import (
    AvailableTransitionRead,
    TransitionRequest,
    TransitionResultRead,
    WorkflowStatisticsRead,
    WorkflowTransitionRead,
)
from edms.services.audit import RequestContext
from edms.services.authorization import require_permission
from edms.services.vocabulary import Action, ResourceType
from edms.services.workflow import get_workflow_engine

router = APIRouter(tags=["workflow"])

_ERROR_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "denied": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "busy": status.HTTP_503_SERVICE_UNAVAILABLE,
    "error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.get(
    "/documents/{document_id}/transitions",
    response_model=list[AvailableTransitionRead],
)
def available_transitions(
    document_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return get_workflow_engine(db).get_available_transitions(document_id, actor_id, context)


@router.post(
    "/documents/{document_id}/transitions", response_model=TransitionResultRead
)
def transition_document(
    document_id: str,
    payload: TransitionRequest,
    response: Response,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    result = get_workflow_engine(db).transition_status(
        document_id,
        payload.to_status,
        actor_id,
        comment=payload.comment,
        decision=payload.decision,
        context=context,
    )
    if not result.success:
        response.status_code = _ERROR_STATUS.get(
            result.error, status.HTTP_400_BAD_REQUEST
        )
        if result.retryable:
            response.headers["Retry-After"] = "1"
    return asdict(result)


@router.get(
    "/documents/{document_id}/history",
    response_model=list[WorkflowTransitionRead],
)
def workflow_history(
    document_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    return get_workflow_engine(db).get_workflow_history(document_id, actor_id, context)


@router.get(
    "/documents/{document_id}/workflow-actions/{workflow_action}",
    response_model=PermissionDecisionRead,
)
def can_perform_workflow_action(
    document_id: str,
    workflow_action: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    decision = get_workflow_engine(db).can_perform_workflow_action(
        document_id, actor_id, workflow_action, context
    )
    return decision.as_dict()


@router.get("/workflow/pending", response_model=list[DocumentRead])
def pending_approvals(
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
):
    return get_workflow_engine(db).get_pending_approvals(actor_id)


@router.get("/workflow/statistics", response_model=WorkflowStatisticsRead)
def workflow_statistics(
    department: str | None = None,
    db: Session = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
    context: RequestContext = Depends(get_request_context),
):
    require_permission(
        db, actor_id, Action.VIEW_DOCUMENT, ResourceType.document, None, context
    )
    db.commit()
    return get_workflow_engine(db).get_workflow_statistics(department)
