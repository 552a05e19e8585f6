from fastapi import Header, Request

from edms.db import get_db
from edms.services.audit import RequestContext


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
    # Authentication happens upstream; an absent header is denied by the resolver
    return x_actor_id


def get_request_context(
    request: Request, x_session_id: str | None = Header(default=None)
) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        session_id=x_session_id,
    )


__all__ = ["get_actor_id", "get_db", "get_request_context"]
