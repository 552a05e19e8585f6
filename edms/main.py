from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from edms.api.audit import router as audit_router
from edms.api.documents import router as documents_router
from edms.api.permissions import router as permissions_router
from edms.api.users import router as users_router
from edms.api.workflow import router as workflow_router
from edms.config import settings
from edms.errors import register_error_handlers
from edms.logging import configure_logging

app = FastAPI(title=f"{settings.brand_name} Authorization & Workflow API")

configure_logging()
register_error_handlers(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(permissions_router)
_include_api_router(workflow_router)
_include_api_router(documents_router)
_include_api_router(users_router)
_include_api_router(audit_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
