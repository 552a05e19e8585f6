from celery import Celery, signals

from edms.config import settings
from edms.logging import configure_logging

celery_app = Celery(
    "edms",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["edms.tasks.lifecycle"],
)
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.beat_schedule = {
    "expire-permissions": {
        "task": "edms.tasks.lifecycle.expire_permissions",
        "schedule": settings.permission_expiry_scan_minutes * 60.0,
    },
    "flag-review-due": {
        "task": "edms.tasks.lifecycle.flag_review_due",
        "schedule": settings.review_due_scan_minutes * 60.0,
    },
    "flag-disposal-due": {
        "task": "edms.tasks.lifecycle.flag_disposal_due",
        "schedule": settings.review_due_scan_minutes * 60.0,
    },
}


@signals.setup_logging.connect
def _setup_worker_logging(**kwargs):
    configure_logging()
