"""Celery app and tasks for asynchronous privilege execution."""

import logging

from celery import Celery

from stellar.core.config import settings

logger = logging.getLogger("stellar_console")

celery_app = Celery(
    "stellar_console",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    task_soft_time_limit=settings.ENGINE_CONNECT_TIMEOUT + settings.ENGINE_READ_TIMEOUT + 30,
    task_time_limit=settings.ENGINE_CONNECT_TIMEOUT + settings.ENGINE_READ_TIMEOUT + 60,
    beat_schedule={
        "redispatch-stalled-permission-requests": {
            "task": "redispatch_stalled_requests",
            "schedule": 60.0,
        },
    },
)


@celery_app.task(bind=True, name="execute_permission_request")
def execute_permission_request(self, request_id: int) -> dict:
    """Run an approved permission request and publish its outcome.

    Duplicate deliveries find the request already finished and are skipped.
    """
    from stellar.core.exceptions import StaleStateError
    from stellar.db.session import SessionLocal
    from stellar.services.cache_service import cache_service
    from stellar.services.permission_request_service import permission_request_service

    db = SessionLocal()
    try:
        try:
            record = permission_request_service.execute(db, request_id)
        except StaleStateError as e:
            logger.info("Skipping permission request %s: %s", request_id, e.message)
            return {"request_id": request_id, "status": "skipped"}

        result = {
            "request_id": request_id,
            "status": record.status.value,
            "execution_result": record.execution_result,
        }
        cache_service.publish_json(f"permission_request:{request_id}", result)
        return result
    finally:
        db.close()


@celery_app.task(name="redispatch_stalled_requests")
def redispatch_stalled_requests() -> list:
    """Periodic sweep for approved requests whose execution never ran."""
    from stellar.db.session import SessionLocal
    from stellar.services.permission_request_service import permission_request_service

    db = SessionLocal()
    try:
        return permission_request_service.redispatch_stalled(db)
    finally:
        db.close()
