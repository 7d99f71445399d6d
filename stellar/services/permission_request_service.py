"""Permission request workflow: submit, preview, decide, execute.

Status changes are written with a conditional UPDATE guarded on the expected
source status, so concurrent deciders and duplicate worker deliveries can
never move a request twice. Execution runs in a Celery worker; approval only
dispatches it.
"""

import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from stellar.core.config import settings
from stellar.core.exceptions import (
    AuthorizationError, ExecutionError, ResourceNotFoundError, StaleStateError, ValidationError,
)
from stellar.executor.builtin import get_executor
from stellar.models.cluster import Cluster
from stellar.models.permission_request import PermissionRequest, RequestStatus, RequestType
from stellar.schemas.schemas import PermissionRequestPreview, PermissionRequestSubmit
from stellar.services.audit_service import audit_service
from stellar.services.session_context import SessionContext
from stellar.services.sql_composer import compose_sql

logger = logging.getLogger("stellar_console")

APPROVE_PERMISSION = "api:permission-requests:approve"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _schema_message(exc: SchemaValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ()) if p not in ("kind",))
        msg = error.get("msg", "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid permission request"


def dispatch_execution(request_id: int) -> None:
    """Hand an approved request to the Celery worker."""
    from stellar.tasks.celery_app import execute_permission_request
    execute_permission_request.delay(request_id)


class PermissionRequestService:
    """Lifecycle of permission requests from submission to execution outcome."""

    def __init__(
        self,
        dispatcher: Optional[Callable[[int], None]] = None,
        executor_factory: Optional[Callable] = None,
        allow_self_approval: Optional[bool] = None,
    ):
        self._dispatcher = dispatcher or dispatch_execution
        self._executor_factory = executor_factory or get_executor
        self.allow_self_approval = (
            settings.ALLOW_SELF_APPROVAL if allow_self_approval is None else allow_self_approval
        )

    # ---- Parsing / preview ----

    @staticmethod
    def parse_preview(payload: Dict[str, Any]) -> PermissionRequestPreview:
        try:
            return PermissionRequestPreview.model_validate(payload)
        except SchemaValidationError as e:
            raise ValidationError(_schema_message(e)) from e

    @staticmethod
    def parse_submission(payload: Dict[str, Any]) -> PermissionRequestSubmit:
        try:
            return PermissionRequestSubmit.model_validate(payload)
        except SchemaValidationError as e:
            raise ValidationError(_schema_message(e)) from e

    def preview(self, payload: Dict[str, Any]) -> str:
        """Validate a draft request and return the SQL it would run."""
        request = self.parse_preview(payload)
        return compose_sql(request.request_type, request.request_details)

    # ---- Submission ----

    def submit(self, db: Session, ctx: SessionContext, payload: Dict[str, Any]) -> int:
        """Validate and persist a new request in `pending`; returns its id.

        Raises:
            ValidationError: Malformed details, past expiry, unknown cluster,
                or an applicant without an organization.
        """
        request = self.parse_submission(payload)

        valid_until = None
        if request.valid_until is not None:
            valid_until = _as_naive_utc(request.valid_until)
            if valid_until <= _utcnow():
                raise ValidationError("valid_until must be in the future")

        cluster = db.query(Cluster).filter(
            Cluster.id == request.cluster_id, Cluster.is_active == True
        ).first()
        if not cluster:
            raise ValidationError(f"Cluster {request.cluster_id} is not available")

        if ctx.organization_id is None and not ctx.is_super_admin:
            raise ValidationError("Applicant must belong to an organization")
        if (
            cluster.organization_id is not None
            and cluster.organization_id != ctx.organization_id
            and not ctx.is_super_admin
        ):
            raise AuthorizationError("Cluster belongs to another organization")

        sql = compose_sql(request.request_type, request.request_details)
        record = PermissionRequest(
            cluster_id=cluster.id,
            applicant_id=ctx.user_id,
            applicant_org_id=ctx.organization_id,
            request_type=request.request_type,
            request_details_json=json.dumps(request.details_dict(), sort_keys=True),
            reason=request.reason,
            valid_until=valid_until,
            status=RequestStatus.pending,
            preview_sql=sql,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        audit_service.log(
            db, ctx.user_id, ctx.username, "permission_request.submitted", "permission_request",
            resource_id=record.id,
            new_value={"request_type": record.request_type.value, "sql": sql, "cluster_id": cluster.id},
            organization_id=ctx.organization_id,
        )
        logger.info("Permission request %s submitted by %s: %s", record.id, ctx.username, sql)
        return record.id

    # ---- Decisions ----

    def approve(self, db: Session, ctx: SessionContext, request_id: int,
                comment: Optional[str] = None) -> PermissionRequest:
        """Approve a pending request and dispatch its execution.

        The request passes through `approved` straight into `executing`; the
        outcome is recorded by ``execute`` once the worker has run it.
        """
        record = self._get_record(db, request_id)
        self._authorize_decision(ctx, record)
        if not self.allow_self_approval and record.applicant_id == ctx.user_id:
            raise AuthorizationError("Applicants cannot approve their own requests")
        self._expect_status(record, RequestStatus.pending)

        self._transition(
            db, request_id, RequestStatus.pending, RequestStatus.approved,
            approver_id=ctx.user_id,
            approval_comment=(comment or "").strip() or None,
            decided_at=_utcnow(),
        )
        self._transition(db, request_id, RequestStatus.approved, RequestStatus.executing)
        db.commit()

        audit_service.log(
            db, ctx.user_id, ctx.username, "permission_request.approved", "permission_request",
            resource_id=request_id,
            old_value={"status": RequestStatus.pending.value},
            new_value={"status": RequestStatus.executing.value, "comment": comment},
            organization_id=record.applicant_org_id,
        )
        logger.info("Permission request %s approved by %s", request_id, ctx.username)

        self._dispatch(request_id)

        return self._reload(db, record)

    def reject(self, db: Session, ctx: SessionContext, request_id: int, comment: str) -> PermissionRequest:
        record = self._get_record(db, request_id)
        self._authorize_decision(ctx, record)
        if not comment or not comment.strip():
            raise ValidationError("A comment is required to reject a request")
        self._expect_status(record, RequestStatus.pending)

        self._transition(
            db, request_id, RequestStatus.pending, RequestStatus.rejected,
            approver_id=ctx.user_id,
            approval_comment=comment.strip(),
            decided_at=_utcnow(),
        )
        db.commit()

        audit_service.log(
            db, ctx.user_id, ctx.username, "permission_request.rejected", "permission_request",
            resource_id=request_id,
            old_value={"status": RequestStatus.pending.value},
            new_value={"status": RequestStatus.rejected.value, "comment": comment.strip()},
            organization_id=record.applicant_org_id,
        )
        logger.info("Permission request %s rejected by %s", request_id, ctx.username)
        return self._reload(db, record)

    def cancel(self, db: Session, ctx: SessionContext, request_id: int) -> PermissionRequest:
        """Withdraw a pending request; only its applicant may do this."""
        record = self._get_record(db, request_id)
        if record.applicant_id != ctx.user_id:
            raise AuthorizationError("Only the applicant can cancel a request")
        self._expect_status(record, RequestStatus.pending)

        self._transition(db, request_id, RequestStatus.pending, RequestStatus.cancelled)
        db.commit()

        audit_service.log(
            db, ctx.user_id, ctx.username, "permission_request.cancelled", "permission_request",
            resource_id=request_id,
            old_value={"status": RequestStatus.pending.value},
            new_value={"status": RequestStatus.cancelled.value},
            organization_id=record.applicant_org_id,
        )
        return self._reload(db, record)

    # ---- Execution (worker side) ----

    def redispatch_stalled(self, db: Session, older_than_seconds: Optional[int] = None) -> List[int]:
        """Dispatch again every request left `executing` past the grace period.

        Covers approvals whose dispatch failed and workers lost mid-task.
        A duplicate delivery is harmless: only one `execute` can finish.
        """
        if older_than_seconds is None:
            older_than_seconds = settings.EXECUTION_REDISPATCH_AFTER_SECONDS
        cutoff = _utcnow() - timedelta(seconds=older_than_seconds)
        rows = (
            db.query(PermissionRequest.id)
            .filter(
                PermissionRequest.status == RequestStatus.executing,
                PermissionRequest.decided_at <= cutoff,
            )
            .order_by(PermissionRequest.id)
            .all()
        )
        dispatched = [request_id for (request_id,) in rows if self._dispatch(request_id)]
        if dispatched:
            logger.info("Re-dispatched stalled permission requests: %s", dispatched)
        return dispatched


    def execute(self, db: Session, request_id: int) -> PermissionRequest:
        """Run an `executing` request against its cluster and record the outcome.

        Engine failures never propagate: they end the request in `failed`
        with the engine's message as the execution result.

        Raises:
            StaleStateError: If the request is not (or no longer) executing,
                e.g. on a duplicate delivery.
        """
        record = self._get_record(db, request_id)
        self._expect_status(record, RequestStatus.executing)

        sql = None
        try:
            stored = PermissionRequestPreview.model_validate({
                "request_type": record.request_type,
                "request_details": json.loads(record.request_details_json),
            })
            sql = compose_sql(stored.request_type, stored.request_details)
            result = self._executor_factory(record.cluster).execute(sql)
            outcome = RequestStatus.completed
        except ExecutionError as e:
            outcome, result = RequestStatus.failed, e.message
        except Exception as e:
            logger.exception("Unexpected failure executing permission request %s", request_id)
            outcome, result = RequestStatus.failed, f"Unexpected execution failure: {e}"

        self._transition(
            db, request_id, RequestStatus.executing, outcome,
            executed_sql=sql,
            execution_result=result,
            executed_at=_utcnow(),
        )
        db.commit()

        audit_service.log(
            db, None, "system", f"permission_request.{outcome.value}", "permission_request",
            resource_id=request_id,
            old_value={"status": RequestStatus.executing.value},
            new_value={"status": outcome.value, "sql": sql, "result": result},
            organization_id=record.applicant_org_id,
        )
        if outcome is RequestStatus.completed:
            logger.info("Permission request %s completed: %s", request_id, sql)
        else:
            logger.warning("Permission request %s failed: %s", request_id, result)
        return self._reload(db, record)

    # ---- Queries ----

    def get(self, db: Session, ctx: SessionContext, request_id: int) -> PermissionRequest:
        record = self._get_record(db, request_id)
        if record.applicant_id == ctx.user_id or ctx.is_super_admin:
            return record
        if ctx.has(APPROVE_PERMISSION) and record.applicant_org_id == ctx.organization_id:
            return record
        raise AuthorizationError("Not allowed to view this request")

    def list_mine(self, db: Session, ctx: SessionContext, status: Optional[str] = None,
                  request_type: Optional[str] = None, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
        """The caller's own requests, newest first."""
        query = db.query(PermissionRequest).filter(PermissionRequest.applicant_id == ctx.user_id)
        if status:
            query = query.filter(PermissionRequest.status == self._enum(RequestStatus, status, "status"))
        if request_type:
            query = query.filter(
                PermissionRequest.request_type == self._enum(RequestType, request_type, "request_type")
            )
        return self._page(query, page, page_size)

    def list_pending(self, db: Session, ctx: SessionContext, request_type: Optional[str] = None,
                     page: int = 1, page_size: int = 10) -> Dict[str, Any]:
        """Pending requests the caller may decide: same organization unless super-admin."""
        ctx.require(APPROVE_PERMISSION)
        query = db.query(PermissionRequest).filter(PermissionRequest.status == RequestStatus.pending)
        if not ctx.is_super_admin:
            query = query.filter(PermissionRequest.applicant_org_id == ctx.organization_id)
        if request_type:
            query = query.filter(
                PermissionRequest.request_type == self._enum(RequestType, request_type, "request_type")
            )
        return self._page(query, page, page_size)

    # ---- Internals ----

    def _dispatch(self, request_id: int) -> bool:
        # The request stays `executing`; redispatch_stalled retries it later.
        try:
            self._dispatcher(request_id)
        except Exception:
            logger.exception("Dispatch of permission request %s failed, left for redispatch", request_id)
            return False
        return True

    @staticmethod
    def _get_record(db: Session, request_id: int) -> PermissionRequest:
        record = db.query(PermissionRequest).filter(PermissionRequest.id == request_id).first()
        if not record:
            raise ResourceNotFoundError(f"Permission request {request_id} not found")
        return record

    @staticmethod
    def _authorize_decision(ctx: SessionContext, record: PermissionRequest) -> None:
        ctx.require(APPROVE_PERMISSION)
        if not ctx.is_super_admin and record.applicant_org_id != ctx.organization_id:
            raise AuthorizationError("Request belongs to another organization")

    @staticmethod
    def _expect_status(record: PermissionRequest, expected: RequestStatus) -> None:
        if record.status is not expected:
            raise StaleStateError(
                f"Permission request {record.id} is {record.status.value}, expected {expected.value}"
            )

    @staticmethod
    def _transition(db: Session, request_id: int, source: RequestStatus,
                    target: RequestStatus, **values) -> None:
        """Move ``source`` -> ``target`` only if the row is still in ``source``."""
        if not source.can_transition_to(target):
            raise StaleStateError(f"Illegal transition {source.value} -> {target.value}")
        values["status"] = target
        updated = (
            db.query(PermissionRequest)
            .filter(PermissionRequest.id == request_id, PermissionRequest.status == source)
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            db.rollback()
            raise StaleStateError(f"Permission request {request_id} is no longer {source.value}")

    @staticmethod
    def _reload(db: Session, record: PermissionRequest) -> PermissionRequest:
        db.expire(record)
        db.refresh(record)
        return record

    @staticmethod
    def _enum(enum_cls, value: str, field: str):
        try:
            return enum_cls(value)
        except ValueError:
            raise ValidationError(f"Unknown {field}: {value!r}")

    @staticmethod
    def _page(query, page: int, page_size: int) -> Dict[str, Any]:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)
        total = query.count()
        requests = (
            query.order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "requests": requests,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if total else 0,
        }


permission_request_service = PermissionRequestService()


def get_permission_request_service() -> PermissionRequestService:
    """FastAPI dependency returning the workflow service."""
    return permission_request_service
