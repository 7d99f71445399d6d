"""Permission request API router: submit, preview, list, decide, cancel."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from stellar.core.security import get_session_context, require_request_approver
from stellar.db.session import get_db
from stellar.schemas.schemas import (
    ApprovalRequest, PermissionRequestOut, PermissionRequestPage, PreviewResponse,
)
from stellar.services.permission_request_service import (
    PermissionRequestService, get_permission_request_service,
)
from stellar.services.session_context import SessionContext

router = APIRouter(prefix="/permission-requests", tags=["permission-requests"])


def _page(result: Dict[str, Any]) -> PermissionRequestPage:
    return PermissionRequestPage(
        requests=[PermissionRequestOut.from_record(r) for r in result["requests"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        total_pages=result["total_pages"],
    )


@router.post("", response_model=PermissionRequestOut, status_code=201)
async def submit_request(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    """Submit a request; it starts out pending approval."""
    request_id = service.submit(db, ctx, payload)
    return PermissionRequestOut.from_record(service.get(db, ctx, request_id))


@router.post("/preview", response_model=PreviewResponse)
async def preview_request(
    payload: Dict[str, Any] = Body(...),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    """Return the exact SQL a request would execute, without persisting it."""
    parsed = service.parse_preview(payload)
    return PreviewResponse(sql=service.preview(payload), request_type=parsed.request_type)


@router.get("/my", response_model=PermissionRequestPage)
async def list_my_requests(
    status: Optional[str] = Query(None),
    request_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    return _page(service.list_mine(db, ctx, status, request_type, page, page_size))


@router.get("/pending", response_model=PermissionRequestPage)
async def list_pending_requests(
    request_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_request_approver),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    """Pending requests awaiting the caller's decision."""
    return _page(service.list_pending(db, ctx, request_type, page, page_size))


@router.get("/{request_id}", response_model=PermissionRequestOut)
async def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    return PermissionRequestOut.from_record(service.get(db, ctx, request_id))


@router.post("/{request_id}/approve", response_model=PermissionRequestOut)
async def approve_request(
    request_id: int,
    body: Optional[ApprovalRequest] = None,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    """Approve and dispatch execution; the response shows the request executing."""
    return PermissionRequestOut.from_record(service.approve(db, ctx, request_id, body.comment if body else None))


@router.post("/{request_id}/reject", response_model=PermissionRequestOut)
async def reject_request(
    request_id: int,
    body: ApprovalRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    return PermissionRequestOut.from_record(service.reject(db, ctx, request_id, body.comment))


@router.post("/{request_id}/cancel", response_model=PermissionRequestOut)
async def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    service: PermissionRequestService = Depends(get_permission_request_service),
):
    return PermissionRequestOut.from_record(service.cancel(db, ctx, request_id))
