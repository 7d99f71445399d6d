"""Admin API router: roles, user role assignment, users, audit."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from stellar.core.security import require_audit_viewer, require_role_admin, require_user_admin
from stellar.db.session import get_db
from stellar.schemas.schemas import (
    AuditLogOut, MessageResponse, RoleCreate, RoleOut, RolePermissionsUpdate, UserOut, UserRolesUpdate,
)
from stellar.services.audit_service import audit_service
from stellar.services.auth_service import auth_service
from stellar.services.role_service import role_service
from stellar.services.session_context import SessionContext, SessionRegistry, get_session_registry

router = APIRouter(prefix="/admin", tags=["admin"])


def _org_scope(ctx: SessionContext) -> Optional[int]:
    return None if ctx.is_super_admin else ctx.organization_id


@router.get("/roles")
async def list_roles(db: Session = Depends(get_db), ctx: SessionContext = Depends(require_role_admin)):
    return [RoleOut.from_role(r) for r in role_service.list_roles(db, _org_scope(ctx))]


@router.post("/roles", response_model=RoleOut, status_code=201)
async def create_role(
    body: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_role_admin),
):
    organization_id = body.organization_id if ctx.is_super_admin else ctx.organization_id
    role = role_service.create_role(
        db, body.code, body.name, body.permission_codes, body.description, organization_id, ctx=ctx,
    )
    audit_service.log_from_request(
        db, request, ctx.user_id, ctx.username, "role.created", "role",
        resource_id=role.id, new_value={"code": role.code, "permissions": sorted(role.permission_codes)},
        organization_id=organization_id,
    )
    return RoleOut.from_role(role)


@router.put("/roles/{role_id}/permissions", response_model=RoleOut)
async def update_role_permissions(
    role_id: int,
    body: RolePermissionsUpdate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_role_admin),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Replace a role's permissions; holders' live sessions refresh immediately."""
    before = sorted(role_service.get(db, role_id, ctx).permission_codes)
    role = role_service.set_permissions(db, registry, role_id, body.permission_codes, ctx)
    audit_service.log_from_request(
        db, request, ctx.user_id, ctx.username, "role.permissions_updated", "role",
        resource_id=role_id, old_value={"permissions": before},
        new_value={"permissions": sorted(role.permission_codes)},
        organization_id=role.organization_id,
    )
    return RoleOut.from_role(role)


@router.delete("/roles/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_role_admin),
    registry: SessionRegistry = Depends(get_session_registry),
):
    role_service.delete_role(db, registry, role_id, ctx)
    audit_service.log_from_request(
        db, request, ctx.user_id, ctx.username, "role.deleted", "role", resource_id=role_id,
    )
    return MessageResponse(message="Role deleted")


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_user_admin),
):
    result = auth_service.list_users(db, _org_scope(ctx), page, page_size)
    return {
        "users": [UserOut.model_validate(u) for u in result["users"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.put("/users/{user_id}/roles", response_model=MessageResponse)
async def assign_user_roles(
    user_id: int,
    body: UserRolesUpdate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_user_admin),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Replace a user's roles; their menu and capabilities change at once."""
    user = role_service.assign_roles(db, registry, user_id, body.role_codes, ctx)
    audit_service.log_from_request(
        db, request, ctx.user_id, ctx.username, "user.roles_updated", "user",
        resource_id=user_id, new_value={"roles": sorted(r.code for r in user.roles)},
        organization_id=user.organization_id,
    )
    return MessageResponse(message="Roles updated")


@router.get("/audit")
async def get_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    actor_id: Optional[int] = Query(None),
    resource_id: Optional[str] = Query(None),
    request_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_audit_viewer),
):
    result = audit_service.query_logs(
        db,
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        organization_id=_org_scope(ctx),
        resource_id=resource_id,
        request_id=request_id,
        page=page,
        page_size=page_size,
    )
    return {
        "logs": [AuditLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
    }
