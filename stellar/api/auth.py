"""Auth API router: login, register, refresh, logout, me, permissions, menu."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from stellar.core.config import settings
from stellar.core.rate_limiter import limiter
from stellar.core.security import get_current_user_id, get_session_context
from stellar.db.session import get_db
from stellar.schemas.schemas import (
    LoginRequest, MenuItemOut, MessageResponse, PermissionsOut, RefreshRequest,
    RegisterRequest, ReturnUrlOut, TokenResponse, UserOut,
)
from stellar.services.audit_service import audit_service
from stellar.services.auth_service import auth_service
from stellar.services.path_normalizer import RoutingMode, path_normalizer
from stellar.services.session_context import SessionContext, SessionRegistry, get_session_registry

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Authenticate, open the session context and return JWT tokens."""
    result = auth_service.authenticate(db, registry, body.username, body.password)
    audit_service.log_from_request(
        db, request,
        actor_id=result["user"]["id"],
        actor_name=body.username,
        action="user.login",
        resource_type="user",
        resource_id=result["user"]["id"],
        organization_id=result["user"]["organization_id"],
    )
    return result


@router.post("/register", response_model=UserOut)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = auth_service.create_user(db, body.username, body.password, body.email)
    return UserOut.model_validate(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    return auth_service.refresh_access_token(db, body.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Revoke refresh tokens and clear the session's permissions."""
    auth_service.logout(db, registry, user_id)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserOut)
async def get_me(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return UserOut.model_validate(auth_service.get_user(db, user_id))


@router.get("/permissions", response_model=PermissionsOut)
async def get_permissions(ctx: SessionContext = Depends(get_session_context)):
    return PermissionsOut(codes=sorted(ctx.index.codes), is_super_admin=ctx.is_super_admin)


@router.post("/permissions/refresh", response_model=PermissionsOut)
async def refresh_permissions(
    ctx: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Re-pull grants; on failure the previous permissions stay in effect (503)."""
    registry.refresh(ctx.user_id)
    return PermissionsOut(codes=sorted(ctx.index.codes), is_super_admin=ctx.is_super_admin)


@router.get("/menu", response_model=List[MenuItemOut])
async def get_menu(ctx: SessionContext = Depends(get_session_context)):
    return [node.to_dict() for node in ctx.menu()]


@router.get("/return-url", response_model=ReturnUrlOut)
async def return_url(
    url: str = Query(""),
    current_path: str = Query(""),
    mode: Optional[RoutingMode] = Query(None),
):
    """Normalize a post-login return URL for the front-end router."""
    mode = mode or path_normalizer.detect_mode(current_path)
    return ReturnUrlOut(
        url=path_normalizer.normalize(url, current_path, mode),
        mode=mode.value,
        login_path=path_normalizer.login_path(current_path, mode),
    )
