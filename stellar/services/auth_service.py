"""Auth service: login, refresh, logout and user registration."""

import hashlib
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from stellar.core.exceptions import AuthenticationError, ResourceConflictError, ResourceNotFoundError
from stellar.core.security import (
    create_access_token, create_refresh_token, decode_token, hash_password, verify_password,
)
from stellar.models.auth_token import RefreshToken
from stellar.models.role import Role
from stellar.models.user import User
from stellar.services.session_context import SessionRegistry

logger = logging.getLogger("stellar_console")

DEFAULT_ROLE_CODE = "viewer"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class AuthService:
    """Handles authentication and the session lifecycle around it."""

    @staticmethod
    def authenticate(db: Session, registry: SessionRegistry, username: str, password: str) -> Dict[str, Any]:
        """Check credentials, issue tokens and open the user's session context.

        Raises:
            AuthenticationError: If credentials are invalid or the account is deactivated.
            IndexRefreshError: If the user's permissions could not be loaded.
        """
        user = db.query(User).filter(User.username == username).first()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid username or password")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        token_data = {"sub": str(user.id), "username": user.username}
        access_token = create_access_token(token_data)
        refresh_token_str = create_refresh_token({**token_data, "jti": secrets.token_hex(8)})

        db.add(RefreshToken(
            user_id=user.id,
            token_hash=_token_hash(refresh_token_str),
            expires_at=datetime.fromtimestamp(decode_token(refresh_token_str)["exp"], tz=timezone.utc)
            .replace(tzinfo=None),
        ))
        user.last_login_at = _utcnow()
        db.commit()

        ctx = registry.open(user.id)
        logger.info("User %s logged in", user.username)

        return {
            "access_token": access_token,
            "refresh_token": refresh_token_str,
            "token_type": "bearer",
            "user": {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "organization_id": user.organization_id,
                "is_super_admin": ctx.is_super_admin,
            },
            "permissions": sorted(ctx.index.codes),
        }

    @staticmethod
    def refresh_access_token(db: Session, refresh_token: str) -> Dict[str, Any]:
        payload = decode_token(refresh_token)
        if payload.get("type") != "refresh":
            raise AuthenticationError("Refresh token required")

        stored = db.query(RefreshToken).filter(
            RefreshToken.token_hash == _token_hash(refresh_token),
            RefreshToken.revoked_at.is_(None),
        ).first()
        if not stored:
            raise AuthenticationError("Invalid refresh token")

        user = db.query(User).filter(User.id == int(payload["sub"])).first()
        if not user or not user.is_active:
            raise AuthenticationError("User not found or deactivated")

        return {
            "access_token": create_access_token({"sub": str(user.id), "username": user.username}),
            "token_type": "bearer",
        }

    @staticmethod
    def logout(db: Session, registry: SessionRegistry, user_id: int) -> None:
        """Revoke all refresh tokens and tear down the session context."""
        db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        ).update({"revoked_at": _utcnow()})
        db.commit()
        registry.close(user_id)

    @staticmethod
    def create_user(
        db: Session,
        username: str,
        password: str,
        email: Optional[str] = None,
        organization_id: Optional[int] = None,
        role_code: Optional[str] = DEFAULT_ROLE_CODE,
    ) -> User:
        existing = db.query(User).filter(User.username == username).first()
        if existing:
            raise ResourceConflictError(f"User '{username}' already exists")

        user = User(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            organization_id=organization_id,
            is_active=True,
        )
        if role_code:
            role = db.query(Role).filter(Role.code == role_code).first()
            if role:
                user.roles.append(role)
            else:
                logger.warning("Default role '%s' missing; user %s created without roles", role_code, username)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def list_users(db: Session, organization_id: Optional[int] = None, page: int = 1, page_size: int = 20):
        query = db.query(User)
        if organization_id is not None:
            query = query.filter(User.organization_id == organization_id)
        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page}


auth_service = AuthService()
