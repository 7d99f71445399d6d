"""JWT authentication, secret encryption, and capability-based authorization helpers."""

import base64
import hashlib
import time

import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from stellar.core.config import settings
from stellar.core.exceptions import AuthorizationError
from stellar.services.session_context import SessionContext, SessionRegistry, get_session_registry

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def _fernet() -> Fernet:
    key = settings.CLUSTER_SECRET_KEY
    if not key:
        digest = hashlib.sha256(settings.JWT_SECRET.encode("utf-8")).digest()
        key = base64.urlsafe_b64encode(digest).decode("ascii")
    return Fernet(key)


def encrypt_secret(plain: str) -> str:
    """Encrypt a cluster credential for storage."""
    return _fernet().encrypt(plain.encode("utf-8")).decode("ascii")


def decrypt_secret(token: Optional[str]) -> str:
    """Decrypt a stored cluster credential; an empty value decrypts to ''."""
    if not token:
        return ""
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        raise ValueError("Stored credential cannot be decrypted with the configured key")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.setdefault("auth_time", time.time())
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_access_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> dict:
    """Decode and check the JWT Bearer access token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )
    if payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return payload


async def get_current_user_id(payload: dict = Depends(get_access_payload)) -> int:
    """Extract user_id from the JWT Bearer token."""
    return int(payload["sub"])


def get_session_context(
    payload: dict = Depends(get_access_payload),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionContext:
    """Resolve the caller's session context, opening it on first use.

    Tokens issued before the user's last logout no longer open a session.
    """
    user_id = int(payload["sub"])
    if registry.issued_before_logout(user_id, payload.get("auth_time")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session ended, please log in again",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return registry.get_or_open(user_id)


class RequirePermission:
    """Dependency that checks the caller's authorization index for a code."""

    def __init__(self, code: str):
        self.code = code

    def __call__(self, ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
        try:
            ctx.require(self.code)
        except AuthorizationError as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
        return ctx


# Convenience dependency factories
require_request_approver = RequirePermission("api:permission-requests:approve")
require_role_admin = RequirePermission("api:roles:manage")
require_user_admin = RequirePermission("api:users:manage")
require_audit_viewer = RequirePermission("api:audit:view")
require_cluster_admin = RequirePermission("api:clusters:manage")
