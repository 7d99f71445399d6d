"""Identity source: user facts and role-derived permission codes by user id."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, Tuple

from sqlalchemy.orm import Session

from stellar.models.role import Permission, role_permissions, user_roles
from stellar.models.user import User
from stellar.core.exceptions import AuthenticationError


@dataclass(frozen=True)
class UserIdentity:
    user_id: int
    username: str
    organization_id: Optional[int]
    is_super_admin: bool


class IdentitySource(ABC):
    """Where sessions get their identity and grants from."""

    @abstractmethod
    def load_user(self, user_id: int) -> UserIdentity:
        """Return the identity of an active user.

        Raises:
            AuthenticationError: If the user does not exist or is deactivated.
        """
        ...

    @abstractmethod
    def load_grants(self, user_id: int) -> Tuple[FrozenSet[str], bool]:
        """Return the union of the user's role permission codes and the super-admin flag."""
        ...


class DatabaseIdentitySource(IdentitySource):
    """Identity source backed by the metadata database."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def load_user(self, user_id: int) -> UserIdentity:
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user or not user.is_active:
                raise AuthenticationError("User not found or deactivated")
            return UserIdentity(
                user_id=user.id,
                username=user.username,
                organization_id=user.organization_id,
                is_super_admin=bool(user.is_super_admin),
            )
        finally:
            db.close()

    def load_grants(self, user_id: int) -> Tuple[FrozenSet[str], bool]:
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user or not user.is_active:
                return frozenset(), False
            rows = (
                db.query(Permission.code)
                .join(role_permissions, role_permissions.c.permission_id == Permission.id)
                .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
                .filter(user_roles.c.user_id == user_id)
                .distinct()
                .all()
            )
            return frozenset(code for (code,) in rows), bool(user.is_super_admin)
        finally:
            db.close()
