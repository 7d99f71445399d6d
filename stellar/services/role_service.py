"""Role service: role CRUD, role permissions and user-role assignment.

Every change that can alter a user's grants ends with a refresh of the
affected live sessions, so menus and capability checks follow immediately.

Mutations take the acting ``SessionContext``. Outside super-admin, the actor
is confined to their own organization and can only hand out codes they hold
themselves. ``ctx=None`` is the unrestricted path used by seeds and the CLI.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from stellar.core.exceptions import (
    AuthorizationError, IndexRefreshError, ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from stellar.models.role import Permission, Role, user_roles
from stellar.models.user import User
from stellar.services.session_context import SessionContext, SessionRegistry

logger = logging.getLogger("stellar_console")


def _unrestricted(ctx: Optional[SessionContext]) -> bool:
    return ctx is None or ctx.is_super_admin


class RoleService:

    @staticmethod
    def list_roles(db: Session, organization_id: Optional[int] = None) -> List[Role]:
        query = db.query(Role)
        if organization_id is not None:
            query = query.filter((Role.organization_id == organization_id) | (Role.organization_id.is_(None)))
        return query.order_by(Role.code).all()

    @staticmethod
    def get(db: Session, role_id: int, ctx: Optional[SessionContext] = None) -> Role:
        """Load a role the actor can see: global roles and their own organization's."""
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError(f"Role {role_id} not found")
        if not _unrestricted(ctx) and role.organization_id not in (None, ctx.organization_id):
            raise AuthorizationError(f"Role '{role.code}' belongs to another organization")
        return role

    @staticmethod
    def _permissions(db: Session, codes: Iterable[str]) -> List[Permission]:
        codes = sorted(set(codes))
        if not codes:
            return []
        found = db.query(Permission).filter(Permission.code.in_(codes)).all()
        missing = set(codes) - {p.code for p in found}
        if missing:
            raise ValidationError(f"Unknown permission codes: {', '.join(sorted(missing))}")
        return found

    @staticmethod
    def _check_grantable(ctx: Optional[SessionContext], codes: Iterable[str]) -> None:
        if _unrestricted(ctx):
            return
        beyond = set(codes) - ctx.index.codes
        if beyond:
            raise AuthorizationError(f"Cannot grant permissions you do not hold: {', '.join(sorted(beyond))}")

    @staticmethod
    def _check_owned(ctx: Optional[SessionContext], role: Role) -> None:
        """Only roles of the actor's own organization are editable; global ones are not."""
        if role.is_system:
            raise AuthorizationError(f"System role '{role.code}' cannot be modified")
        if not _unrestricted(ctx) and role.organization_id != ctx.organization_id:
            raise AuthorizationError(f"Role '{role.code}' is not managed by your organization")

    @staticmethod
    def create_role(db: Session, code: str, name: str, permission_codes: Iterable[str] = (),
                    description: Optional[str] = None, organization_id: Optional[int] = None,
                    ctx: Optional[SessionContext] = None) -> Role:
        if db.query(Role).filter(Role.code == code).first():
            raise ResourceConflictError(f"Role '{code}' already exists")
        permission_codes = list(permission_codes)
        RoleService._check_grantable(ctx, permission_codes)
        role = Role(code=code, name=name, description=description, organization_id=organization_id)
        role.permissions = RoleService._permissions(db, permission_codes)
        db.add(role)
        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def set_permissions(db: Session, registry: SessionRegistry, role_id: int,
                        permission_codes: Iterable[str], ctx: Optional[SessionContext] = None) -> Role:
        """Replace a role's permissions and refresh every live holder."""
        role = RoleService.get(db, role_id, ctx)
        RoleService._check_owned(ctx, role)
        permission_codes = list(permission_codes)
        RoleService._check_grantable(ctx, permission_codes)
        role.permissions = RoleService._permissions(db, permission_codes)
        db.commit()
        db.refresh(role)
        RoleService._refresh_holders(db, registry, role.id)
        return role

    @staticmethod
    def delete_role(db: Session, registry: SessionRegistry, role_id: int,
                    ctx: Optional[SessionContext] = None) -> None:
        role = RoleService.get(db, role_id, ctx)
        if role.is_system:
            raise AuthorizationError(f"System role '{role.code}' cannot be deleted")
        RoleService._check_owned(ctx, role)
        holders = RoleService._holder_ids(db, role.id)
        db.execute(user_roles.delete().where(user_roles.c.role_id == role.id))
        db.delete(role)
        db.commit()
        for user_id in holders:
            RoleService._refresh_user(registry, user_id)

    @staticmethod
    def assign_roles(db: Session, registry: SessionRegistry, user_id: int, role_codes: Iterable[str],
                     ctx: Optional[SessionContext] = None) -> User:
        """Replace a user's roles; their live session picks the change up at once.

        A restricted actor may only touch users of their organization, and
        every role added or removed must be global or their organization's
        and carry no code the actor lacks.
        """
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        if not _unrestricted(ctx) and user.organization_id != ctx.organization_id:
            raise AuthorizationError("User belongs to another organization")

        role_codes = sorted(set(role_codes))
        roles = db.query(Role).filter(Role.code.in_(role_codes)).all() if role_codes else []
        missing = set(role_codes) - {r.code for r in roles}
        if missing:
            raise ValidationError(f"Unknown role codes: {', '.join(sorted(missing))}")

        if not _unrestricted(ctx):
            current = {r.code: r for r in user.roles}
            wanted = {r.code: r for r in roles}
            for code in sorted(set(current) ^ set(wanted)):
                role = wanted.get(code) or current[code]
                if role.organization_id not in (None, ctx.organization_id):
                    raise AuthorizationError(f"Role '{code}' belongs to another organization")
                RoleService._check_grantable(ctx, role.permission_codes)

        user.roles = roles
        db.commit()
        db.refresh(user)
        RoleService._refresh_user(registry, user_id)
        return user

    @staticmethod
    def _holder_ids(db: Session, role_id: int) -> List[int]:
        rows = db.query(user_roles.c.user_id).filter(user_roles.c.role_id == role_id).all()
        return [user_id for (user_id,) in rows]

    @staticmethod
    def _refresh_holders(db: Session, registry: SessionRegistry, role_id: int) -> None:
        for user_id in RoleService._holder_ids(db, role_id):
            RoleService._refresh_user(registry, user_id)

    @staticmethod
    def _refresh_user(registry: SessionRegistry, user_id: int) -> None:
        # The change is committed; a failed refresh only delays it to the next one.
        try:
            registry.refresh(user_id)
        except IndexRefreshError:
            logger.warning("Session of user %s keeps its previous permissions until next refresh", user_id)


role_service = RoleService()
