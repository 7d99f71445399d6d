"""Role and permission models for RBAC."""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, Table, func
)
from sqlalchemy.orm import relationship
from stellar.db.base import Base


class PermissionKind(str, enum.Enum):
    menu = "menu"
    api = "api"


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base):
    """A grantable capability: `menu:<path>` or `api:<resource>:<action>`."""
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    kind = Column(Enum(PermissionKind), nullable=False)
    resource = Column(String(100), nullable=True)
    action = Column(String(50), nullable=True)
    parent_id = Column(Integer, ForeignKey("permissions.id"), nullable=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    parent = relationship("Permission", remote_side=[id])


class Role(Base):
    """Named bundle of permissions; system roles are immutable."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)  # null = global
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    permissions = relationship("Permission", secondary=role_permissions, lazy="selectin")

    @property
    def permission_codes(self) -> set:
        return {p.code for p in self.permissions}
