"""Seed the super-admin user and the default organization from env vars."""

from sqlalchemy.orm import Session

from stellar.core.config import settings
from stellar.core.security import hash_password
from stellar.models.organization import Organization
from stellar.models.role import Role
from stellar.models.user import User

DEFAULT_ORGANIZATION_CODE = "default"


def seed_default_organization(db: Session) -> Organization:
    org = db.query(Organization).filter(Organization.code == DEFAULT_ORGANIZATION_CODE).first()
    if org:
        return org
    org = Organization(code=DEFAULT_ORGANIZATION_CODE, name="Default Organization")
    db.add(org)
    db.commit()
    db.refresh(org)
    print(f"Created organization '{DEFAULT_ORGANIZATION_CODE}'")
    return org


def seed_super_admin(db: Session) -> None:
    """Create the super-admin user if not already present."""
    super_admin_role = db.query(Role).filter(Role.code == "super_admin").first()
    if not super_admin_role:
        print("super_admin role not found. Run seed_roles first.")
        return

    existing = db.query(User).filter(User.username == settings.SUPER_ADMIN_USERNAME).first()
    if existing:
        print(f"Super admin '{settings.SUPER_ADMIN_USERNAME}' already exists, skipping.")
        return

    admin = User(
        username=settings.SUPER_ADMIN_USERNAME,
        hashed_password=hash_password(settings.SUPER_ADMIN_PASSWORD),
        is_super_admin=True,
        is_active=True,
    )
    admin.roles.append(super_admin_role)
    db.add(admin)
    db.commit()
    print(f"Created super admin: {settings.SUPER_ADMIN_USERNAME}")
