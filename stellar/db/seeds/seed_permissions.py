"""Seed the permission catalog: menu codes from the navigation tree plus API codes."""

from sqlalchemy.orm import Session

from stellar.models.role import Permission, PermissionKind
from stellar.services.menu_authorizer import iter_menu_codes

API_PERMISSIONS = [
    ("api:permission-requests:approve", "Approve permission requests"),
    ("api:roles:manage", "Manage roles"),
    ("api:users:manage", "Manage user roles"),
    ("api:audit:view", "View audit log"),
    ("api:clusters:manage", "Register clusters"),
]


def seed_permissions(db: Session) -> int:
    """Insert missing permissions; returns how many were added."""
    added = 0
    for code, name, parent_code in iter_menu_codes():
        if db.query(Permission).filter(Permission.code == code).first():
            continue
        parent = db.query(Permission).filter(Permission.code == parent_code).first() if parent_code else None
        db.add(Permission(
            code=code,
            name=name,
            kind=PermissionKind.menu,
            resource=code[len("menu:"):],
            parent_id=parent.id if parent else None,
        ))
        db.flush()
        added += 1

    for code, name in API_PERMISSIONS:
        if db.query(Permission).filter(Permission.code == code).first():
            continue
        _, resource, action = code.split(":")
        db.add(Permission(code=code, name=name, kind=PermissionKind.api, resource=resource, action=action))
        added += 1

    db.commit()
    print(f"Seeded {added} permissions")
    return added
