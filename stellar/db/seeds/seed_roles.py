"""Seed default roles into the database."""

from sqlalchemy.orm import Session

from stellar.models.role import Permission, Role

OPERATOR_MENUS = [
    "menu:dashboard", "menu:overview", "menu:nodes", "menu:nodes:frontends", "menu:nodes:backends",
    "menu:queries", "menu:queries:execution", "menu:queries:profiles", "menu:queries:audit-logs",
    "menu:materialized-views", "menu:sessions", "menu:variables",
]


def seed_roles(db: Session) -> None:
    """Insert default roles if they don't already exist.

    Run after ``seed_permissions``; the super_admin role holds every code.
    """
    all_codes = [code for (code,) in db.query(Permission.code).all()]
    roles_data = [
        {
            "code": "super_admin",
            "name": "Super Administrator",
            "is_system": True,
            "description": "Full access to every cluster and organization",
            "permissions": all_codes,
        },
        {
            "code": "admin",
            "name": "Administrator",
            "is_system": True,
            "description": "Manage roles, users and requests within the organization",
            "permissions": OPERATOR_MENUS + [
                "menu:queries:blacklist", "menu:system-functions",
                "menu:cluster-ops", "menu:cluster-ops:auth",
                "menu:system", "menu:system:users", "menu:system:roles",
                "api:permission-requests:approve", "api:roles:manage", "api:users:manage",
                "api:audit:view", "api:clusters:manage",
            ],
        },
        {
            "code": "approver",
            "name": "Request Approver",
            "is_system": False,
            "description": "Review and approve permission requests",
            "permissions": OPERATOR_MENUS + [
                "menu:cluster-ops", "menu:cluster-ops:auth", "api:permission-requests:approve",
            ],
        },
        {
            "code": "developer",
            "name": "Developer",
            "is_system": False,
            "description": "Browse clusters and request privileges",
            "permissions": OPERATOR_MENUS + ["menu:cluster-ops", "menu:cluster-ops:auth"],
        },
        {
            "code": "viewer",
            "name": "Viewer",
            "is_system": False,
            "description": "Read-only cluster overview",
            "permissions": ["menu:dashboard", "menu:overview"],
        },
    ]

    for role_data in roles_data:
        if db.query(Role).filter(Role.code == role_data["code"]).first():
            continue
        codes = role_data.pop("permissions")
        role = Role(**role_data)
        role.permissions = db.query(Permission).filter(Permission.code.in_(codes)).all()
        db.add(role)

    db.commit()
    print(f"Seeded {len(roles_data)} roles")
