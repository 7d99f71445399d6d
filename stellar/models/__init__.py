"""Models package: import all models so metadata.create_all can discover them."""

from stellar.models.organization import Organization
from stellar.models.role import Permission, PermissionKind, Role, role_permissions, user_roles
from stellar.models.user import User
from stellar.models.cluster import Cluster
from stellar.models.permission_request import PermissionRequest, RequestStatus, RequestType
from stellar.models.audit_log import AuditLog
from stellar.models.auth_token import RefreshToken

__all__ = [
    "Organization", "Permission", "PermissionKind", "Role",
    "role_permissions", "user_roles", "User", "Cluster",
    "PermissionRequest", "RequestStatus", "RequestType",
    "AuditLog", "RefreshToken",
]
