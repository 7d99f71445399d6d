"""Privilege SQL composition.

Pure functions: the same request always yields byte-identical SQL, so the
preview stored at submit time is exactly what the executor later runs.
"""

from typing import Callable, Dict

from stellar.models.permission_request import RequestType
from stellar.schemas.schemas import GrantRoleDetails, ResourcePrivilegeDetails


def _grant_role(details: GrantRoleDetails) -> str:
    return f"GRANT {details.target_role} TO {details.target_user}"


def _grantee(details: ResourcePrivilegeDetails) -> str:
    if details.target_role:
        return f"ROLE {details.target_role}"
    return f"USER {details.target_user}"


def _scope(details: ResourcePrivilegeDetails) -> str:
    return f"{details.resource_type.value.upper()} {details.resource_path()}"


def _grant_privileges(details: ResourcePrivilegeDetails) -> str:
    privileges = ", ".join(details.permissions)
    return f"GRANT {privileges} ON {_scope(details)} TO {_grantee(details)}"


def _revoke_privileges(details: ResourcePrivilegeDetails) -> str:
    privileges = ", ".join(details.permissions)
    return f"REVOKE {privileges} ON {_scope(details)} FROM {_grantee(details)}"


_COMPOSERS: Dict[RequestType, Callable] = {
    RequestType.grant_role: _grant_role,
    RequestType.grant_permission: _grant_privileges,
    RequestType.revoke_permission: _revoke_privileges,
}

if set(RequestType) - set(_COMPOSERS):
    raise RuntimeError("Unhandled request types in sql composer")


def compose_sql(request_type: RequestType, details) -> str:
    """Render the single statement for a validated request."""
    return _COMPOSERS[RequestType(request_type)](details)
