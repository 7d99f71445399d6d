"""Pydantic schemas for API request/response serialization."""

import enum
import json
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator
from typing_extensions import Annotated

from stellar.models.permission_request import (
    PermissionRequest, RequestStatus, RequestType, REQUEST_TYPE_LABELS,
)


# ---- Auth ----
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=4)

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6)
    email: Optional[str] = None

class RefreshRequest(BaseModel):
    refresh_token: str

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None
    permissions: Optional[List[str]] = None


# ---- User ----
class UserOut(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    organization_id: Optional[int] = None
    is_super_admin: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserRolesUpdate(BaseModel):
    role_codes: List[str]


# ---- Authorization ----
class PermissionsOut(BaseModel):
    codes: List[str]
    is_super_admin: bool

class MenuItemOut(BaseModel):
    id: str
    title: str
    link: Optional[str] = None
    icon: Optional[str] = None
    permission: Optional[str] = None
    activatable: bool = True
    children: List["MenuItemOut"] = []

    class Config:
        from_attributes = True

class ReturnUrlOut(BaseModel):
    url: str
    mode: str
    login_path: str


# ---- Roles ----
class RoleCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    organization_id: Optional[int] = None
    permission_codes: List[str] = []

class RolePermissionsUpdate(BaseModel):
    permission_codes: List[str]

class RoleOut(BaseModel):
    id: int
    code: str
    name: str
    is_system: bool
    organization_id: Optional[int] = None
    description: Optional[str] = None
    permission_codes: List[str] = []

    @classmethod
    def from_role(cls, role) -> "RoleOut":
        return cls(
            id=role.id,
            code=role.code,
            name=role.name,
            is_system=role.is_system,
            organization_id=role.organization_id,
            description=role.description,
            permission_codes=sorted(role.permission_codes),
        )


# ---- Clusters ----
class ClusterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    host: str = Field(..., min_length=1)
    query_port: int = Field(9030, ge=1, le=65535)
    username: str = Field(..., min_length=1)
    password: str = ""
    organization_id: Optional[int] = None

class ClusterOut(BaseModel):
    id: int
    name: str
    host: str
    query_port: int
    username: str
    organization_id: Optional[int] = None
    is_active: bool = True

    class Config:
        from_attributes = True


# ---- Permission requests ----
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_\-]{0,127}$")
PRINCIPAL_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]{0,127}$")

KNOWN_PRIVILEGES = frozenset({
    "ALL", "ALL PRIVILEGES", "SELECT", "INSERT", "UPDATE", "DELETE", "ALTER",
    "DROP", "EXPORT", "USAGE", "REFRESH", "CREATE DATABASE", "CREATE TABLE",
    "CREATE VIEW", "CREATE FUNCTION", "CREATE MATERIALIZED VIEW",
})


class ResourceType(str, enum.Enum):
    catalog = "catalog"
    database = "database"
    table = "table"


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _check_name(value: Optional[str], pattern: re.Pattern, what: str) -> Optional[str]:
    if value is not None and not pattern.match(value):
        raise ValueError(f"{what} contains unsupported characters: {value!r}")
    return value


Name = Annotated[Optional[str], BeforeValidator(_blank_to_none)]


class GrantRoleDetails(BaseModel):
    """Details of a `grant_role` request."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["grant_role"] = "grant_role"
    target_user: Name
    target_role: Name

    @field_validator("target_user", "target_role")
    @classmethod
    def _principal(cls, value: Optional[str], info) -> str:
        if value is None:
            raise ValueError(f"{info.field_name} is required")
        return _check_name(value, PRINCIPAL_PATTERN, info.field_name)


class ResourcePrivilegeDetails(BaseModel):
    """Details of a `grant_permission` / `revoke_permission` request."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["grant_permission", "revoke_permission"]
    target_user: Name = None
    target_role: Name = None
    resource_type: ResourceType
    catalog: Name = None
    database: Name = None
    table: Name = None
    permissions: List[str] = Field(..., min_length=1)

    @field_validator("target_user", "target_role")
    @classmethod
    def _principal(cls, value: Optional[str], info) -> Optional[str]:
        return _check_name(value, PRINCIPAL_PATTERN, info.field_name)

    @field_validator("catalog", "database", "table")
    @classmethod
    def _object_name(cls, value: Optional[str], info) -> Optional[str]:
        return _check_name(value, IDENTIFIER_PATTERN, info.field_name)

    @field_validator("permissions")
    @classmethod
    def _privileges(cls, value: List[str]) -> List[str]:
        normalized: List[str] = []
        for item in value:
            privilege = " ".join(str(item).split()).upper()
            if not privilege:
                continue
            if privilege not in KNOWN_PRIVILEGES:
                raise ValueError(f"Unknown privilege: {item!r}")
            if privilege not in normalized:
                normalized.append(privilege)
        if not normalized:
            raise ValueError("At least one privilege is required")
        return normalized

    @model_validator(mode="after")
    def _scope_is_consistent(self) -> "ResourcePrivilegeDetails":
        if bool(self.target_user) == bool(self.target_role):
            raise ValueError("exactly one of target_user or target_role is required")

        required = {
            ResourceType.catalog: ("catalog",),
            ResourceType.database: ("database",),
            ResourceType.table: ("database", "table"),
        }[self.resource_type]
        for name in required:
            if getattr(self, name) is None:
                raise ValueError(f"{name} is required for resource_type '{self.resource_type.value}'")

        # Nothing may be named below the resource level.
        segments = [("catalog", self.catalog), ("database", self.database), ("table", self.table)]
        depth = {ResourceType.catalog: 1, ResourceType.database: 2, ResourceType.table: 3}[self.resource_type]
        for name, value in segments[depth:]:
            if value is not None:
                raise ValueError(f"{name} is not allowed for resource_type '{self.resource_type.value}'")
        return self

    def resource_path(self) -> str:
        return ".".join(part for part in (self.catalog, self.database, self.table) if part)


RequestDetails = Annotated[
    Union[GrantRoleDetails, ResourcePrivilegeDetails],
    Field(discriminator="kind"),
]


class PermissionRequestPreview(BaseModel):
    """Request type plus its details; enough to compose the SQL."""

    cluster_id: Optional[int] = None
    request_type: RequestType
    request_details: RequestDetails

    @model_validator(mode="before")
    @classmethod
    def _tag_details(cls, data):
        # The variant is chosen by request_type; tag the details so the
        # discriminated union can pick it.
        if isinstance(data, dict) and isinstance(data.get("request_details"), dict):
            request_type = data.get("request_type")
            if isinstance(request_type, enum.Enum):
                request_type = request_type.value
            data = dict(data)
            data["request_details"] = {**data["request_details"], "kind": request_type}
        return data

    def details_dict(self) -> Dict[str, Any]:
        return self.request_details.model_dump(mode="json", exclude={"kind"}, exclude_none=True)


class PermissionRequestSubmit(PermissionRequestPreview):
    cluster_id: int
    reason: str
    valid_until: Optional[datetime] = None

    @field_validator("reason")
    @classmethod
    def _reason_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reason is required")
        return value


class ApprovalRequest(BaseModel):
    comment: Optional[str] = None


class PreviewResponse(BaseModel):
    sql: str
    request_type: RequestType


class PermissionRequestOut(BaseModel):
    id: int
    cluster_id: int
    cluster_name: Optional[str] = None
    applicant_id: int
    applicant_name: Optional[str] = None
    applicant_org_id: Optional[int] = None
    request_type: RequestType
    request_type_label: str
    request_details: Dict[str, Any]
    reason: str
    valid_until: Optional[datetime] = None
    status: RequestStatus
    status_label: str
    is_terminal: bool
    approver_id: Optional[int] = None
    approver_name: Optional[str] = None
    approval_comment: Optional[str] = None
    decided_at: Optional[datetime] = None
    preview_sql: Optional[str] = None
    executed_sql: Optional[str] = None
    execution_result: Optional[str] = None
    executed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: PermissionRequest) -> "PermissionRequestOut":
        return cls(
            id=record.id,
            cluster_id=record.cluster_id,
            cluster_name=record.cluster.name if record.cluster else None,
            applicant_id=record.applicant_id,
            applicant_name=record.applicant.username if record.applicant else None,
            applicant_org_id=record.applicant_org_id,
            request_type=record.request_type,
            request_type_label=REQUEST_TYPE_LABELS[record.request_type],
            request_details=json.loads(record.request_details_json),
            reason=record.reason,
            valid_until=record.valid_until,
            status=record.status,
            status_label=record.status.label,
            is_terminal=record.status.is_terminal,
            approver_id=record.approver_id,
            approver_name=record.approver.username if record.approver else None,
            approval_comment=record.approval_comment,
            decided_at=record.decided_at,
            preview_sql=record.preview_sql,
            executed_sql=record.executed_sql,
            execution_result=record.execution_result,
            executed_at=record.executed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class PermissionRequestPage(BaseModel):
    requests: List[PermissionRequestOut]
    total: int
    page: int
    page_size: int
    total_pages: int


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    actor_name: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    request_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Generic ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[Any] = None
