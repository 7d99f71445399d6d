"""Permission request model and its status state machine."""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, func
from sqlalchemy.orm import relationship
from stellar.db.base import Base


class RequestType(str, enum.Enum):
    grant_role = "grant_role"
    grant_permission = "grant_permission"
    revoke_permission = "revoke_permission"


class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    executing = "executing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]

    def can_transition_to(self, target: "RequestStatus") -> bool:
        return target in TRANSITIONS[self]


# Every status must appear in both tables; checked at import time below.
TRANSITIONS = {
    RequestStatus.pending: frozenset(
        {RequestStatus.approved, RequestStatus.rejected, RequestStatus.cancelled}
    ),
    RequestStatus.approved: frozenset({RequestStatus.executing}),
    RequestStatus.executing: frozenset({RequestStatus.completed, RequestStatus.failed}),
    RequestStatus.rejected: frozenset(),
    RequestStatus.completed: frozenset(),
    RequestStatus.failed: frozenset(),
    RequestStatus.cancelled: frozenset(),
}

STATUS_LABELS = {
    RequestStatus.pending: "Pending approval",
    RequestStatus.approved: "Approved",
    RequestStatus.rejected: "Rejected",
    RequestStatus.executing: "Executing",
    RequestStatus.completed: "Completed",
    RequestStatus.failed: "Failed",
    RequestStatus.cancelled: "Cancelled",
}

REQUEST_TYPE_LABELS = {
    RequestType.grant_role: "Grant role",
    RequestType.grant_permission: "Grant privileges",
    RequestType.revoke_permission: "Revoke privileges",
}

for _table in (TRANSITIONS, STATUS_LABELS):
    _missing = set(RequestStatus) - set(_table)
    if _missing:
        raise RuntimeError(f"Unhandled request statuses: {sorted(s.value for s in _missing)}")
if set(RequestType) - set(REQUEST_TYPE_LABELS):
    raise RuntimeError("Unhandled request types in REQUEST_TYPE_LABELS")


class PermissionRequest(Base):
    """A user-submitted intent to change database privileges.

    Rows are never deleted; each decision and execution outcome is written
    onto the row exactly once.
    """
    __tablename__ = "permission_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cluster_id = Column(Integer, ForeignKey("clusters.id"), nullable=False, index=True)
    applicant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    applicant_org_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    request_type = Column(Enum(RequestType), nullable=False)
    request_details_json = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    valid_until = Column(DateTime, nullable=True)
    status = Column(Enum(RequestStatus), default=RequestStatus.pending, nullable=False, index=True)
    preview_sql = Column(Text, nullable=True)

    # Set once a decision is taken
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approval_comment = Column(Text, nullable=True)
    decided_at = Column(DateTime, nullable=True)

    # Set once execution finishes
    executed_sql = Column(Text, nullable=True)
    execution_result = Column(Text, nullable=True)
    executed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    applicant = relationship("User", foreign_keys=[applicant_id], lazy="joined")
    approver = relationship("User", foreign_keys=[approver_id], lazy="joined")
    cluster = relationship("Cluster", lazy="joined")
