"""Audit service: append-only trail of authorization changes."""

import json
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from stellar.models.audit_log import AuditLog


class AuditService:
    """Records immutable audit log entries."""

    @staticmethod
    def log(
        db: Session,
        actor_id: Optional[int],
        actor_name: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[Any] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        organization_id: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> AuditLog:
        """Write a single audit log record.

        Args:
            action: e.g. "user.login", "permission_request.approved", "role.updated"
            resource_type: permission_request, role, user, cluster, system

        This method commits immediately to ensure audit is never lost.
        """
        entry = AuditLog(
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            old_value_json=json.dumps(old_value, default=str) if old_value else None,
            new_value_json=json.dumps(new_value, default=str) if new_value else None,
            ip_address=ip_address,
            user_agent=user_agent,
            organization_id=organization_id,
            request_id=request_id,
        )
        db.add(entry)
        db.commit()
        return entry

    @staticmethod
    def log_from_request(
        db: Session,
        request: Request,
        actor_id: Optional[int],
        actor_name: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[Any] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        organization_id: Optional[int] = None,
    ) -> AuditLog:
        """Write audit log extracting IP, user-agent and request id from the request."""
        ip = request.client.host if request.client else None
        ua = request.headers.get("user-agent", "")[:500]
        return AuditService.log(
            db=db,
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=ip,
            user_agent=ua,
            organization_id=organization_id,
            request_id=getattr(request.state, "request_id", None),
        )

    @staticmethod
    def query_logs(
        db: Session,
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        organization_id: Optional[int] = None,
        resource_id: Optional[Any] = None,
        request_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Query audit logs with filters and pagination.

        `resource_id` narrows to one object's history, e.g. a single
        permission request; `request_id` to everything one HTTP call wrote.
        """
        query = db.query(AuditLog)

        if actor_id:
            query = query.filter(AuditLog.actor_id == actor_id)
        if action:
            query = query.filter(AuditLog.action.ilike(f"%{action}%"))
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if organization_id:
            query = query.filter(AuditLog.organization_id == organization_id)
        if resource_id is not None:
            query = query.filter(AuditLog.resource_id == str(resource_id))
        if request_id:
            query = query.filter(AuditLog.request_id == request_id)

        total = query.count()
        logs = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
        }


audit_service = AuditService()
