"""Managed cluster registry."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from stellar.core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationError
from stellar.core.security import encrypt_secret
from stellar.models.cluster import Cluster

logger = logging.getLogger("stellar_console")


class ClusterService:

    @staticmethod
    def create(db: Session, name: str, host: str, username: str, password: str = "",
               query_port: int = 9030, organization_id: Optional[int] = None) -> Cluster:
        if not name or not host or not username:
            raise ValidationError("name, host and username are required")
        cluster = Cluster(
            name=name,
            host=host,
            query_port=query_port,
            username=username,
            password_encrypted=encrypt_secret(password) if password else None,
            organization_id=organization_id,
        )
        db.add(cluster)
        db.commit()
        db.refresh(cluster)
        logger.info("Registered cluster %s (%s:%s)", name, host, query_port)
        return cluster

    @staticmethod
    def get_active(db: Session, cluster_id: int) -> Cluster:
        cluster = db.query(Cluster).filter(Cluster.id == cluster_id, Cluster.is_active == True).first()
        if not cluster:
            raise ResourceNotFoundError(f"Cluster {cluster_id} not found")
        return cluster

    @staticmethod
    def get_visible(db: Session, cluster_id: int, organization_id: Optional[int], is_super_admin: bool) -> Cluster:
        """Active cluster the caller may use: global or owned by their organization."""
        cluster = ClusterService.get_active(db, cluster_id)
        if not is_super_admin and cluster.organization_id not in (None, organization_id):
            raise AuthorizationError(f"Cluster {cluster_id} belongs to another organization")
        return cluster

    @staticmethod
    def list_visible(db: Session, organization_id: Optional[int], is_super_admin: bool) -> List[Cluster]:
        query = db.query(Cluster).filter(Cluster.is_active == True)
        if not is_super_admin:
            query = query.filter(
                (Cluster.organization_id == organization_id) | (Cluster.organization_id.is_(None))
            )
        return query.order_by(Cluster.name).all()


cluster_service = ClusterService()
