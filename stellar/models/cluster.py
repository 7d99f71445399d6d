"""Cluster model."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, func
from stellar.db.base import Base


class Cluster(Base):
    """A managed database cluster reachable over the MySQL protocol."""
    __tablename__ = "clusters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    host = Column(String(255), nullable=False)
    query_port = Column(Integer, nullable=False, default=9030)
    username = Column(String(100), nullable=False)
    password_encrypted = Column(String(500), nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
