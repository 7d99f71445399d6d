"""Organization model."""

from sqlalchemy import Column, Integer, String, DateTime, func
from stellar.db.base import Base


class Organization(Base):
    """Tenant grouping users, roles, and clusters."""
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
