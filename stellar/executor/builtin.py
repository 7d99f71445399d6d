"""Built-in executors: MySQL protocol (StarRocks, Doris, MySQL)."""

import logging
from typing import Dict, List

from sqlalchemy import create_engine
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from stellar.core.config import settings
from stellar.core.exceptions import ExecutionError, ValidationError
from stellar.core.security import decrypt_secret
from stellar.executor.base import PrivilegeExecutorBase
from stellar.models.cluster import Cluster

logger = logging.getLogger("stellar_console")


class MySQLPrivilegeExecutor(PrivilegeExecutorBase):
    """Executes statements over the MySQL protocol using SQLAlchemy + PyMySQL."""

    executor_type = "mysql"

    def __init__(self, host: str, port: int, user: str, password: str = "",
                 connect_timeout: int = None, read_timeout: int = None):
        self._url = URL.create(
            "mysql+pymysql",
            username=user,
            password=password or None,
            host=host,
            port=port,
        )
        self._connect_args = {
            "connect_timeout": connect_timeout or settings.ENGINE_CONNECT_TIMEOUT,
            "read_timeout": read_timeout or settings.ENGINE_READ_TIMEOUT,
            "write_timeout": read_timeout or settings.ENGINE_READ_TIMEOUT,
        }

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> "MySQLPrivilegeExecutor":
        try:
            password = decrypt_secret(cluster.password_encrypted)
        except ValueError as e:
            raise ExecutionError(f"Credentials for cluster '{cluster.name}' cannot be decrypted") from e
        return cls(
            host=cluster.host,
            port=cluster.query_port,
            user=cluster.username,
            password=password,
        )

    def _engine(self):
        # One-shot engine; privilege changes are rare and must not share pooled sessions.
        return create_engine(
            self._url,
            connect_args=self._connect_args,
            poolclass=NullPool,
            isolation_level="AUTOCOMMIT",
        )

    def execute(self, sql: str) -> str:
        engine = self._engine()
        try:
            with engine.connect() as conn:
                result = conn.exec_driver_sql(sql)
                affected = result.rowcount
        except SQLAlchemyError as e:
            reason = getattr(e, "orig", None) or e
            logger.warning("Statement rejected by %s: %s", self._url.host, reason)
            raise ExecutionError(f"Engine rejected statement: {reason}") from e
        finally:
            engine.dispose()
        return f"OK, {max(affected, 0)} rows affected"

    def fetch_names(self, sql: str) -> List[str]:
        engine = self._engine()
        try:
            with engine.connect() as conn:
                rows = conn.exec_driver_sql(sql).fetchall()
        except SQLAlchemyError as e:
            reason = getattr(e, "orig", None) or e
            raise ExecutionError(f"Engine query failed: {reason}") from e
        finally:
            engine.dispose()
        return [str(row[0]) for row in rows]


# Executor registry
EXECUTOR_REGISTRY: Dict[str, type] = {
    "mysql": MySQLPrivilegeExecutor,
}


def get_executor(cluster: Cluster, executor_type: str = "mysql") -> PrivilegeExecutorBase:
    """Get an executor bound to ``cluster``."""
    cls = EXECUTOR_REGISTRY.get(executor_type)
    if not cls:
        raise ValidationError(f"Unknown executor type: {executor_type}")
    return cls.from_cluster(cluster)
