"""Abstract base class for privilege statement executors."""

from abc import ABC, abstractmethod
from typing import List


class PrivilegeExecutorBase(ABC):
    """Runs statements against one managed cluster.

    Implementations must bound every call with connect and read timeouts and
    raise ``ExecutionError`` when the engine rejects a statement.
    """

    @abstractmethod
    def execute(self, sql: str) -> str:
        """Run a single GRANT / REVOKE statement.

        Returns:
            Short human-readable result text for the request record.
        """
        ...

    @abstractmethod
    def fetch_names(self, sql: str) -> List[str]:
        """Run a SHOW statement and return the first column of each row."""
        ...

    @property
    @abstractmethod
    def executor_type(self) -> str:
        """Return the executor type identifier (e.g., 'mysql')."""
        ...
