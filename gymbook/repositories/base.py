"""Base repository class."""

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, Protocol, TypeVar

from gymbook.models.db_connection import DatabasePool, QueryResult

T = TypeVar("T")


class QueryExecutor(Protocol):
    """Anything that runs a parameterized statement: the pool or a transactional client."""

    async def query(self, statement: str, *params: Any) -> QueryResult: ...


class BaseRepository(ABC, Generic[T]):
    """Base repository with common lookups."""

    def __init__(self, database: DatabasePool):
        """
        Initialize repository with the connection pool.

        Args:
            database: DatabasePool instance
        """
        self.db = database

    def _executor(self, client: Optional[QueryExecutor] = None) -> QueryExecutor:
        """Run on the caller's transactional client when given, else on the pool."""
        return client if client is not None else self.db

    @abstractmethod
    async def get_by_id(self, id: Any, client: Optional[QueryExecutor] = None) -> Optional[T]:
        """
        Get entity by ID.

        Args:
            id: Entity ID
            client: Optional transactional client

        Returns:
            Entity or None if not found
        """

    @abstractmethod
    async def create(self, data: Any, client: Optional[QueryExecutor] = None) -> Any:
        """
        Create new entity.

        Args:
            data: Entity data
            client: Optional transactional client
        """
