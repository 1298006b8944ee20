"""Database access models."""

from gymbook.models.db_connection import (
    DatabasePool,
    HealthStatus,
    MonitoredConnection,
    QueryResult,
    TransactionalClient,
)

__all__ = [
    "DatabasePool",
    "HealthStatus",
    "MonitoredConnection",
    "QueryResult",
    "TransactionalClient",
]
