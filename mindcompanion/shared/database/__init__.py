"""Database access for the crisis core.

Provides the PostgreSQL connection pool and the repository base class
used by the notification, alert and contact stores.
"""

from .connection import (
    DatabaseConfig,
    ConnectionManager,
    get_connection_manager,
)
from .repository import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
    DuplicateError,
)

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "get_connection_manager",
    "BaseRepository",
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
]
