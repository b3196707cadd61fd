"""Base repository for PostgreSQL-backed stores."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class DuplicateError(RepositoryError):
    """Entity violates a uniqueness constraint."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository.

    Subclasses provide row conversion and entity-specific queries; this class
    owns connection handling and wraps driver errors in RepositoryError.
    """

    id_column = "id"

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert a database row to an entity."""
        pass

    def _fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    return cur.fetchone()
        except Exception as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Query on {self.table_name} failed: {e}") from e

    def _fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[tuple]:
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    return cur.fetchall()
        except Exception as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Query on {self.table_name} failed: {e}") from e

    def _execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement, commit, and return the affected row count."""
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    rowcount = cur.rowcount
                conn.commit()
                return rowcount
        except Exception as e:
            logger.error(
                "REPOSITORY_WRITE_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Write to {self.table_name} failed: {e}") from e

    def _fetch_one_committed(self, query: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        """Run a write with RETURNING, commit, and return the first row."""
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                conn.commit()
                return row
        except Exception as e:
            logger.error(
                "REPOSITORY_WRITE_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Write to {self.table_name} failed: {e}") from e

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find an entity by primary key, or None."""
        row = self._fetch_one(
            f"SELECT {self.select_columns} FROM {self.table_name} WHERE {self.id_column} = %s",
            (entity_id,)
        )
        if row is None:
            return None
        return self._row_to_entity(row)

    def count(self) -> int:
        row = self._fetch_one(f"SELECT COUNT(*) FROM {self.table_name}")
        return row[0] if row else 0

    @property
    def select_columns(self) -> str:
        return "*"
