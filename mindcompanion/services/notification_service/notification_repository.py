"""Notification record storage.

The enqueuer inserts records; the dispatcher reads pending ones and sets
sent_at. Records are unique per (user, type, channel, source entity); the
PostgreSQL backend enforces that with a unique index, the in-memory
backend with a key set.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Set

from psycopg2.extras import Json

from mindcompanion.shared.database import (
    BaseRepository,
    ConnectionManager,
    DuplicateError,
)
from mindcompanion.shared.models import NotificationChannel, NotificationRecord

logger = logging.getLogger(__name__)


class NotificationRepository(ABC):
    """Store of NotificationRecord rows."""

    @abstractmethod
    def insert(self, record: NotificationRecord) -> NotificationRecord:
        """Insert a new record.

        Raises:
            DuplicateError: If the same source entity was already notified
                on this channel
        """
        pass

    @abstractmethod
    def exists_for_source(
        self,
        user_id: str,
        notification_type: str,
        source_kind: str,
        source_id: str,
    ) -> bool:
        pass

    @abstractmethod
    def fetch_pending(self, limit: int) -> List[NotificationRecord]:
        """Records with no sent_at, oldest created_at first."""
        pass

    @abstractmethod
    def mark_sent(self, notification_id: str, sent_at: datetime) -> bool:
        """Set sent_at if the record is still pending.

        Returns:
            True if a pending record was updated
        """
        pass

    @abstractmethod
    def get(self, notification_id: str) -> Optional[NotificationRecord]:
        pass

    @abstractmethod
    def list_for_user(self, user_id: str, limit: int = 50) -> List[NotificationRecord]:
        """Newest first."""
        pass


class InMemoryNotificationRepository(NotificationRepository):
    """Thread-safe in-memory notification store for development and tests."""

    def __init__(self):
        self._records: Dict[str, NotificationRecord] = {}
        self._source_keys: Set[tuple] = set()
        self._lock = threading.Lock()

    def insert(self, record: NotificationRecord) -> NotificationRecord:
        key = record.source_key
        with self._lock:
            if record.id in self._records:
                raise DuplicateError(f"Notification {record.id} already exists")
            if key[3] is not None and key in self._source_keys:
                raise DuplicateError("Notification already exists for source entity")
            self._records[record.id] = replace(record, data=dict(record.data))
            if key[3] is not None:
                self._source_keys.add(key)
        return record

    def exists_for_source(self, user_id, notification_type, source_kind, source_id):
        with self._lock:
            return any(
                r.user_id == user_id
                and r.type == notification_type
                and r.data.get("source_entity_kind") == source_kind
                and r.data.get("source_entity_id") == source_id
                for r in self._records.values()
            )

    def fetch_pending(self, limit):
        with self._lock:
            pending = [replace(r) for r in self._records.values() if r.is_pending]
        pending.sort(key=lambda r: (r.created_at, r.id))
        return pending[:limit]

    def mark_sent(self, notification_id, sent_at):
        with self._lock:
            record = self._records.get(notification_id)
            if record is None or not record.is_pending:
                return False
            record.sent_at = sent_at
            return True

    def get(self, notification_id):
        with self._lock:
            record = self._records.get(notification_id)
            return replace(record) if record else None

    def list_for_user(self, user_id, limit=50):
        with self._lock:
            records = [replace(r) for r in self._records.values() if r.user_id == user_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]


_COLUMNS = "id, user_id, type, channel, title, message, data, created_at, sent_at"


class PostgresNotificationRepository(BaseRepository[NotificationRecord], NotificationRepository):
    """notifications table in PostgreSQL."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "notifications")

    @property
    def select_columns(self) -> str:
        return _COLUMNS

    def _row_to_entity(self, row: tuple) -> NotificationRecord:
        return NotificationRecord(
            id=row[0],
            user_id=row[1],
            type=row[2],
            channel=NotificationChannel(row[3]),
            title=row[4],
            message=row[5],
            data=row[6] or {},
            created_at=row[7],
            sent_at=row[8],
        )

    def insert(self, record: NotificationRecord) -> NotificationRecord:
        row = self._fetch_one_committed(
            f"""
            INSERT INTO notifications ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING id
            """,
            (
                record.id,
                record.user_id,
                record.type,
                record.channel.value,
                record.title,
                record.message,
                Json(record.data),
                record.created_at,
                record.sent_at,
            ),
        )
        if row is None:
            raise DuplicateError("Notification already exists for source entity")
        return record

    def exists_for_source(self, user_id, notification_type, source_kind, source_id):
        row = self._fetch_one(
            """
            SELECT 1 FROM notifications
            WHERE user_id = %s AND type = %s
              AND data->>'source_entity_kind' = %s
              AND data->>'source_entity_id' = %s
            LIMIT 1
            """,
            (user_id, notification_type, source_kind, source_id),
        )
        return row is not None

    def fetch_pending(self, limit):
        rows = self._fetch_all(
            f"SELECT {_COLUMNS} FROM notifications WHERE sent_at IS NULL "
            "ORDER BY created_at ASC, id ASC LIMIT %s",
            (limit,),
        )
        return [self._row_to_entity(r) for r in rows]

    def mark_sent(self, notification_id, sent_at):
        updated = self._execute(
            "UPDATE notifications SET sent_at = %s WHERE id = %s AND sent_at IS NULL",
            (sent_at, notification_id),
        )
        return updated > 0

    def get(self, notification_id):
        return self.find_by_id(notification_id)

    def list_for_user(self, user_id, limit=50):
        rows = self._fetch_all(
            f"SELECT {_COLUMNS} FROM notifications WHERE user_id = %s "
            "ORDER BY created_at DESC LIMIT %s",
            (user_id, limit),
        )
        return [self._row_to_entity(r) for r in rows]
