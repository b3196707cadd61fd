"""Crisis alert storage.

Two backends share one interface:
- PostgresAlertRepository for deployed services
- InMemoryAlertRepository for development and tests

Status updates are compare-and-set on the expected current status so two
counselors acting on one alert cannot both win.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from psycopg2.extras import Json

from mindcompanion.shared.database import (
    BaseRepository,
    ConnectionManager,
    DuplicateError,
)
from mindcompanion.shared.models import (
    ACTIVE_ALERT_STATUSES,
    AlertStatus,
    CrisisAlert,
    CrisisLevel,
)

logger = logging.getLogger(__name__)


class AlertRepository(ABC):
    """Store of CrisisAlert records."""

    @abstractmethod
    def insert(self, alert: CrisisAlert) -> CrisisAlert:
        pass

    @abstractmethod
    def get(self, alert_id: str) -> Optional[CrisisAlert]:
        pass

    @abstractmethod
    def update_status(
        self,
        alert_id: str,
        expected: AlertStatus,
        target: AlertStatus,
        updated_at: datetime,
    ) -> Optional[CrisisAlert]:
        """Move an alert from expected to target.

        Returns:
            The updated alert, or None if it no longer has the expected status
        """
        pass

    @abstractmethod
    def count_with_status(self, statuses: Iterable[AlertStatus]) -> int:
        pass

    @abstractmethod
    def count_detected_between(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        status: Optional[AlertStatus] = None,
    ) -> int:
        """Count alerts with start <= detected_at < end (end open if None)."""
        pass

    @abstractmethod
    def list_resolved_detected_since(self, since: datetime) -> List[Tuple[datetime, datetime]]:
        """(detected_at, updated_at) of resolved alerts detected since a time."""
        pass

    @abstractmethod
    def list_active(self, limit: int = 100) -> List[CrisisAlert]:
        """Active alerts, oldest detection first."""
        pass


class InMemoryAlertRepository(AlertRepository):
    """Thread-safe in-memory alert store for development and tests."""

    def __init__(self, alerts: Optional[Iterable[CrisisAlert]] = None):
        self._alerts: Dict[str, CrisisAlert] = {}
        self._lock = threading.Lock()
        for alert in alerts or ():
            self._alerts[alert.alert_id] = alert

    def insert(self, alert: CrisisAlert) -> CrisisAlert:
        with self._lock:
            if alert.alert_id in self._alerts:
                raise DuplicateError(f"Alert {alert.alert_id} already exists")
            self._alerts[alert.alert_id] = replace(alert)
        return alert

    def get(self, alert_id: str) -> Optional[CrisisAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return replace(alert) if alert else None

    def update_status(self, alert_id, expected, target, updated_at):
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or alert.status != expected:
                return None
            alert.status = target
            alert.updated_at = updated_at
            return replace(alert)

    def count_with_status(self, statuses):
        wanted = set(statuses)
        with self._lock:
            return sum(1 for a in self._alerts.values() if a.status in wanted)

    def count_detected_between(self, start, end=None, status=None):
        with self._lock:
            return sum(
                1 for a in self._alerts.values()
                if a.detected_at >= start
                and (end is None or a.detected_at < end)
                and (status is None or a.status == status)
            )

    def list_resolved_detected_since(self, since):
        with self._lock:
            return [
                (a.detected_at, a.updated_at)
                for a in self._alerts.values()
                if a.status == AlertStatus.RESOLVED and a.detected_at >= since
            ]

    def list_active(self, limit: int = 100):
        with self._lock:
            active = [replace(a) for a in self._alerts.values() if a.is_active]
        active.sort(key=lambda a: a.detected_at)
        return active[:limit]


_COLUMNS = (
    "id, user_id, level, status, triggers, confidence, source_type, source_id, "
    "content_excerpt, metadata, detected_at, updated_at"
)


class PostgresAlertRepository(BaseRepository[CrisisAlert], AlertRepository):
    """crisis_alerts table in PostgreSQL."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "crisis_alerts")

    @property
    def select_columns(self) -> str:
        return _COLUMNS

    def _row_to_entity(self, row: tuple) -> CrisisAlert:
        return CrisisAlert(
            alert_id=row[0],
            user_id=row[1],
            level=CrisisLevel(row[2]),
            status=AlertStatus(row[3]),
            triggers=tuple(row[4] or ()),
            confidence=float(row[5]),
            source_type=row[6],
            source_id=row[7],
            content_excerpt=row[8] or "",
            metadata=row[9] or {},
            detected_at=row[10],
            updated_at=row[11],
        )

    def insert(self, alert: CrisisAlert) -> CrisisAlert:
        row = self._fetch_one_committed(
            f"""
            INSERT INTO crisis_alerts ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO NOTHING
            RETURNING id
            """,
            (
                alert.alert_id,
                alert.user_id,
                alert.level.value,
                alert.status.value,
                Json(list(alert.triggers)),
                alert.confidence,
                alert.source_type,
                alert.source_id,
                alert.content_excerpt,
                Json(alert.metadata),
                alert.detected_at,
                alert.updated_at,
            ),
        )
        if row is None:
            raise DuplicateError(f"Alert {alert.alert_id} already exists")
        return alert

    def get(self, alert_id: str) -> Optional[CrisisAlert]:
        return self.find_by_id(alert_id)

    def update_status(self, alert_id, expected, target, updated_at):
        row = self._fetch_one_committed(
            f"""
            UPDATE crisis_alerts SET status = %s, updated_at = %s
            WHERE id = %s AND status = %s
            RETURNING {_COLUMNS}
            """,
            (target.value, updated_at, alert_id, expected.value),
        )
        return self._row_to_entity(row) if row else None

    def count_with_status(self, statuses):
        values = [s.value for s in statuses]
        row = self._fetch_one(
            "SELECT COUNT(*) FROM crisis_alerts WHERE status = ANY(%s)",
            (values,),
        )
        return row[0] if row else 0

    def count_detected_between(self, start, end=None, status=None):
        clauses = ["detected_at >= %s"]
        params: list = [start]
        if end is not None:
            clauses.append("detected_at < %s")
            params.append(end)
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)
        row = self._fetch_one(
            f"SELECT COUNT(*) FROM crisis_alerts WHERE {' AND '.join(clauses)}",
            params,
        )
        return row[0] if row else 0

    def list_resolved_detected_since(self, since):
        rows = self._fetch_all(
            "SELECT detected_at, updated_at FROM crisis_alerts "
            "WHERE status = %s AND detected_at >= %s",
            (AlertStatus.RESOLVED.value, since),
        )
        return [(r[0], r[1]) for r in rows]

    def list_active(self, limit: int = 100):
        rows = self._fetch_all(
            f"SELECT {_COLUMNS} FROM crisis_alerts WHERE status = ANY(%s) "
            "ORDER BY detected_at ASC LIMIT %s",
            ([s.value for s in ACTIVE_ALERT_STATUSES], limit),
        )
        return [self._row_to_entity(r) for r in rows]


def build_alert_repository(connection_manager: Optional[ConnectionManager]) -> AlertRepository:
    """PostgreSQL store when a connection manager is given, in-memory otherwise."""
    if connection_manager is None:
        return InMemoryAlertRepository()
    return PostgresAlertRepository(connection_manager)
