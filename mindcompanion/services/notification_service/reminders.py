"""Appointment reminder scheduler.

Scans scheduled appointments inside a look-ahead window and enqueues one
appointment_reminder per appointment through the NotificationEnqueuer.
Re-running over the same window creates nothing new: the appointment is
the source entity, so the enqueuer's dedup check skips it.
"""
import logging
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from mindcompanion.shared.database import BaseRepository, ConnectionManager
from mindcompanion.shared.models import NotificationType, SourceEntity, utc_now
from .config import NotificationConfig
from .contact_resolver import ContactResolver
from .enqueuer import NotificationEnqueuer

logger = logging.getLogger(__name__)

SCHEDULED = "scheduled"
MAX_APPOINTMENTS_PER_RUN = 200


@dataclass
class Appointment:
    """A counseling appointment joined with its counselor."""
    id: str
    user_id: str
    appointment_date: datetime
    counselor_id: Optional[str] = None
    counselor_name: Optional[str] = None
    contact_method: Optional[str] = None
    duration_minutes: int = 60
    appointment_type: Optional[str] = None
    status: str = SCHEDULED

    def to_source_entity(self) -> SourceEntity:
        return SourceEntity(
            kind="appointment",
            entity_id=self.id,
            attributes={
                "appointment_date": self.appointment_date.isoformat(),
                "counselor_id": self.counselor_id,
                "counselor_name": self.counselor_name,
                "contact_method": self.contact_method,
                "duration_minutes": self.duration_minutes,
                "appointment_type": self.appointment_type,
            },
        )


class AppointmentRepository(ABC):
    """Read access to upcoming appointments."""

    @abstractmethod
    def list_upcoming(
        self,
        start: datetime,
        end: datetime,
        limit: int = MAX_APPOINTMENTS_PER_RUN,
    ) -> List[Appointment]:
        """Scheduled appointments with start <= date <= end, earliest first."""
        pass


class InMemoryAppointmentRepository(AppointmentRepository):

    def __init__(self, appointments: Optional[List[Appointment]] = None):
        self._appointments: List[Appointment] = list(appointments or [])
        self._lock = threading.Lock()

    def add(self, appointment: Appointment) -> None:
        with self._lock:
            self._appointments.append(appointment)

    def list_upcoming(self, start, end, limit=MAX_APPOINTMENTS_PER_RUN):
        with self._lock:
            matching = [
                a for a in self._appointments
                if a.status == SCHEDULED and start <= a.appointment_date <= end
            ]
        matching.sort(key=lambda a: a.appointment_date)
        return matching[:limit]


class PostgresAppointmentRepository(BaseRepository[Appointment], AppointmentRepository):
    """appointments table joined with counselors."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "appointments")

    def _row_to_entity(self, row: tuple) -> Appointment:
        return Appointment(
            id=row[0],
            user_id=row[1],
            counselor_id=row[2],
            appointment_date=row[3],
            duration_minutes=row[4],
            appointment_type=row[5],
            status=row[6],
            counselor_name=row[7],
            contact_method=row[8],
        )

    def list_upcoming(self, start, end, limit=MAX_APPOINTMENTS_PER_RUN):
        rows = self._fetch_all(
            """
            SELECT a.id, a.user_id, a.counselor_id, a.appointment_date,
                   a.duration_minutes, a.type, a.status,
                   c.name, c.contact_method
            FROM appointments a
            LEFT JOIN counselors c ON c.id = a.counselor_id
            WHERE a.status = %s
              AND a.appointment_date >= %s
              AND a.appointment_date <= %s
            ORDER BY a.appointment_date ASC
            LIMIT %s
            """,
            (SCHEDULED, start, end, limit),
        )
        return [self._row_to_entity(row) for row in rows]


def clamp_look_ahead(value: Optional[Any], config: NotificationConfig) -> int:
    """Clamp a look-ahead in minutes; non-numeric or non-finite values fall back to the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return config.default_look_ahead_minutes
    if isinstance(value, float) and not math.isfinite(value):
        return config.default_look_ahead_minutes
    return int(min(max(value, config.min_look_ahead_minutes), config.max_look_ahead_minutes))


class AppointmentReminderScheduler:
    """Enqueues reminders for appointments starting soon."""

    def __init__(
        self,
        repository: AppointmentRepository,
        enqueuer: NotificationEnqueuer,
        resolver_factory: Callable[[], ContactResolver],
        config: Optional[NotificationConfig] = None,
    ):
        self.repository = repository
        self.enqueuer = enqueuer
        self.resolver_factory = resolver_factory
        self.config = config or NotificationConfig()

    def run(self, look_ahead_minutes: Optional[Any] = None, dry_run: bool = False) -> Dict[str, Any]:
        """Enqueue reminders for one window.

        Args:
            look_ahead_minutes: Window length; clamped to the configured bounds
            dry_run: Report channel counts without writing

        Returns:
            {"processed", "results": [{"appointmentId", "created", "skipped"?}],
             "windowStart", "windowEnd"}

        Raises:
            RepositoryError: If the appointments cannot be fetched
        """
        minutes = clamp_look_ahead(look_ahead_minutes, self.config)
        window_start = utc_now()
        window_end = window_start + timedelta(minutes=minutes)

        appointments = self.repository.list_upcoming(window_start, window_end)
        results = []

        with self.resolver_factory() as resolver:
            for appointment in appointments:
                results.append(self._remind(appointment, resolver, dry_run))

        logger.info(
            "APPOINTMENT_REMINDERS_COMPLETED",
            extra={
                "processed": len(appointments),
                "look_ahead_minutes": minutes,
                "notifications_created": sum(r["created"] for r in results),
                "dry_run": dry_run,
            }
        )

        return {
            "processed": len(appointments),
            "results": results,
            "windowStart": window_start.isoformat(),
            "windowEnd": window_end.isoformat(),
        }

    def _remind(self, appointment: Appointment, resolver: ContactResolver, dry_run: bool) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"appointmentId": appointment.id, "created": 0}
        try:
            outcome = self.enqueuer.enqueue(
                appointment.user_id,
                NotificationType.APPOINTMENT_REMINDER,
                appointment.to_source_entity(),
                resolver=resolver,
                dry_run=dry_run,
            )
        except Exception as e:
            logger.error(
                "APPOINTMENT_REMINDER_FAILED",
                extra={
                    "appointment_id": appointment.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            entry["skipped"] = str(e) or "error"
            return entry

        if outcome.skipped_reason:
            entry["skipped"] = outcome.skipped_reason
        elif dry_run:
            entry["created"] = len(outcome.channel_results)
        else:
            entry["created"] = outcome.channels_created
            if outcome.failed_channels and not outcome.channels_created:
                entry["skipped"] = "enqueue-failed"
        return entry
