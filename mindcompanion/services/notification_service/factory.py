"""Builds notification components from environment configuration.

PostgreSQL-backed stores are used when DB_HOST is set; otherwise each
process gets its own in-memory stores for local development.
"""
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from mindcompanion.shared.database import ConnectionManager, get_connection_manager
from .config import NotificationConfig
from .contact_resolver import ContactResolver
from .directory import (
    CounselorStore,
    IdentityStore,
    InMemoryCounselorStore,
    InMemoryIdentityStore,
    InMemoryProfileStore,
    PostgresCounselorStore,
    PostgresIdentityStore,
    PostgresProfileStore,
    ProfileStore,
)
from .dispatcher import NotificationDispatcher
from .enqueuer import NotificationEnqueuer
from .notification_repository import (
    InMemoryNotificationRepository,
    NotificationRepository,
    PostgresNotificationRepository,
)
from .providers import SendGridEmailProvider, TwilioSmsProvider
from .realtime_publisher import NotificationPublisher
from .reminders import (
    AppointmentReminderScheduler,
    AppointmentRepository,
    InMemoryAppointmentRepository,
    PostgresAppointmentRepository,
)

logger = logging.getLogger(__name__)


def connection_manager_from_env() -> Optional[ConnectionManager]:
    """Shared PostgreSQL connection manager, or None for in-memory mode."""
    if not os.getenv("DB_HOST"):
        return None
    return get_connection_manager()


@dataclass
class NotificationComponents:
    """Wired notification stack for one process."""
    config: NotificationConfig
    repository: NotificationRepository
    appointments: AppointmentRepository
    identity_store: IdentityStore
    profile_store: ProfileStore
    counselor_store: CounselorStore
    enqueuer: NotificationEnqueuer
    connection_manager: Optional[ConnectionManager] = None

    @property
    def resolver_factory(self) -> Callable[[], ContactResolver]:
        return self.enqueuer.resolver_factory

    def build_dispatcher(self) -> NotificationDispatcher:
        return NotificationDispatcher(
            repository=self.repository,
            resolver_factory=self.resolver_factory,
            email_provider=SendGridEmailProvider(
                api_key=self.config.sendgrid_api_key,
                from_email=self.config.sendgrid_from_email,
                timeout_seconds=self.config.provider_timeout_seconds,
            ),
            sms_provider=TwilioSmsProvider(
                account_sid=self.config.twilio_account_sid,
                auth_token=self.config.twilio_auth_token,
                from_number=self.config.twilio_from_number,
                timeout_seconds=self.config.provider_timeout_seconds,
            ),
            default_batch_size=self.config.default_batch_size,
            max_batch_size=self.config.max_batch_size,
        )

    def build_scheduler(self) -> AppointmentReminderScheduler:
        return AppointmentReminderScheduler(
            repository=self.appointments,
            enqueuer=self.enqueuer,
            resolver_factory=self.resolver_factory,
            config=self.config,
        )


def build_components(
    config: Optional[NotificationConfig] = None,
    connection_manager: Optional[ConnectionManager] = None,
) -> NotificationComponents:
    """Wire stores, resolver factory and enqueuer.

    Args:
        config: Notification config (defaults to NotificationConfig.from_env())
        connection_manager: PostgreSQL manager; in-memory stores if None
    """
    config = config or NotificationConfig.from_env()

    if connection_manager is not None:
        repository = PostgresNotificationRepository(connection_manager)
        appointments = PostgresAppointmentRepository(connection_manager)
        identity_store = PostgresIdentityStore(connection_manager)
        profile_store = PostgresProfileStore(connection_manager)
        counselor_store = PostgresCounselorStore(connection_manager)
    else:
        repository = InMemoryNotificationRepository()
        appointments = InMemoryAppointmentRepository()
        identity_store = InMemoryIdentityStore()
        profile_store = InMemoryProfileStore()
        counselor_store = InMemoryCounselorStore()

    def resolver_factory() -> ContactResolver:
        return ContactResolver(
            identity_store,
            profile_store,
            timeout_seconds=config.contact_lookup_timeout_seconds,
        )

    publisher = None
    if config.realtime_publishing_enabled:
        publisher = NotificationPublisher(stream_name=config.kinesis_stream_name)

    logger.info(
        "NOTIFICATION_COMPONENTS_BUILT",
        extra={
            "backend": "postgres" if connection_manager is not None else "memory",
            "realtime_publishing": publisher is not None,
        }
    )

    return NotificationComponents(
        config=config,
        repository=repository,
        appointments=appointments,
        identity_store=identity_store,
        profile_store=profile_store,
        counselor_store=counselor_store,
        enqueuer=NotificationEnqueuer(repository, resolver_factory, publisher),
        connection_manager=connection_manager,
    )
