"""Tests for NotificationEnqueuer - channel policy and idempotence."""
import pytest
from unittest.mock import MagicMock

from mindcompanion.shared.database import RepositoryError
from mindcompanion.shared.errors import ValidationError
from mindcompanion.shared.models import (
    ChannelStatus,
    ContactProfile,
    NotificationChannel,
    NotificationType,
    PreferredChannel,
    SourceEntity,
)
from mindcompanion.shared.utils import configure_pii_salt
from mindcompanion.services.notification_service.contact_resolver import ContactResolver
from mindcompanion.services.notification_service.directory import (
    InMemoryIdentityStore,
    InMemoryProfileStore,
)
from mindcompanion.services.notification_service.enqueuer import (
    NotificationEnqueuer,
    parse_notification_type,
    select_channels,
)
from mindcompanion.services.notification_service.notification_repository import (
    InMemoryNotificationRepository,
)

CRISIS_SOURCE = SourceEntity("crisis_alert", "alert_001", {"level": "high"})


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def identity_store():
    return InMemoryIdentityStore({
        "user_email": "email@example.edu",
        "user_phone": "phone@example.edu",
        "user_anon": "anon@example.edu",
        "user_none": None,
    })


@pytest.fixture
def profile_store():
    store = InMemoryProfileStore()
    store.set_profile("user_email", "email", "+15550000001")
    store.set_profile("user_phone", "phone", "+15550000002")
    store.set_profile("user_anon", "anonymous", "+15550000003")
    return store


@pytest.fixture
def repository():
    return InMemoryNotificationRepository()


@pytest.fixture
def enqueuer(repository, identity_store, profile_store):
    return NotificationEnqueuer(
        repository,
        lambda: ContactResolver(identity_store, profile_store),
    )


def profile(preference, email=None, phone=None):
    return ContactProfile(
        user_id="u", email=email, phone=phone, preferred_channel=preference,
    )


class TestSelectChannels:
    def test_unresolved_is_in_app_only(self):
        assert select_channels(None) == [NotificationChannel.IN_APP]

    def test_email_preference(self):
        assert select_channels(profile(PreferredChannel.EMAIL, "a@b.c", "+1")) == [
            NotificationChannel.IN_APP, NotificationChannel.EMAIL,
        ]

    def test_email_preference_without_email(self):
        assert select_channels(profile(PreferredChannel.EMAIL, None, "+1")) == [
            NotificationChannel.IN_APP,
        ]

    def test_phone_preference(self):
        assert select_channels(profile(PreferredChannel.PHONE, "a@b.c", "+1")) == [
            NotificationChannel.IN_APP, NotificationChannel.SMS,
        ]

    def test_anonymous_ignores_contacts(self):
        assert select_channels(profile(PreferredChannel.ANONYMOUS, "a@b.c", "+1")) == [
            NotificationChannel.IN_APP,
        ]

    def test_unset_prefers_email_then_phone(self):
        assert select_channels(profile(PreferredChannel.UNSET, "a@b.c", "+1"))[1] == NotificationChannel.EMAIL
        assert select_channels(profile(PreferredChannel.UNSET, None, "+1"))[1] == NotificationChannel.SMS
        assert select_channels(profile(PreferredChannel.UNSET)) == [NotificationChannel.IN_APP]


class TestParseNotificationType:
    def test_known_type(self):
        assert parse_notification_type("crisis_alert") == NotificationType.CRISIS_ALERT

    @pytest.mark.parametrize("value", [None, "", "carrier_pigeon", 3])
    def test_invalid_type(self, value):
        with pytest.raises(ValidationError):
            parse_notification_type(value)


class TestEnqueue:
    def test_creates_in_app_and_email(self, enqueuer, repository):
        result = enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        assert result.channels_created == 2
        assert [r.channel for r in result.channel_results] == [
            NotificationChannel.IN_APP, NotificationChannel.EMAIL,
        ]
        records = repository.list_for_user("user_email")
        assert len(records) == 2
        for record in records:
            assert record.is_pending
            assert record.id.startswith("ntf_")
            assert record.data["source_entity_kind"] == "crisis_alert"
            assert record.data["crisis_alert_id"] == "alert_001"
            assert record.title == "Immediate Support Available"

    def test_sms_copy_is_short_with_opt_out(self, enqueuer, repository):
        enqueuer.enqueue("user_phone", NotificationType.CRISIS_ALERT, CRISIS_SOURCE)

        sms = [r for r in repository.list_for_user("user_phone") if r.channel == NotificationChannel.SMS]
        assert len(sms) == 1
        assert sms[0].message.endswith("Reply STOP to opt out.")

    def test_anonymous_gets_exactly_one_in_app_record(self, enqueuer, repository):
        result = enqueuer.enqueue("user_anon", "crisis_alert", CRISIS_SOURCE)

        records = repository.list_for_user("user_anon")
        assert result.channels_created == 1
        assert len(records) == 1
        assert records[0].channel == NotificationChannel.IN_APP

    def test_unresolvable_user_gets_in_app_only(self, enqueuer):
        result = enqueuer.enqueue("ghost", "crisis_alert", CRISIS_SOURCE)

        assert result.channels_created == 1
        assert result.contact_resolved is False
        assert result.to_dict()["contactResolved"] is False

    def test_second_call_creates_nothing(self, enqueuer, repository):
        enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        second = enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        assert second.channels_created == 0
        assert second.skipped_reason == "already-notified"
        assert len(repository.list_for_user("user_email")) == 2

    def test_different_source_is_not_duplicate(self, enqueuer):
        enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        result = enqueuer.enqueue("user_email", "crisis_alert", SourceEntity("crisis_alert", "alert_002"))

        assert result.channels_created == 2

    def test_dry_run_writes_nothing(self, enqueuer, repository):
        result = enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE, dry_run=True)

        assert [r.status for r in result.channel_results] == [ChannelStatus.DRY_RUN] * 2
        assert result.channels_created == 0
        assert repository.fetch_pending(10) == []

    def test_duplicate_check_failure_skips(self, identity_store, profile_store):
        repository = MagicMock()
        repository.exists_for_source.side_effect = RepositoryError("db down")
        enqueuer = NotificationEnqueuer(repository, lambda: ContactResolver(identity_store, profile_store))

        result = enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        assert result.skipped_reason == "duplicate-check-failed"
        repository.insert.assert_not_called()

    def test_failed_channel_does_not_stop_others(self, identity_store, profile_store):
        repository = MagicMock()
        repository.exists_for_source.return_value = False
        repository.insert.side_effect = [RepositoryError("insert failed"), None]
        enqueuer = NotificationEnqueuer(repository, lambda: ContactResolver(identity_store, profile_store))

        result = enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        assert [r.status for r in result.channel_results] == [
            ChannelStatus.FAILED, ChannelStatus.CREATED,
        ]
        assert result.failed_channels == [NotificationChannel.IN_APP]
        per_channel = result.to_dict()["perChannelResult"]
        assert per_channel[0]["reason"] == "insert failed"
        assert "notificationId" in per_channel[1]

    def test_insert_race_reported_as_duplicate(self, enqueuer, repository):
        enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)
        repository.exists_for_source = MagicMock(return_value=False)

        result = enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        assert [r.status for r in result.channel_results] == [ChannelStatus.DUPLICATE] * 2
        assert result.channels_created == 0

    def test_batch_resolver_is_reused_and_not_closed(self, enqueuer, identity_store, profile_store):
        resolver = ContactResolver(identity_store, profile_store)

        enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE, resolver=resolver)

        assert resolver.cache_size == 1
        resolver.close()

    def test_publisher_called_per_created_record(self, repository, identity_store, profile_store):
        publisher = MagicMock()
        enqueuer = NotificationEnqueuer(
            repository, lambda: ContactResolver(identity_store, profile_store), publisher,
        )

        enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE)

        assert publisher.publish_created.call_count == 2

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_missing_user_id(self, enqueuer, user_id):
        with pytest.raises(ValidationError):
            enqueuer.enqueue(user_id, "crisis_alert", CRISIS_SOURCE)

    def test_source_entity_requires_kind_and_id(self, enqueuer, repository):
        with pytest.raises(ValidationError):
            enqueuer.enqueue("user_email", "crisis_alert", SourceEntity("crisis_alert", ""))
        assert repository.fetch_pending(10) == []

    def test_source_entity_must_be_source_entity(self, enqueuer):
        with pytest.raises(ValidationError):
            enqueuer.enqueue("user_email", "crisis_alert", {"kind": "x", "id": "1"})

    @pytest.mark.parametrize("level", ["bogus", "", 3])
    def test_unknown_crisis_level_rejected_before_writing(self, repository, level):
        check = MagicMock(wraps=repository)
        enqueuer = NotificationEnqueuer(check, MagicMock())

        with pytest.raises(ValidationError):
            enqueuer.enqueue(
                "user_email", "crisis_alert", SourceEntity("crisis_alert", "alert_x", {"level": level})
            )

        check.exists_for_source.assert_not_called()
        assert repository.fetch_pending(10) == []

    def test_context_level_is_validated(self, enqueuer):
        with pytest.raises(ValidationError):
            enqueuer.enqueue("user_email", "crisis_alert", CRISIS_SOURCE, context={"level": "severe"})

    def test_level_is_case_insensitive(self, enqueuer):
        source = SourceEntity("crisis_alert", "alert_case", {"level": "Medium"})

        result = enqueuer.enqueue("user_email", "crisis_alert", source)

        assert result.channels_created == 2

    def test_level_only_checked_for_crisis_alerts(self, enqueuer):
        source = SourceEntity("announcement", "ann_1", {"level": "bogus"})

        result = enqueuer.enqueue("user_email", "system", source)

        assert result.channels_created == 2
