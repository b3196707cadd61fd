"""Tests for crisis alert storage."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

from mindcompanion.shared.database import DuplicateError, RepositoryError
from mindcompanion.shared.models import AlertStatus, CrisisAlert, CrisisLevel
from mindcompanion.services.crisis_engine.alert_repository import (
    InMemoryAlertRepository,
    PostgresAlertRepository,
    build_alert_repository,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_alert(alert_id, status=AlertStatus.PENDING, detected_at=NOW, updated_at=None):
    return CrisisAlert(
        alert_id=alert_id,
        user_id=f"user_{alert_id}",
        level=CrisisLevel.HIGH,
        status=status,
        detected_at=detected_at,
        updated_at=updated_at or detected_at,
        triggers=("kill myself",),
        confidence=0.5,
    )


@pytest.fixture
def repository():
    return InMemoryAlertRepository()


class TestInMemoryAlertRepository:
    def test_insert_and_get(self, repository):
        repository.insert(make_alert("a1"))

        alert = repository.get("a1")
        assert alert.alert_id == "a1"
        assert alert.status == AlertStatus.PENDING

    def test_get_unknown_returns_none(self, repository):
        assert repository.get("missing") is None

    def test_duplicate_insert_raises(self, repository):
        repository.insert(make_alert("a1"))

        with pytest.raises(DuplicateError):
            repository.insert(make_alert("a1"))

    def test_get_returns_copy(self, repository):
        repository.insert(make_alert("a1"))

        repository.get("a1").status = AlertStatus.RESOLVED

        assert repository.get("a1").status == AlertStatus.PENDING

    def test_update_status_compare_and_set(self, repository):
        repository.insert(make_alert("a1"))
        later = NOW + timedelta(minutes=5)

        updated = repository.update_status("a1", AlertStatus.PENDING, AlertStatus.ACKNOWLEDGED, later)

        assert updated.status == AlertStatus.ACKNOWLEDGED
        assert updated.updated_at == later
        assert updated.detected_at == NOW

    def test_update_status_stale_expected_returns_none(self, repository):
        repository.insert(make_alert("a1", status=AlertStatus.ACKNOWLEDGED))

        result = repository.update_status("a1", AlertStatus.PENDING, AlertStatus.CONTACTED, NOW)

        assert result is None
        assert repository.get("a1").status == AlertStatus.ACKNOWLEDGED

    def test_count_with_status(self, repository):
        repository.insert(make_alert("a1"))
        repository.insert(make_alert("a2", status=AlertStatus.CONTACTED))
        repository.insert(make_alert("a3", status=AlertStatus.RESOLVED))

        assert repository.count_with_status([AlertStatus.PENDING, AlertStatus.CONTACTED]) == 2

    def test_count_detected_between(self, repository):
        repository.insert(make_alert("a1", detected_at=NOW - timedelta(days=1)))
        repository.insert(make_alert("a2", detected_at=NOW - timedelta(days=8)))
        repository.insert(
            make_alert("a3", status=AlertStatus.RESOLVED, detected_at=NOW - timedelta(days=2))
        )

        week_ago = NOW - timedelta(days=7)
        assert repository.count_detected_between(week_ago) == 2
        assert repository.count_detected_between(NOW - timedelta(days=14), week_ago) == 1
        assert repository.count_detected_between(week_ago, status=AlertStatus.RESOLVED) == 1

    def test_list_resolved_detected_since(self, repository):
        detected = NOW - timedelta(hours=2)
        repository.insert(
            make_alert("a1", AlertStatus.RESOLVED, detected, detected + timedelta(minutes=30))
        )
        repository.insert(make_alert("a2", AlertStatus.CONTACTED, detected))

        assert repository.list_resolved_detected_since(NOW - timedelta(days=7)) == [
            (detected, detected + timedelta(minutes=30))
        ]

    def test_list_active_oldest_first(self, repository):
        repository.insert(make_alert("newer", detected_at=NOW))
        repository.insert(make_alert("older", detected_at=NOW - timedelta(hours=1)))
        repository.insert(make_alert("closed", status=AlertStatus.FALSE_POSITIVE))

        active = repository.list_active()

        assert [a.alert_id for a in active] == ["older", "newer"]
        assert len(repository.list_active(limit=1)) == 1


@pytest.fixture
def mock_cursor():
    return MagicMock()


@pytest.fixture
def connection_manager(mock_cursor):
    manager = MagicMock()
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = mock_cursor
    manager.get_connection.return_value.__enter__.return_value = conn
    return manager


def alert_row(alert_id="a1", status="pending"):
    return (
        alert_id, "user_1", "high", status, ["kill myself"], 0.5, "chat_message",
        "msg_1", "excerpt", {}, NOW, NOW,
    )


class TestPostgresAlertRepository:
    def test_insert_commits(self, connection_manager, mock_cursor):
        mock_cursor.fetchone.return_value = ("a1",)
        repository = PostgresAlertRepository(connection_manager)

        repository.insert(make_alert("a1"))

        query = mock_cursor.execute.call_args[0][0]
        assert "INSERT INTO crisis_alerts" in query
        assert "ON CONFLICT (id) DO NOTHING" in query
        conn = connection_manager.get_connection.return_value.__enter__.return_value
        conn.commit.assert_called_once()

    def test_insert_conflict_raises_duplicate(self, connection_manager, mock_cursor):
        mock_cursor.fetchone.return_value = None
        repository = PostgresAlertRepository(connection_manager)

        with pytest.raises(DuplicateError):
            repository.insert(make_alert("a1"))

    def test_get_maps_row(self, connection_manager, mock_cursor):
        mock_cursor.fetchone.return_value = alert_row()
        repository = PostgresAlertRepository(connection_manager)

        alert = repository.get("a1")

        assert alert.level == CrisisLevel.HIGH
        assert alert.status == AlertStatus.PENDING
        assert alert.triggers == ("kill myself",)

    def test_update_status_uses_expected_status(self, connection_manager, mock_cursor):
        mock_cursor.fetchone.return_value = alert_row(status="acknowledged")
        repository = PostgresAlertRepository(connection_manager)

        updated = repository.update_status("a1", AlertStatus.PENDING, AlertStatus.ACKNOWLEDGED, NOW)

        query, params = mock_cursor.execute.call_args[0]
        assert "WHERE id = %s AND status = %s" in query
        assert params == ("acknowledged", NOW, "a1", "pending")
        assert updated.status == AlertStatus.ACKNOWLEDGED

    def test_count_detected_between_builds_clauses(self, connection_manager, mock_cursor):
        mock_cursor.fetchone.return_value = (3,)
        repository = PostgresAlertRepository(connection_manager)

        count = repository.count_detected_between(NOW, NOW, AlertStatus.RESOLVED)

        query, params = mock_cursor.execute.call_args[0]
        assert "detected_at < %s" in query
        assert params == [NOW, NOW, "resolved"]
        assert count == 3

    def test_driver_error_wrapped(self, connection_manager, mock_cursor):
        mock_cursor.execute.side_effect = Exception("connection reset")
        repository = PostgresAlertRepository(connection_manager)

        with pytest.raises(RepositoryError):
            repository.count_with_status([AlertStatus.PENDING])


class TestBuildAlertRepository:
    def test_in_memory_without_connection_manager(self):
        assert isinstance(build_alert_repository(None), InMemoryAlertRepository)

    def test_postgres_with_connection_manager(self, connection_manager):
        assert isinstance(build_alert_repository(connection_manager), PostgresAlertRepository)
