"""Tests for the crisis dashboard MetricsAggregator."""
from datetime import datetime, timedelta, timezone

import pytest

from mindcompanion.shared.models import AlertStatus, CrisisAlert, CrisisLevel
from mindcompanion.services.crisis_engine.alert_repository import InMemoryAlertRepository
from mindcompanion.services.crisis_engine.metrics import MetricsAggregator

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def add_alert(repository, alert_id, status, detected_ago, response_minutes=0):
    detected_at = NOW - detected_ago
    repository.insert(CrisisAlert(
        alert_id=alert_id,
        user_id="user_1",
        level=CrisisLevel.HIGH,
        status=status,
        detected_at=detected_at,
        updated_at=detected_at + timedelta(minutes=response_minutes),
    ))


@pytest.fixture
def repository():
    return InMemoryAlertRepository()


class TestMetricsAggregator:
    def test_empty_store_is_all_zero(self, repository):
        metrics = MetricsAggregator(repository).compute_metrics(now=NOW)

        assert metrics.to_dict() == {
            "totalAlerts": 0,
            "activeAlerts": 0,
            "avgResponseTimeMinutes": 0,
            "resolutionRatePercent": 0,
            "weeklyTrendPercent": 0,
            "computedAt": NOW.isoformat(),
        }

    def test_weekly_snapshot(self, repository):
        # This week: 2 resolved (30 and 61 minutes), 1 pending, 1 false positive
        add_alert(repository, "w1", AlertStatus.RESOLVED, timedelta(days=1), 30)
        add_alert(repository, "w2", AlertStatus.RESOLVED, timedelta(days=2), 61)
        add_alert(repository, "w3", AlertStatus.PENDING, timedelta(hours=3))
        add_alert(repository, "w4", AlertStatus.FALSE_POSITIVE, timedelta(days=3), 5)
        # Last week: 5 resolved
        for i in range(5):
            add_alert(repository, f"l{i}", AlertStatus.RESOLVED, timedelta(days=8 + i), 500)
        # Older, still open
        add_alert(repository, "old", AlertStatus.ACKNOWLEDGED, timedelta(days=21), 10)

        metrics = MetricsAggregator(repository).compute_metrics(now=NOW)

        assert metrics.total_alerts == 4
        assert metrics.active_alerts == 2
        assert metrics.avg_response_time_minutes == 46
        assert metrics.resolution_rate_percent == 50
        assert metrics.weekly_trend_percent == -20

    def test_no_alerts_last_week_trend_is_zero(self, repository):
        add_alert(repository, "w1", AlertStatus.PENDING, timedelta(days=1))

        metrics = MetricsAggregator(repository).compute_metrics(now=NOW)

        assert metrics.weekly_trend_percent == 0
        assert metrics.resolution_rate_percent == 0

    def test_trend_increase(self, repository):
        for i in range(3):
            add_alert(repository, f"w{i}", AlertStatus.PENDING, timedelta(days=1))
        add_alert(repository, "l1", AlertStatus.RESOLVED, timedelta(days=10))

        metrics = MetricsAggregator(repository).compute_metrics(now=NOW)

        assert metrics.weekly_trend_percent == 200

    def test_resolution_rate_rounds_half_up(self, repository):
        # 1 of 8 resolved = 12.5%
        add_alert(repository, "r", AlertStatus.RESOLVED, timedelta(days=1), 10)
        for i in range(7):
            add_alert(repository, f"p{i}", AlertStatus.PENDING, timedelta(days=1))

        metrics = MetricsAggregator(repository).compute_metrics(now=NOW)

        assert metrics.resolution_rate_percent == 13
