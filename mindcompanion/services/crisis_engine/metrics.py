"""Crisis dashboard metrics.

Point-in-time snapshot computed from the alert store on every call:
- activeAlerts: alerts in pending, acknowledged or contacted
- totalAlerts: alerts detected in the trailing 7 days
- weeklyTrendPercent: change vs the 7 days before that (0 if none then)
- avgResponseTimeMinutes: mean detected->updated time of resolved alerts
  detected in the trailing 7 days (0 if none)
- resolutionRatePercent: resolved / total for the trailing 7 days
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from mindcompanion.shared.models import ACTIVE_ALERT_STATUSES, AlertStatus, utc_now
from .alert_repository import AlertRepository

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class CrisisMetrics:
    total_alerts: int
    active_alerts: int
    avg_response_time_minutes: int
    resolution_rate_percent: int
    weekly_trend_percent: int
    computed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAlerts": self.total_alerts,
            "activeAlerts": self.active_alerts,
            "avgResponseTimeMinutes": self.avg_response_time_minutes,
            "resolutionRatePercent": self.resolution_rate_percent,
            "weeklyTrendPercent": self.weekly_trend_percent,
            "computedAt": self.computed_at.isoformat(),
        }


class MetricsAggregator:
    """Computes CrisisMetrics from the alert store. Read-only."""

    def __init__(self, alert_repository: AlertRepository):
        self.alert_repository = alert_repository

    def compute_metrics(self, now: Optional[datetime] = None) -> CrisisMetrics:
        """Compute a fresh metrics snapshot.

        Args:
            now: Reference time (defaults to current UTC time)
        """
        now = now or utc_now()
        week_ago = now - WEEK
        two_weeks_ago = now - 2 * WEEK
        repo = self.alert_repository

        active = repo.count_with_status(ACTIVE_ALERT_STATUSES)
        this_week = repo.count_detected_between(week_ago)
        last_week = repo.count_detected_between(two_weeks_ago, week_ago)
        resolved_this_week = repo.count_detected_between(week_ago, status=AlertStatus.RESOLVED)

        weekly_trend = 0.0
        if last_week > 0:
            weekly_trend = (this_week - last_week) / last_week * 100

        avg_response = 0.0
        resolved = repo.list_resolved_detected_since(week_ago)
        if resolved:
            minutes = [
                (updated - detected).total_seconds() / 60
                for detected, updated in resolved
            ]
            avg_response = sum(minutes) / len(minutes)

        resolution_rate = 0.0
        if this_week > 0:
            resolution_rate = resolved_this_week / this_week * 100

        metrics = CrisisMetrics(
            total_alerts=this_week,
            active_alerts=active,
            avg_response_time_minutes=_round_half_up(avg_response),
            resolution_rate_percent=_round_half_up(resolution_rate),
            weekly_trend_percent=_round_half_up(weekly_trend),
            computed_at=now,
        )

        logger.info(
            "CRISIS_METRICS_COMPUTED",
            extra={
                "total_alerts": metrics.total_alerts,
                "active_alerts": metrics.active_alerts,
                "last_week_alerts": last_week,
                "resolved_this_week": resolved_this_week,
            }
        )
        return metrics
