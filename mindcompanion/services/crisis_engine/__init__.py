"""Crisis Engine: crisis alert lifecycle and dashboard metrics.

Alerts move pending -> acknowledged -> contacted -> resolved, or to
false_positive from any open state. Status changes are compare-and-set
so concurrent counselor actions cannot both apply.

Endpoints:
- GET /crisis-metrics - Dashboard metrics
- GET /crisis/active - List active alerts
- POST /crisis/<id>/acknowledge|contacted|resolve|false-positive
"""

from .alert_repository import (
    AlertRepository,
    InMemoryAlertRepository,
    PostgresAlertRepository,
    build_alert_repository,
)
from .alerts import CrisisAlertService, RaisedAlert
from .metrics import CrisisMetrics, MetricsAggregator

__all__ = [
    "AlertRepository",
    "InMemoryAlertRepository",
    "PostgresAlertRepository",
    "build_alert_repository",
    "CrisisAlertService",
    "RaisedAlert",
    "CrisisMetrics",
    "MetricsAggregator",
]
