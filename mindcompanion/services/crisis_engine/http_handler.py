"""Crisis Engine HTTP handler - crisis dashboard and alert lifecycle.

Counselor-facing endpoints: dashboard metrics, the active alert list, and
one status change endpoint per lifecycle action.
"""
import logging
import os

from flask import Flask, request, jsonify

from mindcompanion.shared.database import NotFoundError
from mindcompanion.shared.errors import InvalidTransitionError
from mindcompanion.shared.utils import configure_pii_salt
from mindcompanion.services.notification_service.factory import connection_manager_from_env
from .alert_repository import build_alert_repository
from .alerts import CrisisAlertService
from .metrics import MetricsAggregator

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

alert_repository = build_alert_repository(connection_manager_from_env())
alert_service = CrisisAlertService(alert_repository=alert_repository)
metrics_aggregator = MetricsAggregator(alert_repository)

MAX_ACTIVE_LIMIT = 500


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "crisis-engine",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check."""
    if alert_service is None:
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/crisis-metrics", methods=["GET"])
def crisis_metrics():
    """Dashboard metrics over the trailing 7 days.

    Response:
        {
            "totalAlerts": 12,
            "activeAlerts": 3,
            "avgResponseTimeMinutes": 42,
            "resolutionRatePercent": 67,
            "weeklyTrendPercent": -20,
            "computedAt": "..."
        }
    """
    try:
        metrics = metrics_aggregator.compute_metrics()
    except Exception as e:
        logger.error("CRISIS_METRICS_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to compute crisis metrics"}), 500

    return jsonify(metrics.to_dict()), 200


@app.route("/crisis/active", methods=["GET"])
def get_active_alerts():
    """Active alerts, oldest first.

    Query Params:
        limit: Maximum alerts to return (default 100)
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = min(max(limit, 1), MAX_ACTIVE_LIMIT)

    try:
        active = alert_service.list_active(limit=limit)
    except Exception as e:
        logger.error("CRISIS_LIST_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to list crisis alerts"}), 500

    return jsonify({
        "count": len(active),
        "alerts": [alert.to_dict() for alert in active],
    }), 200


def _apply(alert_id: str, action):
    data = request.get_json(silent=True) or {}
    actor_id = data.get("actorId") if isinstance(data, dict) else None

    try:
        alert = action(alert_id, actor_id)
    except NotFoundError:
        return jsonify({"error": "Alert not found"}), 404
    except InvalidTransitionError as e:
        return jsonify({
            "error": str(e),
            "currentStatus": e.current,
        }), 409
    except Exception as e:
        logger.error(
            "CRISIS_STATUS_CHANGE_ERROR",
            extra={"alert_id": alert_id, "error": str(e)}
        )
        return jsonify({"error": "Failed to update crisis alert"}), 500

    return jsonify(alert.to_dict()), 200


@app.route("/crisis/<alert_id>/acknowledge", methods=["POST"])
def acknowledge_alert(alert_id: str):
    """Counselor has seen the alert.

    Request Body (optional):
        {"actorId": "counselor_123"}
    """
    return _apply(alert_id, alert_service.acknowledge)


@app.route("/crisis/<alert_id>/contacted", methods=["POST"])
def mark_contacted(alert_id: str):
    return _apply(alert_id, alert_service.mark_contacted)


@app.route("/crisis/<alert_id>/resolve", methods=["POST"])
def resolve_alert(alert_id: str):
    return _apply(alert_id, alert_service.resolve)


@app.route("/crisis/<alert_id>/false-positive", methods=["POST"])
def mark_false_positive(alert_id: str):
    return _apply(alert_id, alert_service.mark_false_positive)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8003"))
    app.run(host="0.0.0.0", port=port, debug=False)
