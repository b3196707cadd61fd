"""Notification service HTTP handler.

Endpoints:
- POST /enqueue-notification: create pending records for one event
- POST /dispatch-pending: send one batch of pending records
- POST /appointment-reminders: enqueue reminders for upcoming appointments

Per-item failures are reported in the response body, never as HTTP errors.
"""
import logging
import math
import os

from flask import Flask, request, jsonify

from mindcompanion.shared.database import RepositoryError
from mindcompanion.shared.errors import ValidationError
from mindcompanion.shared.models import SourceEntity
from mindcompanion.shared.utils import hash_pii, configure_pii_salt
from .factory import build_components, connection_manager_from_env

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

components = build_components(connection_manager=connection_manager_from_env())
enqueuer = components.enqueuer
dispatcher = components.build_dispatcher()
reminder_scheduler = components.build_scheduler()


def _optional_int(data: dict, key: str):
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{key} must be a finite number")
    return int(value)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "notification-service",
        "backend": "postgres" if components.connection_manager else "memory",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check; verifies the database when one is configured."""
    manager = components.connection_manager
    if manager is None:
        return jsonify({"status": "ready"}), 200

    try:
        manager.initialize()
    except Exception:
        return jsonify({"status": "not_ready"}), 503

    check = manager.health_check()
    if not check["healthy"]:
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/enqueue-notification", methods=["POST"])
def enqueue_notification():
    """Create pending notifications for one triggering event.

    Request Body:
        {
            "userId": "user_123",
            "type": "appointment_update",
            "sourceEntity": {"kind": "appointment", "id": "apt_1", "attributes": {}},
            "context": {"title": "...", "message": "..."},
            "dryRun": false
        }

    Response:
        {
            "channelsCreated": 2,
            "perChannelResult": [{"channel": "in_app", "status": "created", ...}],
            "contactResolved": true
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    source = data.get("sourceEntity")
    if not isinstance(source, dict):
        return jsonify({"error": "sourceEntity must be an object with kind and id"}), 400

    context = data.get("context")
    if context is not None and not isinstance(context, dict):
        return jsonify({"error": "context must be an object"}), 400

    try:
        result = enqueuer.enqueue(
            data.get("userId"),
            data.get("type"),
            SourceEntity.from_dict(source),
            context=context,
            dry_run=bool(data.get("dryRun", False)),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(
            "ENQUEUE_REQUEST_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Failed to enqueue notification"}), 500

    status_code = 201 if result.channels_created else 200
    logger.info(
        "ENQUEUE_REQUEST_COMPLETED",
        extra={
            "user_id_hash": hash_pii(data["userId"]),
            "channels_created": result.channels_created,
            "skipped_reason": result.skipped_reason,
        }
    )
    return jsonify(result.to_dict()), status_code


@app.route("/dispatch-pending", methods=["POST"])
def dispatch_pending():
    """Send one batch of pending notifications.

    Request Body (optional):
        {"limit": 25, "dryRun": false}

    Response:
        {"processedCount": 3, "dryRun": false, "results": [...]}
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be an object"}), 400

    try:
        limit = _optional_int(data, "limit")
        report = dispatcher.dispatch_pending(
            batch_size=limit,
            dry_run=bool(data.get("dryRun", False)),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RepositoryError as e:
        logger.error("DISPATCH_REQUEST_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to fetch pending notifications"}), 500

    return jsonify(report.to_dict()), 200


@app.route("/appointment-reminders", methods=["POST"])
def appointment_reminders():
    """Enqueue reminders for appointments inside the look-ahead window.

    Request Body (optional):
        {"lookAheadMinutes": 1440, "dryRun": false}

    Response:
        {"processed": 2, "results": [...], "windowStart": "...", "windowEnd": "..."}
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        data = {}

    try:
        summary = reminder_scheduler.run(
            look_ahead_minutes=data.get("lookAheadMinutes"),
            dry_run=bool(data.get("dryRun", False)),
        )
    except RepositoryError as e:
        logger.error("APPOINTMENT_REMINDERS_REQUEST_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to fetch appointments"}), 500

    return jsonify(summary), 200


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8002"))
    app.run(host="0.0.0.0", port=port)
