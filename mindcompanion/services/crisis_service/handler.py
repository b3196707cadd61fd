"""Crisis service HTTP handler.

POST /classify is pure: it never stores or sends anything.
POST /crisis/analyze classifies user content and, for alerting levels,
raises a crisis alert and enqueues a crisis_alert notification.

Raw text and user ids never appear in logs; user ids are hashed.
"""
import logging
import os

from flask import Flask, request, jsonify

from mindcompanion.shared.errors import ValidationError
from mindcompanion.shared.utils import hash_pii, hash_text_for_audit, configure_pii_salt
from mindcompanion.services.crisis_engine.alert_repository import build_alert_repository
from mindcompanion.services.crisis_engine.alerts import CrisisAlertService
from mindcompanion.services.notification_service.factory import (
    build_components,
    connection_manager_from_env,
)
from .classifier import CrisisClassifier
from .config import ClassifierConfig, get_crisis_resources

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = ClassifierConfig.from_env()
classifier = CrisisClassifier()

connection_manager = connection_manager_from_env()
notification_components = build_components(connection_manager=connection_manager)
alert_service = CrisisAlertService(
    alert_repository=build_alert_repository(connection_manager),
    enqueuer=notification_components.enqueuer,
    alert_levels=config.alert_levels,
    max_excerpt_length=config.max_excerpt_length,
    counselor_store=notification_components.counselor_store,
)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "crisis-service",
        "lexicon_version": config.lexicon_version,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check."""
    if classifier is None or alert_service is None:
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/classify", methods=["POST"])
def classify():
    """Classify text for crisis language.

    Request Body:
        {"text": "..."}

    Response:
        {
            "detected": true,
            "level": "high",
            "triggers": ["kill myself"],
            "confidence": 0.5,
            "resources": {...}
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    try:
        event = classifier.classify(data.get("text"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    response = event.to_dict()
    if event.detected:
        response["resources"] = get_crisis_resources(event.level)

        logger.info(
            "CRISIS_CLASSIFIED",
            extra={
                "level": event.level.value,
                "trigger_count": len(event.triggers),
                "confidence": event.confidence,
                "text_length": len(data["text"]),
                "text_hash": hash_text_for_audit(data["text"])[:16],
            }
        )

    return jsonify(response), 200


@app.route("/crisis/analyze", methods=["POST"])
def analyze():
    """Classify a user's content and raise an alert when warranted.

    Request Body:
        {
            "userId": "user_123",
            "text": "...",
            "sourceType": "chat_message",
            "sourceId": "msg_001"
        }

    Response:
        {
            "classification": {...},
            "alert": {...} | null,
            "notification": {...}
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    user_id = data.get("userId")
    text = data.get("text")

    try:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("Missing userId")
        event = classifier.classify(text)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    response = {"classification": event.to_dict(), "alert": None}
    if event.detected:
        response["classification"]["resources"] = get_crisis_resources(event.level)

    try:
        raised = alert_service.raise_alert(
            user_id=user_id,
            event=event,
            source_type=data.get("sourceType"),
            source_id=data.get("sourceId"),
            content=text,
        )
    except Exception as e:
        logger.critical(
            "CRISIS_ALERT_RAISE_FAILED",
            extra={
                "user_id_hash": hash_pii(user_id),
                "level": event.level.value if event.level else None,
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        response["error"] = "Failed to record crisis alert"
        return jsonify(response), 500

    if raised is None:
        return jsonify(response), 200

    response.update(raised.to_dict())
    return jsonify(response), 201


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8001"))
    app.run(host="0.0.0.0", port=port)
