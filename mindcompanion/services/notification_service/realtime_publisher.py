"""Realtime publisher for newly created notifications.

Publishes a "notification.created" event to Kinesis so connected clients
can update live badges. Fire-and-forget: a publish failure never affects
the enqueue result or the dispatch state of the record.
"""
import json
import logging
import os
from typing import Optional

import boto3

from mindcompanion.shared.models import NotificationRecord
from mindcompanion.shared.utils import hash_pii

logger = logging.getLogger(__name__)


class NotificationPublisher:
    """Publishes notification.created events to a Kinesis stream."""

    def __init__(
        self,
        stream_name: str = "mindcompanion-notifications",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        """Initialize publisher.

        Args:
            stream_name: Kinesis stream name
            enabled: Whether publishing is enabled (disable for local dev)
            region: AWS region (defaults to AWS_REGION env var)
        """
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = None

        logger.info(
            "NOTIFICATION_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": self.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                self._kinesis_client = boto3.client("kinesis", region_name=self.region)
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._kinesis_client

    @staticmethod
    def build_payload(record: NotificationRecord, user_id_hash: str) -> dict:
        return {
            "event_type": "notification.created",
            "notification_id": record.id,
            "user_id_hash": user_id_hash,
            "type": record.type,
            "channel": record.channel.value,
            "title": record.title,
            "created_at": record.created_at.isoformat(),
        }

    def publish_created(self, record: NotificationRecord) -> bool:
        """Publish a created record. Never raises.

        Returns:
            True if the stream accepted the event
        """
        if not self.enabled:
            return False

        client = self.kinesis_client
        if client is None:
            logger.warning(
                "NOTIFICATION_PUBLISH_SKIPPED",
                extra={"notification_id": record.id, "reason": "kinesis_client_unavailable"}
            )
            return False

        user_id_hash = hash_pii(record.user_id)
        try:
            client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(self.build_payload(record, user_id_hash)),
                PartitionKey=user_id_hash,
            )
        except Exception as e:
            logger.warning(
                "NOTIFICATION_PUBLISH_FAILED",
                extra={
                    "notification_id": record.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False

        logger.info(
            "NOTIFICATION_PUBLISHED",
            extra={"notification_id": record.id, "channel": record.channel.value}
        )
        return True
