"""
Side-channel delivery of notifications.

The core only hands a notification id to a NotificationSender and records the
outcome. When SQS_NOTIFICATION_QUEUE_URL is configured, ids are published to
that queue for the mail worker; otherwise (development) the send is logged and
treated as successful.
"""
import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from caseflow.core.config import Settings

logger = logging.getLogger(__name__)

RecordDelivery = Callable[[int, str, bool, str | None], Awaitable[bool]]


class NotificationSender(Protocol):
    channel: str

    async def send(self, notification_id: int) -> None:
        """Hand off one notification; raise on failure."""


class LoggingNotificationSender:
    channel = "email"

    async def send(self, notification_id: int) -> None:
        logger.info(
            "DEV: delivery skipped for notification %s (SQS not configured)", notification_id
        )


class SqsNotificationSender:
    channel = "email"

    def __init__(self, queue_url: str, region: str, client=None) -> None:
        self._queue_url = queue_url
        self._region = region
        self._client = client

    def _sqs(self):
        if self._client is None:
            import boto3

            self._client = boto3.client("sqs", region_name=self._region)
        return self._client

    async def send(self, notification_id: int) -> None:
        body = json.dumps({"notification_id": notification_id, "channel": self.channel})
        await asyncio.to_thread(
            self._sqs().send_message, QueueUrl=self._queue_url, MessageBody=body
        )


def build_sender(settings: Settings) -> NotificationSender:
    if settings.sqs_configured:
        return SqsNotificationSender(settings.sqs_notification_queue_url, settings.aws_region)
    return LoggingNotificationSender()


class DeliveryService:
    """Retries a send a bounded number of times and records every attempt."""

    def __init__(
        self,
        sender: NotificationSender,
        record: RecordDelivery,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
    ) -> None:
        self._sender = sender
        self._record = record
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay

    async def deliver(self, notification_id: int) -> bool:
        channel = getattr(self._sender, "channel", "email")
        last_error: str | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._sender.send(notification_id)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                await self._record(notification_id, channel, False, last_error)
                logger.warning(
                    "Delivery attempt %d/%d for notification %s failed: %s",
                    attempt,
                    self._max_attempts,
                    notification_id,
                    last_error,
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay * attempt)
            else:
                await self._record(notification_id, channel, True, None)
                return True

        logger.error(
            "Giving up on %s delivery of notification %s: %s", channel, notification_id, last_error
        )
        return False
