"""Operator alert sinks.

Alerts are the only place a failed reconciliation becomes visible, since
the webhook sender was acknowledged before processing started.
"""

import datetime as dt
from collections.abc import Iterable
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from reconciler.services.gateway import AlertSink
from reconciler.utils.logging import get_logger

logger = get_logger(__name__)


class LoggingAlertSink:
    """Writes alerts to the error log."""

    def notify(self, subject: str, detail: str) -> None:
        timestamp = dt.datetime.now(dt.UTC).isoformat()
        logger.error("[ALERT] %s | %s | %s", timestamp, subject, detail)


class SesAlertSink:
    """E-mails alerts to the merchant via SES."""

    def __init__(
        self,
        from_email: str,
        to_email: str,
        region_name: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.from_email = from_email
        self.to_email = to_email
        self._ses = client or boto3.client("ses", region_name=region_name)

    def notify(self, subject: str, detail: str) -> None:
        try:
            self._ses.send_email(
                Source=self.from_email,
                Destination={"ToAddresses": [self.to_email]},
                Message={
                    "Subject": {"Data": f"[Reconciler] {subject}", "Charset": "UTF-8"},
                    "Body": {"Text": {"Data": detail, "Charset": "UTF-8"}},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to send alert email: %s", e)
            raise


class CompositeAlertSink:
    """Fans an alert out to several sinks.

    A failing sink does not stop the others from being notified.
    """

    def __init__(self, sinks: Iterable[AlertSink]) -> None:
        self.sinks = list(sinks)

    def notify(self, subject: str, detail: str) -> None:
        for sink in self.sinks:
            try:
                sink.notify(subject, detail)
            except Exception:
                logger.exception("Alert sink %s failed", type(sink).__name__)
