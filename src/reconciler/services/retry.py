"""Bounded retry for propagating payment confirmation.

One attempt, one retry, then an operator alert. There is deliberately no
backoff and no third attempt: a stuck propagation should reach a human
rather than loop.
"""

from collections.abc import Callable
from typing import Any

from reconciler.services.gateway import AlertSink
from reconciler.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ATTEMPTS = 2


def call_with_single_retry(
    operation: Callable[[], Any],
    *,
    op_name: str,
    alerts: AlertSink,
    alert_subject: str,
    alert_detail: Callable[[Exception], str],
) -> bool:
    """Run an operation, retrying it once before alerting.

    Args:
        operation: Zero-argument callable to attempt
        op_name: Name used in log messages
        alerts: Sink notified after the final failure
        alert_subject: Alert subject line
        alert_detail: Builds the alert body from the last exception

    Returns:
        True if an attempt succeeded, False if both failed
    """
    last_error: Exception | None = None
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            operation()
        except Exception as e:
            last_error = e
            logger.warning(
                "%s failed (attempt %d/%d): %s", op_name, attempt, MAX_ATTEMPTS, e
            )
            continue
        if attempt > 1:
            logger.info("%s succeeded on retry", op_name)
        return True

    assert last_error is not None
    alerts.notify(alert_subject, alert_detail(last_error))
    return False
