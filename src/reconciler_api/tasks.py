"""Detached units of work scheduled after the webhook is acknowledged."""

from collections.abc import Callable
from typing import Any

from reconciler.utils.logging import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)


def run_detached(
    job: Callable[[], Any],
    *,
    correlation_id: str | None = None,
    label: str = "webhook",
) -> None:
    """Run a job outside the request/response cycle.

    The job gets the request's correlation ID for its own log lines.
    Anything it raises is logged here and goes no further, since the
    sender already has its response.
    """
    set_correlation_id(correlation_id)
    try:
        job()
    except Exception:
        logger.exception("Detached %s processing failed", label)
    finally:
        clear_correlation_id()
