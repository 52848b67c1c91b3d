"""Logging with a per-request correlation ID.

One webhook delivery is acknowledged on the request thread and processed
on another, so the correlation ID lives in a ContextVar that the
middleware sets for the request and the detached task sets again for the
saga. Every record carries it as `correlation_id`; the structured
formatter prints it as a prefix.

Usage:
    from reconciler.utils.logging import get_logger, log_saga_step

    logger = get_logger(__name__)
    log_saga_step(logger, "order_received", "invoiced", order_number="1002")
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

NO_CORRELATION_ID = "no-correlation-id"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Webhook results that deserve more than INFO
_WEBHOOK_RESULT_LEVELS = {
    "rejected": logging.WARNING,
    "paid_unsynced": logging.WARNING,
    "aborted": logging.ERROR,
    "error": logging.ERROR,
}


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current context, generating one if needed."""
    cid = correlation_id or str(uuid.uuid4())
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Stamps the current correlation ID onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefixes each line with its correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        cid = getattr(record, "correlation_id", None) or get_correlation_id()
        return f"[{cid or NO_CORRELATION_ID}] {super().format(record)}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger whose records carry the correlation ID."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; an existing structured handler is reused.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def _emit(logger: logging.Logger, level: int, headline: str, context: dict[str, Any]) -> None:
    # Fields go both into the message (for plain-text sinks) and onto the
    # record (for structured ones).
    fields = {key: value for key, value in context.items() if value is not None}
    message = " | ".join([headline, *(f"{key}={value}" for key, value in fields.items())])
    logger.log(level, message, extra=fields)


def log_saga_step(
    logger: logging.Logger,
    saga: str,
    step: str,
    *,
    order_id: str | None = None,
    order_number: str | None = None,
    invoice_id: str | None = None,
    payment_id: str | None = None,
    amount_minor_units: int | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log one step of a reconciliation saga.

    Steps that carry an error are logged at ERROR, everything else at INFO.

    Args:
        logger: Logger instance
        saga: Saga name ("order_received" or "payment_confirmed")
        step: Step name (e.g., "customer_resolved", "charge_declined")
        error: Error message if the step failed
        **extra: Additional context fields (must not clash with LogRecord attributes)
    """
    context = {
        "order_id": order_id,
        "order_number": order_number,
        "invoice_id": invoice_id,
        "payment_id": payment_id,
        "amount_minor_units": amount_minor_units,
        "error": error or None,
        **extra,
    }
    level = logging.ERROR if error else logging.INFO
    _emit(logger, level, f"Saga {saga}: {step}", {"saga": saga, "step": step, **context})


def log_webhook_event(
    logger: logging.Logger,
    sender: str,
    event_kind: str,
    delivery_id: str | None = None,
    *,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log what became of one inbound webhook delivery.

    Args:
        sender: "order_system" or "payment_platform"
        event_kind: Topic or event type (e.g., "orders/create")
        delivery_id: Sender-assigned delivery or event ID
        result: skipped, rejected, or the saga outcome
    """
    level = _WEBHOOK_RESULT_LEVELS.get(result or "", logging.INFO)
    _emit(
        logger,
        level,
        f"Webhook {sender}: {event_kind} ({delivery_id or 'no-id'})",
        {
            "sender": sender,
            "event_kind": event_kind,
            "delivery_id": delivery_id,
            "result": result,
            "error": error or None,
            **extra,
        },
    )
