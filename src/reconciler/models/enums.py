"""Enumeration types for reconciliation data models."""

from enum import Enum


class OrderStatus(str, Enum):
    """Reconciliation status of an order.

    Progresses pending -> invoiced -> paid, or pending -> paid directly
    when an auto-charge succeeds. Never moves backwards.
    """

    PENDING = "pending"
    INVOICED = "invoiced"
    PAID = "paid"

    @property
    def rank(self) -> int:
        """Position along the lifecycle, used for monotonicity checks."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.INVOICED: 1,
    OrderStatus.PAID: 2,
}


class WebhookSender(str, Enum):
    """Origin of an inbound webhook."""

    ORDER_SYSTEM = "order_system"
    PAYMENT_PLATFORM = "payment_platform"


class SagaOutcome(str, Enum):
    """Terminal state reached by one reconciliation pass."""

    DUPLICATE = "duplicate"
    PAID = "paid"
    PAID_UNSYNCED = "paid_unsynced"  # paid in ledger, order system not updated
    INVOICED = "invoiced"
    ABORTED = "aborted"
    ORDER_NOT_FOUND = "order_not_found"
    SKIPPED = "skipped"
