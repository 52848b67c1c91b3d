"""Reconciliation engine: the order-received and payment-confirmed sagas.

The engine reads and writes only through the ledger and drives the two
external systems through their capability interfaces. Nothing it does is
reported back to the webhook sender; outcomes surface as log lines, and
anything that needs a human surfaces as an alert.
"""

from collections.abc import Callable

from reconciler.config import ReconcilerConfig
from reconciler.models import (
    DataInconsistencyError,
    OrderEvent,
    PaymentCustomer,
    PaymentEvent,
    PaymentRef,
    ReconcilerError,
    SagaOutcome,
)
from reconciler.services.gateway import AlertSink, OrderSystem, PaymentGateway
from reconciler.services.ledger import OrderLedger
from reconciler.services.retry import call_with_single_retry
from reconciler.utils.logging import get_logger, log_saga_step
from reconciler.utils.money import to_minor_units

logger = get_logger(__name__)

ORDER_RECEIVED = "order_received"
PAYMENT_CONFIRMED = "payment_confirmed"

# Alert subjects
ORDER_PROCESSING_FAILED = "Order processing failed"
CHARGED_NOT_MARKED_PAID = "Order system update failed"
PAID_NOT_MARKED_PAID = "Order system update failed after payment"
PAYMENT_PROCESSING_FAILED = "Payment webhook processing failed"


def charge_idempotency_key(order_id: str) -> str:
    return f"charge-{order_id}"


def invoice_idempotency_key(order_id: str) -> str:
    return f"invoice-{order_id}"


class ReconciliationEngine:
    """Coordinates one order across the ledger, payment platform and order system."""

    def __init__(
        self,
        ledger: OrderLedger,
        payments: PaymentGateway,
        orders: OrderSystem,
        alerts: AlertSink,
        config: ReconcilerConfig | None = None,
    ) -> None:
        self._ledger = ledger
        self._payments = payments
        self._orders = orders
        self._alerts = alerts
        self._line_item_name = (
            config.invoice_line_item_name if config else "Research Materials"
        )

    # Order received

    def handle_order_received(self, event: OrderEvent) -> SagaOutcome:
        """Run the order-received saga for one order event.

        Gate on the ledger, resolve the payment customer, then either
        charge a stored card or send an invoice. A declined charge falls
        back to the invoice. Any failure after the gate alerts the
        operator and leaves the order reclaimable by a redelivery.
        """
        log_saga_step(
            logger,
            ORDER_RECEIVED,
            "received",
            order_id=event.order_id,
            order_number=event.order_number,
            email=event.email,
        )

        claimed = False
        try:
            order = self._ledger.create_order_if_absent(
                event.order_id, event.order_number, event.total
            )
            if order is None:
                log_saga_step(
                    logger,
                    ORDER_RECEIVED,
                    "duplicate",
                    order_id=event.order_id,
                    order_number=event.order_number,
                )
                return SagaOutcome.DUPLICATE
            claimed = True
            return self._settle_order(event)
        except Exception as e:
            log_saga_step(
                logger,
                ORDER_RECEIVED,
                "aborted",
                order_id=event.order_id,
                order_number=event.order_number,
                error=str(e),
            )
            self._alerts.notify(
                ORDER_PROCESSING_FAILED,
                f"Order #{event.order_number} ({event.email}): {e}",
            )
            if claimed:
                self._release(event.order_id, str(e))
            return SagaOutcome.ABORTED

    def _settle_order(self, event: OrderEvent) -> SagaOutcome:
        customer = self._payments.find_or_create_customer(
            event.email, event.first_name, event.last_name, event.phone
        )
        self._ledger.upsert_customer(
            event.customer_external_id, customer.customer_id, event.email
        )
        log_saga_step(
            logger,
            ORDER_RECEIVED,
            "customer_resolved",
            order_number=event.order_number,
            payment_customer_id=customer.customer_id,
            new_customer=customer.created,
        )

        card = self._payments.has_stored_card(customer.customer_id)
        if card is not None:
            amount = to_minor_units(event.total)
            result = self._payments.charge(
                customer.customer_id,
                card.card_id,
                amount,
                f"Order #{event.order_number} - {self._line_item_name}",
                charge_idempotency_key(event.order_id),
                reference=event.order_number,
            )
            if isinstance(result, PaymentRef):
                return self._complete_charge(event, customer, result)

            log_saga_step(
                logger,
                ORDER_RECEIVED,
                "charge_declined",
                order_number=event.order_number,
                amount_minor_units=amount,
                reason=result.reason,
                code=result.code,
            )
        else:
            log_saga_step(
                logger, ORDER_RECEIVED, "no_card_on_file", order_number=event.order_number
            )

        subtotal = to_minor_units(event.subtotal)
        shipping = to_minor_units(event.shipping)
        invoice = self._payments.create_and_send_invoice(
            customer.customer_id,
            subtotal,
            shipping,
            f"Order #{event.order_number}",
            invoice_idempotency_key(event.order_id),
            reference=event.order_number,
        )
        if not self._ledger.record_invoice(event.order_id, invoice.invoice_id):
            raise DataInconsistencyError(
                f"Invoice {invoice.invoice_id} sent but order is no longer pending"
            )

        log_saga_step(
            logger,
            ORDER_RECEIVED,
            "invoiced",
            order_id=event.order_id,
            order_number=event.order_number,
            invoice_id=invoice.invoice_id,
            amount_minor_units=subtotal + shipping,
        )
        return SagaOutcome.INVOICED

    def _complete_charge(
        self, event: OrderEvent, customer: PaymentCustomer, payment: PaymentRef
    ) -> SagaOutcome:
        if not self._ledger.record_payment(event.order_id, payment.payment_id):
            raise DataInconsistencyError(
                f"Payment {payment.payment_id} taken but order could not be marked paid"
            )
        self._refresh_card_flag(customer.customer_id)
        log_saga_step(
            logger,
            ORDER_RECEIVED,
            "charged",
            order_id=event.order_id,
            order_number=event.order_number,
            payment_id=payment.payment_id,
            amount_minor_units=payment.amount_minor_units,
        )

        synced = self._propagate_payment(
            event.order_id,
            f"auto-charge #{payment.payment_id}",
            alert_subject=CHARGED_NOT_MARKED_PAID,
            alert_detail=lambda e: (
                f"Order #{event.order_number} was charged but could not be marked paid. "
                f"Payment: {payment.payment_id}. Error: {e}"
            ),
        )
        return SagaOutcome.PAID if synced else SagaOutcome.PAID_UNSYNCED

    def _release(self, order_id: str, reason: str) -> None:
        """Flag a failed pass so a redelivery of the webhook can retry it."""
        try:
            self._ledger.mark_aborted(order_id, reason)
        except ReconcilerError as e:
            logger.error("Could not mark order %s aborted: %s", order_id, e)

    # Payment confirmed

    def handle_payment_confirmed(self, event: PaymentEvent) -> SagaOutcome:
        """Run the payment-confirmed saga for one invoice-paid event.

        An unknown invoice is only a warning: the order-received saga may
        not have recorded it yet, or it was issued outside this service.
        """
        try:
            order = self._ledger.find_order_by_invoice_id(event.invoice_id)
            if order is None:
                logger.warning(
                    "No order found for invoice %s (event %s)",
                    event.invoice_id,
                    event.event_id or "no-id",
                )
                return SagaOutcome.ORDER_NOT_FOUND

            if order.is_paid:
                log_saga_step(
                    logger,
                    PAYMENT_CONFIRMED,
                    "duplicate",
                    order_id=order.order_id,
                    order_number=order.order_number,
                    invoice_id=event.invoice_id,
                )
                return SagaOutcome.DUPLICATE

            if not self._ledger.record_payment(order.order_id, event.reference_id):
                # A concurrent delivery got there first
                log_saga_step(
                    logger,
                    PAYMENT_CONFIRMED,
                    "duplicate",
                    order_id=order.order_id,
                    order_number=order.order_number,
                    invoice_id=event.invoice_id,
                )
                return SagaOutcome.DUPLICATE

            if event.recipient_customer_id:
                self._refresh_card_flag(event.recipient_customer_id)
        except Exception as e:
            log_saga_step(
                logger,
                PAYMENT_CONFIRMED,
                "aborted",
                invoice_id=event.invoice_id,
                error=str(e),
            )
            self._alerts.notify(
                PAYMENT_PROCESSING_FAILED, f"Invoice {event.invoice_id}: {e}"
            )
            return SagaOutcome.ABORTED

        log_saga_step(
            logger,
            PAYMENT_CONFIRMED,
            "paid",
            order_id=order.order_id,
            order_number=order.order_number,
            invoice_id=event.invoice_id,
            payment_id=event.reference_id,
        )
        synced = self._propagate_payment(
            order.order_id,
            f"invoice #{event.invoice_id}",
            alert_subject=PAID_NOT_MARKED_PAID,
            alert_detail=lambda e: (
                f"Order #{order.order_number} invoice {event.invoice_id} paid "
                f"but order system not updated: {e}"
            ),
        )
        return SagaOutcome.PAID if synced else SagaOutcome.PAID_UNSYNCED

    # Shared steps

    def _refresh_card_flag(self, payment_customer_id: str) -> None:
        # Advisory cache only; the live card check decides charges.
        try:
            self._ledger.set_card_on_file(payment_customer_id, True)
        except ReconcilerError as e:
            logger.warning(
                "Could not update card-on-file for %s: %s", payment_customer_id, e
            )

    def _propagate_payment(
        self,
        order_id: str,
        description: str,
        *,
        alert_subject: str,
        alert_detail: Callable[[Exception], str],
    ) -> bool:
        """Mark the order paid in the order system, retrying once before alerting."""
        synced = call_with_single_retry(
            lambda: self._orders.mark_paid(order_id, description),
            op_name=f"mark_paid({order_id})",
            alerts=self._alerts,
            alert_subject=alert_subject,
            alert_detail=alert_detail,
        )
        if synced:
            self._add_note(order_id, f"Payment received via {description}")
        return synced

    def _add_note(self, order_id: str, text: str) -> None:
        # The payment is already recorded; a missing note is logged, never alerted.
        try:
            self._orders.add_note(order_id, text)
        except Exception as e:
            logger.warning("Could not add note to order %s: %s", order_id, e)
