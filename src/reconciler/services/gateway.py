"""Capability interfaces for the external systems the engine drives.

Each has one production adapter per platform (square_gateway,
shopify_client, alerts) and an in-memory double in the test suite.
"""

from typing import Protocol, runtime_checkable

from reconciler.models import CardRef, ChargeDeclined, InvoiceRef, PaymentCustomer, PaymentRef


@runtime_checkable
class PaymentGateway(Protocol):
    """Customer lookup, stored cards, charges and invoices."""

    def find_or_create_customer(
        self, email: str, first_name: str, last_name: str, phone: str
    ) -> PaymentCustomer: ...

    def has_stored_card(self, customer_id: str) -> CardRef | None: ...

    def charge(
        self,
        customer_id: str,
        card_id: str,
        amount_minor_units: int,
        memo: str,
        idempotency_key: str,
        reference: str = "",
    ) -> PaymentRef | ChargeDeclined:
        """Charge a stored card.

        A decline is returned as ChargeDeclined, never raised. Transport
        failures raise TransportFailure.
        """
        ...

    def create_and_send_invoice(
        self,
        customer_id: str,
        subtotal_minor_units: int,
        shipping_minor_units: int,
        memo: str,
        idempotency_key: str,
        reference: str = "",
    ) -> InvoiceRef: ...


@runtime_checkable
class OrderSystem(Protocol):
    """Order-side updates once payment is collected."""

    def mark_paid(self, order_id: str, payment_reference_description: str) -> None:
        """Record the payment on the order. Raises TransportFailure on failure."""
        ...

    def add_note(self, order_id: str, text: str) -> None:
        """Attach a note. Best-effort: failures are logged, never raised."""
        ...


@runtime_checkable
class AlertSink(Protocol):
    """Operator notification channel."""

    def notify(self, subject: str, detail: str) -> None: ...
