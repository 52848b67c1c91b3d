"""Canonical webhook events consumed by the reconciliation engine."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

INVOICE_PAYMENT_MADE = "invoice.payment_made"


class OrderEvent(BaseModel):
    """An order-received event, normalized from the order system's payload.

    `subtotal + shipping == total` always holds.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    order_id: str = Field(..., min_length=1)
    order_number: str = ""
    customer_external_id: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    subtotal: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


class PaymentEvent(BaseModel):
    """An invoice-paid event from the payment platform."""

    model_config = ConfigDict(strict=True, frozen=True)

    event_id: str = ""
    event_type: str = INVOICE_PAYMENT_MADE
    invoice_id: str = Field(..., min_length=1)
    recipient_customer_id: str | None = None
    reference_id: str = Field(..., min_length=1, description="Payment reference to record")
