"""Values returned by the payment platform capability."""

from pydantic import BaseModel, ConfigDict, Field


class PaymentCustomer(BaseModel):
    """A customer record in the payment platform."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    email: str = ""
    created: bool = Field(default=False, description="True if created by this call")


class CardRef(BaseModel):
    """A stored card on a payment-platform customer."""

    model_config = ConfigDict(frozen=True)

    card_id: str
    last_4: str | None = None
    card_brand: str | None = None


class PaymentRef(BaseModel):
    """A completed charge."""

    model_config = ConfigDict(frozen=True)

    payment_id: str
    amount_minor_units: int = Field(..., ge=0)
    status: str | None = None


class ChargeDeclined(BaseModel):
    """Explicit decline or unavailability signal from a charge attempt.

    Not an error: the engine falls back to issuing an invoice.
    """

    model_config = ConfigDict(frozen=True)

    reason: str = "declined"
    code: str | None = None


class InvoiceRef(BaseModel):
    """An invoice that was created and sent to the customer."""

    model_config = ConfigDict(frozen=True)

    invoice_id: str
    version: int | None = None
    status: str | None = None
