"""Ledger records: orders and customers."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import OrderStatus


class Order(BaseModel):
    """An order tracked through the reconciliation saga.

    `order_id` is assigned by the order system and is the idempotency
    key for the whole saga. Amounts are decimal currency with 2 places.
    """

    model_config = ConfigDict(strict=True)

    order_id: str = Field(..., description="Order-system order ID")
    order_number: str = Field(default="", description="Human-facing order number")
    invoice_id: str | None = Field(
        default=None, description="Payment-platform invoice ID once issued"
    )
    payment_id: str | None = Field(
        default=None, description="Payment reference once payment is confirmed"
    )
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    total: Decimal = Field(..., ge=0, decimal_places=2, description="Order total")
    created_at: datetime = Field(..., description="Creation timestamp")
    aborted_at: datetime | None = Field(
        default=None,
        description="Set when a reconciliation pass failed before completing",
    )

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID


class Customer(BaseModel):
    """Mapping between an order-system customer and a payment-platform customer."""

    model_config = ConfigDict(strict=True)

    external_customer_id: str = Field(
        ..., description="Order-system customer ID (or email:<email> for guests)"
    )
    email: str = Field(..., description="Lowercased email, the cross-system join key")
    payment_customer_id: str = Field(..., description="Payment-platform customer ID")
    has_card_on_file: bool = Field(
        default=False,
        description="Advisory cache only; the live gateway check is authoritative",
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None
