"""Pydantic models for the reconciliation service."""

from .enums import OrderStatus, SagaOutcome, WebhookSender
from .errors import (
    ERROR_MESSAGES,
    ConfigurationError,
    DataInconsistencyError,
    ErrorCode,
    ErrorResponse,
    InvalidSignatureError,
    PayloadParseError,
    ReconcilerError,
    TransportFailure,
)
from .events import INVOICE_PAYMENT_MADE, OrderEvent, PaymentEvent
from .order import Customer, Order
from .payment import CardRef, ChargeDeclined, InvoiceRef, PaymentCustomer, PaymentRef

__all__ = [
    # Enums
    "OrderStatus",
    "SagaOutcome",
    "WebhookSender",
    # Ledger records
    "Customer",
    "Order",
    # Events
    "INVOICE_PAYMENT_MADE",
    "OrderEvent",
    "PaymentEvent",
    # Payment platform values
    "CardRef",
    "ChargeDeclined",
    "InvoiceRef",
    "PaymentCustomer",
    "PaymentRef",
    # Errors
    "ERROR_MESSAGES",
    "ConfigurationError",
    "DataInconsistencyError",
    "ErrorCode",
    "ErrorResponse",
    "InvalidSignatureError",
    "PayloadParseError",
    "ReconcilerError",
    "TransportFailure",
]
