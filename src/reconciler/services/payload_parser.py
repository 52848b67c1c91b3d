"""Normalizes sender-specific webhook bodies into canonical events.

Parsing is total: optional fields that are missing or malformed degrade
to "" / 0.00. Only the mandatory identifiers (order id, invoice id) fail
closed with PayloadParseError.
"""

import json
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from reconciler.models.errors import PayloadParseError
from reconciler.models.events import INVOICE_PAYMENT_MADE, OrderEvent, PaymentEvent
from reconciler.utils.money import ZERO, parse_amount

logger = logging.getLogger(__name__)

RawPayload = Mapping[str, Any] | bytes | str | None


def _as_mapping(raw: RawPayload) -> Mapping[str, Any]:
    """Best-effort conversion of a raw body or parsed structure to a mapping."""
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return raw
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, Mapping) else {}


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, Mapping) else {}


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _first_text(*values: Any) -> str:
    for value in values:
        text = _text(value)
        if text:
            return text
    return ""


def _shipping_total(payload: Mapping[str, Any]) -> Decimal:
    """Post-discount shipping charge as reported by the order system.

    Prefers the order-level total_shipping_price_set; otherwise sums each
    shipping line's discounted_price (falling back to its list price).
    """
    price_set = _section(payload, "total_shipping_price_set")
    shop_money = _section(price_set, "shop_money")
    if "amount" in shop_money:
        return parse_amount(shop_money.get("amount"))

    lines = payload.get("shipping_lines")
    if not isinstance(lines, list):
        return ZERO

    total = ZERO
    for line in lines:
        if not isinstance(line, Mapping):
            continue
        if line.get("discounted_price") is not None:
            total += parse_amount(line.get("discounted_price"))
        else:
            total += parse_amount(line.get("price"))
    return total


def parse_order_event(raw: RawPayload) -> OrderEvent:
    """Parse an order-received webhook body.

    Raises:
        PayloadParseError: If the order id is missing.
    """
    payload = _as_mapping(raw)

    order_id = _text(payload.get("id"))
    if not order_id:
        raise PayloadParseError("Order payload has no id")

    customer = _section(payload, "customer")
    shipping_address = _section(payload, "shipping_address")

    total = parse_amount(payload.get("total_price"))
    shipping = _shipping_total(payload)
    if shipping > total:
        logger.warning(
            "Order %s reports shipping %s above total %s, clamping",
            order_id,
            shipping,
            total,
        )
        shipping = total

    return OrderEvent(
        order_id=order_id,
        order_number=_first_text(payload.get("order_number"), payload.get("name")),
        customer_external_id=_text(customer.get("id")),
        email=_first_text(
            payload.get("contact_email"), payload.get("email"), customer.get("email")
        ).lower(),
        first_name=_first_text(customer.get("first_name")),
        last_name=_first_text(customer.get("last_name")),
        phone=_first_text(shipping_address.get("phone"), customer.get("phone")),
        subtotal=total - shipping,
        shipping=shipping,
        total=total,
    )


def parse_payment_event(raw: RawPayload) -> PaymentEvent | None:
    """Parse a payment-platform event envelope.

    Returns:
        PaymentEvent for invoice.payment_made, None for any other event type.

    Raises:
        PayloadParseError: If an invoice.payment_made event has no invoice id.
    """
    payload = _as_mapping(raw)
    event_type = _text(payload.get("type"))

    if event_type != INVOICE_PAYMENT_MADE:
        return None

    data = _section(payload, "data")
    invoice = _section(_section(data, "object"), "invoice")
    invoice_id = _text(invoice.get("id"))
    if not invoice_id:
        raise PayloadParseError("invoice.payment_made event has no invoice id")

    recipient = _section(invoice, "primary_recipient")

    return PaymentEvent(
        event_id=_text(payload.get("event_id")),
        event_type=event_type,
        invoice_id=invoice_id,
        recipient_customer_id=_text(recipient.get("customer_id")) or None,
        reference_id=invoice_id,
    )
