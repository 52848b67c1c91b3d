"""Square implementation of the PaymentGateway capability."""

import datetime as dt
import hashlib
from typing import Any

import httpx
from square import Square
from square.core.api_error import ApiError
from square.environment import SquareEnvironment

from reconciler.models import (
    CardRef,
    ChargeDeclined,
    InvoiceRef,
    PaymentCustomer,
    PaymentRef,
    TransportFailure,
)
from reconciler.utils.logging import get_logger

logger = get_logger(__name__)

# Payment states that mean the money was not taken
_UNSUCCESSFUL_PAYMENT_STATUSES = frozenset({"FAILED", "CANCELED"})


def _api_error_code(error: ApiError) -> str | None:
    body = error.body if isinstance(error.body, dict) else {}
    errors = body.get("errors") or []
    if errors and isinstance(errors[0], dict):
        code = errors[0].get("code")
        return str(code) if code else None
    return None


def _derived_key(prefix: str, value: str) -> str:
    """Stable idempotency key for a value without a natural id (e.g. email)."""
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:32]
    return f"{prefix}-{digest}"


class SquarePaymentGateway:
    """PaymentGateway backed by the Square API.

    All writes carry caller-supplied idempotency keys derived from the
    order id, so a reprocessed order never charges or invoices twice.
    """

    def __init__(
        self,
        access_token: str = "",
        *,
        location_id: str,
        environment: str = "sandbox",
        currency: str = "USD",
        line_item_name: str = "Research Materials",
        timeout: float = 15.0,
        client: Square | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            access_token: Square access token
            location_id: Square location used for payments, orders and invoices
            environment: "sandbox" or "production"
            currency: ISO currency code for all amounts
            line_item_name: Name of the invoice line item for the goods
            timeout: Per-request timeout in seconds
            client: Preconfigured Square client (tests)
        """
        self.location_id = location_id
        self.currency = currency
        self.line_item_name = line_item_name
        self._client = client or Square(
            token=access_token,
            environment=(
                SquareEnvironment.PRODUCTION
                if environment.lower() == "production"
                else SquareEnvironment.SANDBOX
            ),
            timeout=timeout,
        )

    def _money(self, amount_minor_units: int) -> dict[str, Any]:
        return {"amount": amount_minor_units, "currency": self.currency}

    def find_or_create_customer(
        self, email: str, first_name: str, last_name: str, phone: str
    ) -> PaymentCustomer:
        """Find a customer by exact email, creating one if none exists."""
        email = email.strip().lower()
        try:
            found = self._client.customers.search(
                query={"filter": {"email_address": {"exact": email}}},
                limit=1,
            )
            if found.customers:
                customer = found.customers[0]
                logger.info("Found Square customer %s", customer.id)
                return PaymentCustomer(customer_id=customer.id, email=email)

            kwargs: dict[str, Any] = {
                "idempotency_key": _derived_key("customer", email),
                "email_address": email,
            }
            if first_name:
                kwargs["given_name"] = first_name
            if last_name:
                kwargs["family_name"] = last_name
            if phone:
                kwargs["phone_number"] = phone
            created = self._client.customers.create(**kwargs)
        except (ApiError, httpx.HTTPError) as e:
            raise TransportFailure("square.find_or_create_customer", str(e)) from e

        if created.customer is None or not created.customer.id:
            raise TransportFailure("square.find_or_create_customer", "no customer returned")
        logger.info("Created Square customer %s", created.customer.id)
        return PaymentCustomer(customer_id=created.customer.id, email=email, created=True)

    def has_stored_card(self, customer_id: str) -> CardRef | None:
        """Return the customer's first enabled card, if any.

        A failed lookup is treated as "no card" so the order falls back
        to an invoice rather than being charged blind.
        """
        try:
            for card in self._client.cards.list(customer_id=customer_id):
                if card.id and card.enabled is not False:
                    return CardRef(card_id=card.id, last_4=card.last4, card_brand=card.card_brand)
        except (ApiError, httpx.HTTPError) as e:
            logger.warning("Card lookup failed for customer %s: %s", customer_id, e)
        return None

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

        Any error reported by Square is a decline. A network failure is not,
        since the charge may have gone through; it raises TransportFailure.
        """
        kwargs: dict[str, Any] = {
            "source_id": card_id,
            "idempotency_key": idempotency_key,
            "amount_money": self._money(amount_minor_units),
            "customer_id": customer_id,
            "location_id": self.location_id,
            "autocomplete": True,
            "note": memo,
        }
        if reference:
            kwargs["reference_id"] = reference
        try:
            response = self._client.payments.create(**kwargs)
        except ApiError as e:
            code = _api_error_code(e)
            logger.info("Charge declined for customer %s: %s", customer_id, code or e.status_code)
            return ChargeDeclined(reason="declined", code=code)
        except httpx.HTTPError as e:
            raise TransportFailure("square.charge", str(e)) from e

        payment = response.payment
        if payment is None or not payment.id:
            return ChargeDeclined(reason="unavailable", code="NO_PAYMENT")
        if payment.status in _UNSUCCESSFUL_PAYMENT_STATUSES:
            return ChargeDeclined(reason="declined", code=payment.status)

        return PaymentRef(
            payment_id=payment.id,
            amount_minor_units=amount_minor_units,
            status=payment.status,
        )

    def create_and_send_invoice(
        self,
        customer_id: str,
        subtotal_minor_units: int,
        shipping_minor_units: int,
        memo: str,
        idempotency_key: str,
        reference: str = "",
    ) -> InvoiceRef:
        """Create an order, attach an invoice to it and publish it.

        Shipping becomes its own line item only when it is non-zero.
        """
        line_items: list[dict[str, Any]] = [
            {
                "name": self.line_item_name,
                "quantity": "1",
                "base_price_money": self._money(subtotal_minor_units),
            }
        ]
        if shipping_minor_units > 0:
            line_items.append(
                {
                    "name": "Shipping",
                    "quantity": "1",
                    "base_price_money": self._money(shipping_minor_units),
                }
            )

        order: dict[str, Any] = {
            "location_id": self.location_id,
            "customer_id": customer_id,
            "line_items": line_items,
        }
        if reference:
            order["reference_id"] = reference
            order["metadata"] = {"order_number": reference}

        try:
            order_response = self._client.orders.create(
                order=order, idempotency_key=f"{idempotency_key}-order"
            )
            if order_response.order is None or not order_response.order.id:
                raise TransportFailure("square.orders.create", "no order returned")

            invoice: dict[str, Any] = {
                "location_id": self.location_id,
                "order_id": order_response.order.id,
                "primary_recipient": {"customer_id": customer_id},
                "payment_requests": [
                    {
                        "request_type": "BALANCE",
                        "due_date": dt.date.today().isoformat(),
                        "automatic_payment_source": "NONE",
                    }
                ],
                "accepted_payment_methods": {
                    "card": True,
                    "square_gift_card": False,
                    "bank_account": False,
                    "buy_now_pay_later": False,
                    "cash_app_pay": False,
                },
                "delivery_method": "EMAIL",
                "title": memo,
            }
            if reference:
                invoice["custom_fields"] = [
                    {
                        "label": "Order Reference",
                        "value": f"Order #{reference}",
                        "placement": "ABOVE_LINE_ITEMS",
                    }
                ]

            created = self._client.invoices.create(
                invoice=invoice, idempotency_key=idempotency_key
            )
            draft = created.invoice
            if draft is None or not draft.id:
                raise TransportFailure("square.invoices.create", "no invoice returned")

            published = self._client.invoices.publish(
                invoice_id=draft.id,
                version=draft.version or 0,
                idempotency_key=f"{idempotency_key}-publish",
            )
        except (ApiError, httpx.HTTPError) as e:
            raise TransportFailure("square.create_and_send_invoice", str(e)) from e

        sent = published.invoice or draft
        logger.info("Published Square invoice %s for customer %s", sent.id, customer_id)
        return InvoiceRef(invoice_id=sent.id or draft.id, version=sent.version, status=sent.status)
