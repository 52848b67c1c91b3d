"""Order ledger: durable Order and Customer records in DynamoDB.

The ledger is the only source of idempotency truth. Every mutation is a
single conditional write, so concurrent deliveries of the same webhook
cannot both pass the gate or move an order backwards.
"""

import datetime as dt
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from boto3.dynamodb.conditions import Attr, ConditionBase
from botocore.exceptions import BotoCoreError, ClientError

from reconciler.models import (
    Customer,
    DataInconsistencyError,
    Order,
    OrderStatus,
    TransportFailure,
)
from reconciler.services.dynamodb import DynamoDBService, UpdateBuilder
from reconciler.utils.logging import get_logger
from reconciler.utils.money import quantize_amount

logger = get_logger(__name__)

ORDERS_TABLE = "orders"
CUSTOMERS_TABLE = "customers"
INVOICE_INDEX = "invoice-index"
EMAIL_INDEX = "email-index"
PAYMENT_CUSTOMER_INDEX = "payment-customer-index"

GUEST_KEY_PREFIX = "email:"


def _claimable() -> ConditionBase:
    # A pending row whose last pass failed may be claimed again by a redelivery.
    return Attr("order_id").not_exists() | (
        Attr("status").eq(OrderStatus.PENDING.value) & Attr("aborted_at").exists()
    )


@runtime_checkable
class OrderLedger(Protocol):
    """Persistence contract used by the reconciliation engine."""

    def find_order_by_id(self, order_id: str) -> Order | None: ...

    def find_order_by_invoice_id(self, invoice_id: str) -> Order | None: ...

    def create_order_if_absent(
        self, order_id: str, order_number: str, total: Decimal
    ) -> Order | None: ...

    def record_invoice(self, order_id: str, invoice_id: str) -> bool: ...

    def record_payment(self, order_id: str, payment_id: str) -> bool: ...

    def mark_aborted(self, order_id: str, reason: str) -> bool: ...

    def upsert_customer(
        self,
        external_id: str,
        payment_customer_id: str,
        email: str,
        has_card: bool = False,
    ) -> Customer: ...

    def set_card_on_file(self, payment_customer_id: str, has_card: bool) -> int: ...

    def find_customer_by_email(self, email: str) -> Customer | None: ...


def customer_key(external_id: str, email: str) -> str:
    """Ledger key for a customer.

    Guest checkouts have no order-system customer id, so they are keyed
    by their lowercased email instead.
    """
    if external_id:
        return external_id
    if email:
        return f"{GUEST_KEY_PREFIX}{email.strip().lower()}"
    raise DataInconsistencyError("Order has neither a customer id nor an email")


def _now() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def _parse_timestamp(value: Any) -> dt.datetime | None:
    if not value:
        return None
    return dt.datetime.fromisoformat(str(value))


def _order_from_item(item: dict[str, Any]) -> Order:
    return Order(
        order_id=str(item["order_id"]),
        order_number=str(item.get("order_number", "")),
        invoice_id=item.get("invoice_id"),
        payment_id=item.get("payment_id"),
        status=OrderStatus(item.get("status", OrderStatus.PENDING.value)),
        total=quantize_amount(Decimal(str(item.get("total", "0")))),
        created_at=_parse_timestamp(item.get("created_at")) or dt.datetime.now(dt.UTC),
        aborted_at=_parse_timestamp(item.get("aborted_at")),
    )


def _customer_from_item(item: dict[str, Any]) -> Customer:
    return Customer(
        external_customer_id=str(item["external_customer_id"]),
        email=str(item.get("email", "")),
        payment_customer_id=str(item.get("payment_customer_id", "")),
        has_card_on_file=bool(item.get("has_card_on_file", False)),
        created_at=_parse_timestamp(item.get("created_at")),
        updated_at=_parse_timestamp(item.get("updated_at")),
    )


@contextmanager
def _ledger_call(operation: str) -> Iterator[None]:
    """Surface storage errors as transport failures."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        raise TransportFailure(f"ledger.{operation}", str(e)) from e


class DynamoOrderLedger:
    """OrderLedger backed by the orders and customers DynamoDB tables."""

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    # Orders

    def find_order_by_id(self, order_id: str) -> Order | None:
        with _ledger_call("find_order_by_id"):
            item = self._db.get_item(ORDERS_TABLE, {"order_id": order_id})
        return _order_from_item(item) if item else None

    def find_order_by_invoice_id(self, invoice_id: str) -> Order | None:
        with _ledger_call("find_order_by_invoice_id"):
            items = self._db.query_index(ORDERS_TABLE, INVOICE_INDEX, "invoice_id", invoice_id)
        if not items:
            return None
        if len(items) > 1:
            logger.warning(
                "Invoice %s is attached to %d orders, using %s",
                invoice_id,
                len(items),
                items[0]["order_id"],
            )
        return _order_from_item(items[0])

    def create_order_if_absent(
        self, order_id: str, order_number: str, total: Decimal
    ) -> Order | None:
        """Insert a pending order unless one already exists.

        This is the idempotency gate. Returns None when the order is
        already known, unless its previous pass was aborted, in which
        case the row is claimed again and returned.
        """
        item = {
            "order_id": order_id,
            "order_number": order_number,
            "status": OrderStatus.PENDING.value,
            "total": quantize_amount(total),
            "created_at": _now(),
        }
        with _ledger_call("create_order_if_absent"):
            created = self._db.put_item(ORDERS_TABLE, item, condition=_claimable())
        return _order_from_item(item) if created else None

    def record_invoice(self, order_id: str, invoice_id: str) -> bool:
        """Attach an invoice and move a pending order to invoiced.

        Returns False if the order is missing or no longer pending.
        """
        update = (
            UpdateBuilder()
            .set("invoice_id", invoice_id)
            .set("status", OrderStatus.INVOICED.value)
            .set("updated_at", _now())
            .remove("aborted_at")
        )
        with _ledger_call("record_invoice"):
            attrs = self._db.update_item(
                ORDERS_TABLE,
                {"order_id": order_id},
                update,
                condition=Attr("status").eq(OrderStatus.PENDING.value),
            )
        return attrs is not None

    def record_payment(self, order_id: str, payment_id: str) -> bool:
        """Mark an order paid. Returns False if it is missing or already paid."""
        now = _now()
        update = (
            UpdateBuilder()
            .set("payment_id", payment_id)
            .set("status", OrderStatus.PAID.value)
            .set("paid_at", now)
            .set("updated_at", now)
            .remove("aborted_at")
        )
        with _ledger_call("record_payment"):
            attrs = self._db.update_item(
                ORDERS_TABLE,
                {"order_id": order_id},
                update,
                condition=Attr("order_id").exists() & Attr("status").ne(OrderStatus.PAID.value),
            )
        return attrs is not None

    def mark_aborted(self, order_id: str, reason: str) -> bool:
        """Flag a pending order whose pass failed so a redelivery can reclaim it."""
        update = UpdateBuilder().set("aborted_at", _now()).set("abort_reason", reason[:1000])
        with _ledger_call("mark_aborted"):
            attrs = self._db.update_item(
                ORDERS_TABLE,
                {"order_id": order_id},
                update,
                condition=Attr("status").eq(OrderStatus.PENDING.value),
            )
        return attrs is not None

    # Customers

    def upsert_customer(
        self,
        external_id: str,
        payment_customer_id: str,
        email: str,
        has_card: bool = False,
    ) -> Customer:
        """Create or update the customer mapping.

        `has_card_on_file` is only set on insert; an existing true flag
        is never downgraded here.
        """
        email = email.strip().lower()
        now = _now()
        update = (
            UpdateBuilder()
            .set("email", email)
            .set("payment_customer_id", payment_customer_id)
            .set("updated_at", now)
            .set_if_missing("created_at", now)
            .set_if_missing("has_card_on_file", has_card)
        )
        with _ledger_call("upsert_customer"):
            attrs = self._db.update_item(
                CUSTOMERS_TABLE,
                {"external_customer_id": customer_key(external_id, email)},
                update,
            )
        if attrs is None:
            raise TransportFailure("ledger.upsert_customer", "no attributes returned")
        return _customer_from_item(attrs)

    def set_card_on_file(self, payment_customer_id: str, has_card: bool) -> int:
        """Set the card flag on every customer mapped to a payment customer.

        Returns:
            Number of customer records updated
        """
        with _ledger_call("set_card_on_file"):
            items = self._db.query_index(
                CUSTOMERS_TABLE,
                PAYMENT_CUSTOMER_INDEX,
                "payment_customer_id",
                payment_customer_id,
            )
            now = _now()
            for item in items:
                self._db.update_item(
                    CUSTOMERS_TABLE,
                    {"external_customer_id": item["external_customer_id"]},
                    UpdateBuilder().set("has_card_on_file", has_card).set("updated_at", now),
                    condition=Attr("external_customer_id").exists(),
                )
        return len(items)

    def find_customer_by_email(self, email: str) -> Customer | None:
        with _ledger_call("find_customer_by_email"):
            items = self._db.query_index(
                CUSTOMERS_TABLE, EMAIL_INDEX, "email", email.strip().lower()
            )
        return _customer_from_item(items[0]) if items else None
