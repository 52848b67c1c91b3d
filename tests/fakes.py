"""In-memory doubles for the reconciliation engine's collaborators.

Each double records the calls it receives so tests can assert on them,
and can be told to fail in the ways the real adapters fail.
"""

import datetime as dt
import json
import threading
from decimal import Decimal
from typing import Any

from reconciler.models import (
    CardRef,
    ChargeDeclined,
    Customer,
    InvoiceRef,
    Order,
    OrderStatus,
    PaymentCustomer,
    PaymentRef,
    TransportFailure,
)
from reconciler.services.ledger import customer_key
from reconciler.utils.money import quantize_amount


def encode(payload: dict[str, Any]) -> bytes:
    """Serialize a payload the way a sender would put it on the wire."""
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class FakePaymentGateway:
    """PaymentGateway double.

    Honours idempotency keys the way the payment platform does: a repeated
    key returns the original result instead of charging or invoicing again.
    """

    def __init__(self) -> None:
        self.customers: dict[str, PaymentCustomer] = {}
        self.cards: dict[str, CardRef] = {}
        self.decline_charges = False
        self.fail_on: set[str] = set()
        self.customer_calls: list[str] = []
        self.charge_calls: list[dict[str, Any]] = []
        self.invoice_calls: list[dict[str, Any]] = []
        self._charges: dict[str, PaymentRef] = {}
        self._invoices: dict[str, InvoiceRef] = {}

    def add_customer(self, email: str, customer_id: str, with_card: bool = False) -> None:
        self.customers[email] = PaymentCustomer(customer_id=customer_id, email=email)
        if with_card:
            self.cards[customer_id] = CardRef(
                card_id=f"ccof_{customer_id}", last_4="1111", card_brand="VISA"
            )

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise TransportFailure(f"fake.{operation}", "simulated outage")

    def find_or_create_customer(
        self, email: str, first_name: str, last_name: str, phone: str
    ) -> PaymentCustomer:
        self._maybe_fail("find_or_create_customer")
        self.customer_calls.append(email)
        if email in self.customers:
            return self.customers[email]
        customer = PaymentCustomer(
            customer_id=f"sq_cust_{len(self.customers) + 1:03d}", email=email, created=True
        )
        self.customers[email] = customer
        return customer

    def has_stored_card(self, customer_id: str) -> CardRef | None:
        self._maybe_fail("has_stored_card")
        return self.cards.get(customer_id)

    def charge(
        self,
        customer_id: str,
        card_id: str,
        amount_minor_units: int,
        memo: str,
        idempotency_key: str,
        reference: str = "",
    ) -> PaymentRef | ChargeDeclined:
        self._maybe_fail("charge")
        self.charge_calls.append(
            {
                "customer_id": customer_id,
                "card_id": card_id,
                "amount_minor_units": amount_minor_units,
                "memo": memo,
                "idempotency_key": idempotency_key,
                "reference": reference,
            }
        )
        if self.decline_charges:
            return ChargeDeclined(reason="declined", code="CARD_DECLINED")
        if idempotency_key not in self._charges:
            self._charges[idempotency_key] = PaymentRef(
                payment_id=f"pay_{len(self._charges) + 1:03d}",
                amount_minor_units=amount_minor_units,
                status="COMPLETED",
            )
        return self._charges[idempotency_key]

    def create_and_send_invoice(
        self,
        customer_id: str,
        subtotal_minor_units: int,
        shipping_minor_units: int,
        memo: str,
        idempotency_key: str,
        reference: str = "",
    ) -> InvoiceRef:
        self._maybe_fail("create_and_send_invoice")
        self.invoice_calls.append(
            {
                "customer_id": customer_id,
                "subtotal_minor_units": subtotal_minor_units,
                "shipping_minor_units": shipping_minor_units,
                "memo": memo,
                "idempotency_key": idempotency_key,
                "reference": reference,
            }
        )
        if idempotency_key not in self._invoices:
            self._invoices[idempotency_key] = InvoiceRef(
                invoice_id=f"inv_{len(self._invoices) + 1:03d}", version=1, status="UNPAID"
            )
        return self._invoices[idempotency_key]


class FakeOrderSystem:
    """OrderSystem double that can fail its first N mark_paid calls."""

    def __init__(self, failures: int = 0, note_error: Exception | None = None) -> None:
        self.failures = failures
        self.note_error = note_error
        self.mark_paid_calls: list[tuple[str, str]] = []
        self.notes: list[tuple[str, str]] = []

    def mark_paid(self, order_id: str, payment_reference_description: str) -> None:
        self.mark_paid_calls.append((order_id, payment_reference_description))
        if self.failures > 0:
            self.failures -= 1
            raise TransportFailure("fake.mark_paid", "HTTP 503: unavailable")

    def add_note(self, order_id: str, text: str) -> None:
        self.notes.append((order_id, text))
        if self.note_error is not None:
            raise self.note_error


class RecordingAlertSink:
    """AlertSink double that keeps every alert."""

    def __init__(self) -> None:
        self.alerts: list[tuple[str, str]] = []

    def notify(self, subject: str, detail: str) -> None:
        self.alerts.append((subject, detail))

    @property
    def subjects(self) -> list[str]:
        return [subject for subject, _ in self.alerts]


class InMemoryOrderLedger:
    """OrderLedger double with the same conditional semantics as DynamoOrderLedger."""

    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.customers: dict[str, Customer] = {}
        self.fail_on: set[str] = set()
        self._lock = threading.Lock()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise TransportFailure(f"ledger.{operation}", "simulated outage")

    def find_order_by_id(self, order_id: str) -> Order | None:
        self._maybe_fail("find_order_by_id")
        return self.orders.get(order_id)

    def find_order_by_invoice_id(self, invoice_id: str) -> Order | None:
        self._maybe_fail("find_order_by_invoice_id")
        for order in self.orders.values():
            if order.invoice_id == invoice_id:
                return order
        return None

    def create_order_if_absent(
        self, order_id: str, order_number: str, total: Decimal
    ) -> Order | None:
        self._maybe_fail("create_order_if_absent")
        with self._lock:
            existing = self.orders.get(order_id)
            reclaimable = (
                existing is not None
                and existing.status == OrderStatus.PENDING
                and existing.aborted_at is not None
            )
            if existing is not None and not reclaimable:
                return None
            order = Order(
                order_id=order_id,
                order_number=order_number,
                total=quantize_amount(total),
                created_at=dt.datetime.now(dt.UTC),
            )
            self.orders[order_id] = order
            return order

    def record_invoice(self, order_id: str, invoice_id: str) -> bool:
        self._maybe_fail("record_invoice")
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status != OrderStatus.PENDING:
                return False
            self.orders[order_id] = order.model_copy(
                update={"invoice_id": invoice_id, "status": OrderStatus.INVOICED, "aborted_at": None}
            )
            return True

    def record_payment(self, order_id: str, payment_id: str) -> bool:
        self._maybe_fail("record_payment")
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status == OrderStatus.PAID:
                return False
            self.orders[order_id] = order.model_copy(
                update={"payment_id": payment_id, "status": OrderStatus.PAID, "aborted_at": None}
            )
            return True

    def mark_aborted(self, order_id: str, reason: str) -> bool:
        self._maybe_fail("mark_aborted")
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status != OrderStatus.PENDING:
                return False
            self.orders[order_id] = order.model_copy(
                update={"aborted_at": dt.datetime.now(dt.UTC)}
            )
            return True

    def upsert_customer(
        self,
        external_id: str,
        payment_customer_id: str,
        email: str,
        has_card: bool = False,
    ) -> Customer:
        self._maybe_fail("upsert_customer")
        email = email.strip().lower()
        key = customer_key(external_id, email)
        now = dt.datetime.now(dt.UTC)
        with self._lock:
            existing = self.customers.get(key)
            customer = Customer(
                external_customer_id=key,
                email=email,
                payment_customer_id=payment_customer_id,
                has_card_on_file=existing.has_card_on_file if existing else has_card,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self.customers[key] = customer
            return customer

    def set_card_on_file(self, payment_customer_id: str, has_card: bool) -> int:
        self._maybe_fail("set_card_on_file")
        updated = 0
        with self._lock:
            for key, customer in list(self.customers.items()):
                if customer.payment_customer_id == payment_customer_id:
                    self.customers[key] = customer.model_copy(
                        update={"has_card_on_file": has_card}
                    )
                    updated += 1
        return updated

    def find_customer_by_email(self, email: str) -> Customer | None:
        self._maybe_fail("find_customer_by_email")
        email = email.strip().lower()
        for customer in self.customers.values():
            if customer.email == email:
                return customer
        return None
