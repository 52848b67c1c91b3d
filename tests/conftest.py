"""Pytest configuration and fixtures for the reconciliation service tests.

This module provides reusable fixtures for testing:
- AWS mocking with moto (DynamoDB tables, SSM, SES)
- In-memory doubles for the payment gateway, order system, alerts and ledger
- Sample order-system and payment-platform webhook payloads
"""

import os
from collections.abc import Callable, Generator
from typing import Any

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-reconciler")
os.environ.setdefault("RECONCILER_USE_SSM", "false")
os.environ.setdefault("SHOPIFY_STORE_URL", "test-store.myshopify.com")
os.environ.setdefault("SHOPIFY_ADMIN_API_TOKEN", "shpat_test_token")
os.environ.setdefault("SHOPIFY_WEBHOOK_SECRET", "shpss_test_secret")
os.environ.setdefault("SQUARE_ACCESS_TOKEN", "sq_test_access_token")
os.environ.setdefault("SQUARE_WEBHOOK_SIGNATURE_KEY", "sq_test_signature_key")
os.environ.setdefault("SQUARE_LOCATION_ID", "LOC_TEST")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from reconciler.services.dynamodb import DynamoDBService  # noqa: E402
from reconciler.services.ledger import DynamoOrderLedger  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeOrderSystem,
    FakePaymentGateway,
    InMemoryOrderLedger,
    RecordingAlertSink,
)

TABLE_PREFIX = "test-reconciler"
REGION = "us-east-1"


@pytest.fixture(autouse=True)
def reset_service_singletons() -> Generator[None, None, None]:
    """Reset cached services and config before and after each test.

    This ensures tests using mock_aws get fresh service instances
    inside the mock context rather than reusing a singleton from
    a previous test or non-mocked context.
    """
    from reconciler_api.dependencies import reset_services

    reset_services()
    yield
    reset_services()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION


@pytest.fixture
def aws(aws_credentials: None) -> Generator[None, None, None]:
    """Single moto context shared by every AWS client in a test."""
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_resource(aws: None) -> Any:
    """Create a mocked DynamoDB resource."""
    return boto3.resource("dynamodb", region_name=REGION)


@pytest.fixture
def create_tables(dynamodb_resource: Any) -> None:
    """Create the orders and customers tables with their indexes."""
    dynamodb_resource.create_table(
        TableName=f"{TABLE_PREFIX}-orders",
        KeySchema=[{"AttributeName": "order_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "order_id", "AttributeType": "S"},
            {"AttributeName": "invoice_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "invoice-index",
                "KeySchema": [{"AttributeName": "invoice_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb_resource.create_table(
        TableName=f"{TABLE_PREFIX}-customers",
        KeySchema=[{"AttributeName": "external_customer_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "external_customer_id", "AttributeType": "S"},
            {"AttributeName": "email", "AttributeType": "S"},
            {"AttributeName": "payment_customer_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "email-index",
                "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "payment-customer-index",
                "KeySchema": [{"AttributeName": "payment_customer_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def db(create_tables: None, dynamodb_resource: Any) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService(TABLE_PREFIX, resource=dynamodb_resource)


@pytest.fixture
def dynamo_ledger(db: DynamoDBService) -> DynamoOrderLedger:
    return DynamoOrderLedger(db)


# === In-memory Doubles ===


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def order_system() -> FakeOrderSystem:
    return FakeOrderSystem()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def memory_ledger() -> InMemoryOrderLedger:
    return InMemoryOrderLedger()


# === Sample Payloads ===


@pytest.fixture
def order_payload() -> Callable[..., dict[str, Any]]:
    """Factory for an orders/create webhook body."""

    def _make(
        order_id: int = 5550001001,
        order_number: int = 1001,
        total: str = "120.00",
        shipping: str = "15.00",
        email: str = "Buyer@Example.com",
        customer_id: int | None = 7001,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": order_id,
            "order_number": order_number,
            "name": f"#{order_number}",
            "contact_email": email,
            "email": email,
            "total_price": total,
            "total_shipping_price_set": {
                "shop_money": {"amount": shipping, "currency_code": "USD"}
            },
            "shipping_lines": [{"price": shipping, "discounted_price": shipping}],
            "shipping_address": {"phone": "+15555550100"},
        }
        if customer_id is not None:
            payload["customer"] = {
                "id": customer_id,
                "email": email,
                "first_name": "Ada",
                "last_name": "Lovelace",
                "phone": "+15555550199",
            }
        return payload

    return _make


@pytest.fixture
def invoice_paid_payload() -> Callable[..., dict[str, Any]]:
    """Factory for a Square invoice.payment_made event."""

    def _make(
        invoice_id: str = "inv_test_001",
        customer_id: str | None = "sq_cust_001",
        event_id: str = "evt_001",
    ) -> dict[str, Any]:
        invoice: dict[str, Any] = {"id": invoice_id, "status": "PAID", "version": 2}
        if customer_id:
            invoice["primary_recipient"] = {"customer_id": customer_id}
        return {
            "merchant_id": "MERCHANT_TEST",
            "type": "invoice.payment_made",
            "event_id": event_id,
            "created_at": "2026-01-05T10:00:00Z",
            "data": {"type": "invoice", "id": invoice_id, "object": {"invoice": invoice}},
        }

    return _make

