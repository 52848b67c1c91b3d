"""Contract tests for the webhook and health endpoints.

Signature verification runs for real against the test secrets from
conftest; the webhook handler is replaced so only the HTTP contract is
exercised here.

Test categories:
- 200 acknowledgement and background scheduling on a valid signature
- 401 and nothing scheduled on an invalid signature
- Payment notification URL resolution
- Correlation ID propagation into the background task
- 503 when the deployment is missing required settings
- Liveness endpoints
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from reconciler.models import ErrorCode
from reconciler.services.signature import compute_order_signature, compute_payment_signature
from reconciler.services.webhook_handler import WebhookHandler
from reconciler.utils.logging import get_correlation_id
from reconciler_api.dependencies import get_webhook_handler
from reconciler_api.main import app
from tests.fakes import encode

ORDER_SECRET = "shpss_test_secret"
PAYMENT_KEY = "sq_test_signature_key"


@pytest.fixture
def handler() -> MagicMock:
    return MagicMock(spec=WebhookHandler)


@pytest.fixture
def client(handler):
    app.dependency_overrides[get_webhook_handler] = lambda: handler
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _order_headers(body: bytes, **extra: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": compute_order_signature(ORDER_SECRET, body),
        "X-Shopify-Topic": "orders/create",
        **extra,
    }


def _payment_headers(body: bytes, url: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Square-Hmacsha256-Signature": compute_payment_signature(PAYMENT_KEY, url, body),
    }


# === Order Webhook ===


class TestOrderWebhook:
    @pytest.mark.parametrize("path", ["/webhooks/orders", "/webhooks/shopify/orders"])
    def test_valid_signature_acknowledged_and_scheduled(self, client, handler, order_payload, path):
        body = encode(order_payload())

        response = client.post(
            path, content=body, headers=_order_headers(body, **{"X-Shopify-Webhook-Id": "d-1"})
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        handler.process_order_webhook.assert_called_once_with(
            body, topic="orders/create", delivery_id="d-1"
        )

    def test_invalid_signature_rejected(self, client, handler, order_payload):
        body = encode(order_payload())
        headers = _order_headers(body)
        headers["X-Shopify-Hmac-Sha256"] = compute_order_signature("wrong", body)

        response = client.post("/webhooks/orders", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["error_code"] == "ERR_SIG_001"
        handler.process_order_webhook.assert_not_called()

    def test_missing_signature_rejected(self, client, handler, order_payload):
        response = client.post("/webhooks/orders", content=encode(order_payload()))

        assert response.status_code == 401
        handler.process_order_webhook.assert_not_called()

    def test_signature_checked_against_raw_bytes(self, client, handler):
        # Whitespace a JSON re-serializer would drop
        body = b'{ "id": 5550001001,  "order_number": 1001 }'

        response = client.post("/webhooks/orders", content=body, headers=_order_headers(body))

        assert response.status_code == 200
        assert handler.process_order_webhook.call_args.args[0] == body

    def test_background_failure_does_not_reach_sender(self, client, handler, order_payload):
        handler.process_order_webhook.side_effect = RuntimeError("engine exploded")
        body = encode(order_payload())

        response = client.post("/webhooks/orders", content=body, headers=_order_headers(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_background_task_shares_correlation_id(self, client, handler, order_payload):
        seen: list[str | None] = []
        handler.process_order_webhook.side_effect = lambda *a, **kw: seen.append(
            get_correlation_id()
        )
        body = encode(order_payload())

        response = client.post(
            "/webhooks/orders",
            content=body,
            headers=_order_headers(body, **{"X-Correlation-ID": "corr-123"}),
        )

        assert response.headers["X-Correlation-ID"] == "corr-123"
        assert seen == ["corr-123"]


# === Payment Webhook ===


class TestPaymentWebhook:
    @pytest.mark.parametrize("path", ["/webhooks/payments", "/webhooks/square"])
    def test_signed_over_https_request_url(self, client, handler, invoice_paid_payload, path):
        body = encode(invoice_paid_payload())

        response = client.post(
            path, content=body, headers=_payment_headers(body, f"https://testserver{path}")
        )

        assert response.status_code == 200
        handler.process_payment_webhook.assert_called_once_with(body)

    def test_http_url_signature_rejected(self, client, handler, invoice_paid_payload):
        body = encode(invoice_paid_payload())

        response = client.post(
            "/webhooks/payments",
            content=body,
            headers=_payment_headers(body, "http://testserver/webhooks/payments"),
        )

        assert response.status_code == 401
        handler.process_payment_webhook.assert_not_called()

    def test_configured_notification_url_is_used(
        self, client, handler, invoice_paid_payload, monkeypatch
    ):
        url = "https://hooks.example.com/webhooks/payments"
        monkeypatch.setenv("SQUARE_NOTIFICATION_URL", url)
        body = encode(invoice_paid_payload())

        response = client.post("/webhooks/payments", content=body, headers=_payment_headers(body, url))

        assert response.status_code == 200
        handler.process_payment_webhook.assert_called_once()

    def test_body_mutation_rejected(self, client, handler, invoice_paid_payload):
        body = encode(invoice_paid_payload())
        headers = _payment_headers(body, "https://testserver/webhooks/payments")

        response = client.post("/webhooks/payments", content=body + b" ", headers=headers)

        assert response.status_code == 401
        handler.process_payment_webhook.assert_not_called()


# === Misconfiguration ===


class TestMisconfiguredDeployment:
    def test_missing_store_url_is_503_so_sender_retries(self, monkeypatch, order_payload):
        monkeypatch.delenv("SHOPIFY_STORE_URL", raising=False)
        body = encode(order_payload())

        with TestClient(app) as test_client:
            response = test_client.post("/webhooks/orders", content=body, headers=_order_headers(body))

        assert response.status_code == 503
        assert response.json()["error_code"] == ErrorCode.CONFIGURATION_ERROR.value


# === Health ===


class TestHealth:
    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_liveness(self, client, path):
        response = client.get(path)

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
