"""Shopify Admin REST implementation of the OrderSystem capability."""

from typing import Any

import httpx

from reconciler.models import TransportFailure
from reconciler.utils.logging import get_logger

logger = get_logger(__name__)


def _store_base_url(store_url: str, api_version: str) -> str:
    host = store_url.strip().removeprefix("https://").removeprefix("http://").rstrip("/")
    return f"https://{host}/admin/api/{api_version}"


class ShopifyOrderSystem:
    """OrderSystem backed by the Shopify Admin REST API."""

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str = "2024-10",
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            store_url: Store domain, e.g. "example.myshopify.com"
            access_token: Admin API access token
            api_version: Admin API version
            timeout: Per-request timeout in seconds
            client: Preconfigured httpx client (tests)
        """
        self.base_url = _store_base_url(store_url, api_version)
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    def _request(self, operation: str, method: str, path: str, payload: dict[str, Any]) -> None:
        # Callers only need the status; a 2xx body is never decoded.
        try:
            response = self._client.request(
                method, f"{self.base_url}{path}", headers=self._headers, json=payload
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportFailure(
                operation,
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
            ) from e
        except httpx.HTTPError as e:
            raise TransportFailure(operation, str(e) or type(e).__name__) from e

    def mark_paid(self, order_id: str, payment_reference_description: str) -> None:
        """Record a manual capture transaction so the order shows as paid."""
        self._request(
            "shopify.mark_paid",
            "POST",
            f"/orders/{order_id}/transactions.json",
            {
                "transaction": {
                    "kind": "capture",
                    "status": "success",
                    "gateway": "manual",
                }
            },
        )
        logger.info("Marked order %s paid (%s)", order_id, payment_reference_description)

    def add_note(self, order_id: str, text: str) -> None:
        """Replace the order note. Best-effort: failures are logged, never raised."""
        try:
            self._request(
                "shopify.add_note",
                "PUT",
                f"/orders/{order_id}.json",
                {"order": {"id": order_id, "note": text}},
            )
        except Exception as e:
            logger.warning("Could not add note to order %s: %s", order_id, e)

    def close(self) -> None:
        self._client.close()
