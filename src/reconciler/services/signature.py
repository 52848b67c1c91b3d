"""Webhook signature verification.

Security contract:
- Verification always runs over the exact raw request body bytes; a
  re-serialized JSON body would reject legitimate traffic
- Order system: base64(HMAC-SHA256(secret, raw_body))
- Payment platform: base64(HMAC-SHA256(key, notification_url + raw_body))
- Both comparisons use hmac.compare_digest() (constant-time)
- Missing secret, header or notification URL -> verification fails (fail-closed)
- Failure is never retried or alerted; the caller answers 401 and stops
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass

from reconciler.models.enums import WebhookSender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SenderContext:
    """What the verifier needs to know about the claimed sender."""

    sender: WebhookSender
    notification_url: str | None = None


def compute_order_signature(secret: str, raw_body: bytes) -> str:
    """Expected X-Shopify-Hmac-Sha256 value for a body."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def compute_payment_signature(
    signature_key: str, notification_url: str, raw_body: bytes
) -> str:
    """Expected X-Square-Hmacsha256-Signature value for a body."""
    signed_payload = notification_url.encode("utf-8") + raw_body
    digest = hmac.new(
        signature_key.encode("utf-8"), signed_payload, hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


class SignatureVerifier:
    """Validates that a webhook body originated from the claimed sender."""

    def __init__(self, order_webhook_secret: str, payment_signature_key: str) -> None:
        self._order_secret = order_webhook_secret
        self._payment_key = payment_signature_key

    def verify(
        self,
        raw_body: bytes,
        signature_header: str | None,
        context: SenderContext,
    ) -> bool:
        """Check a signature header against the raw body.

        Args:
            raw_body: Byte-exact request body
            signature_header: Value of the sender's signature header
            context: Sender identity (and notification URL for the payment platform)

        Returns:
            True if signature is valid
        """
        if not signature_header:
            return False

        if context.sender == WebhookSender.ORDER_SYSTEM:
            if not self._order_secret:
                logger.warning("Order webhook secret not configured, rejecting webhook")
                return False
            expected = compute_order_signature(self._order_secret, raw_body)

        elif context.sender == WebhookSender.PAYMENT_PLATFORM:
            if not self._payment_key:
                logger.warning("Payment signature key not configured, rejecting webhook")
                return False
            if not context.notification_url:
                logger.warning("No notification URL for payment webhook, rejecting")
                return False
            expected = compute_payment_signature(
                self._payment_key, context.notification_url, raw_body
            )

        else:
            logger.warning("Unknown webhook sender: %s", context.sender)
            return False

        return hmac.compare_digest(
            expected.encode("utf-8"), signature_header.strip().encode("utf-8")
        )
