"""Webhook endpoints for the order system and the payment platform.

Both endpoints verify the signature over the exact raw body, answer 200
immediately and run the reconciliation saga as a background task. The
sender never sees the outcome of reconciliation; failures surface in
the logs and as operator alerts. An invalid signature gets 401 and
nothing is scheduled.

These endpoints do NOT require authentication as they receive signed
payloads from external services.
"""

from functools import partial

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel

from reconciler.config import ReconcilerConfig, get_config
from reconciler.models import InvalidSignatureError, WebhookSender
from reconciler.services.signature import SenderContext, SignatureVerifier
from reconciler.services.webhook_handler import WebhookHandler
from reconciler.utils.logging import get_correlation_id, get_logger, log_webhook_event
from reconciler_api.dependencies import get_signature_verifier, get_webhook_handler
from reconciler_api.tasks import run_detached

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

ORDER_SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"
ORDER_TOPIC_HEADER = "X-Shopify-Topic"
ORDER_DELIVERY_HEADER = "X-Shopify-Webhook-Id"
PAYMENT_SIGNATURE_HEADER = "X-Square-Hmacsha256-Signature"


# === Response Models ===


class WebhookAck(BaseModel):
    """Acknowledgement sent before any processing happens."""

    received: bool = True


# === Helpers ===


def payment_notification_url(request: Request, config: ReconcilerConfig) -> str:
    """URL the payment platform signed the notification for.

    The configured URL wins. Otherwise the request URL is used with its
    scheme forced to https, because TLS usually terminates at a proxy.
    """
    if config.square_notification_url:
        return config.square_notification_url
    return str(request.url.replace(scheme="https"))


# === Webhook Endpoints ===


@router.post(
    "/webhooks/orders",
    summary="Receive order-system order webhooks",
    response_model=WebhookAck,
    responses={401: {"description": "Invalid signature"}},
)
@router.post("/webhooks/shopify/orders", response_model=WebhookAck, include_in_schema=False)
async def receive_order_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookAck:
    """Verify an order webhook and schedule the order-received saga."""
    raw_body = await request.body()
    sender = WebhookSender.ORDER_SYSTEM.value
    topic = request.headers.get(ORDER_TOPIC_HEADER)
    delivery_id = request.headers.get(ORDER_DELIVERY_HEADER)

    if not verifier.verify(
        raw_body,
        request.headers.get(ORDER_SIGNATURE_HEADER),
        SenderContext(WebhookSender.ORDER_SYSTEM),
    ):
        log_webhook_event(logger, sender, topic or "orders", delivery_id, result="rejected")
        raise InvalidSignatureError()

    log_webhook_event(logger, sender, topic or "orders", delivery_id, result="received")
    background_tasks.add_task(
        run_detached,
        partial(handler.process_order_webhook, raw_body, topic=topic, delivery_id=delivery_id),
        correlation_id=get_correlation_id(),
        label="order webhook",
    )
    return WebhookAck()


@router.post(
    "/webhooks/payments",
    summary="Receive payment-platform webhooks",
    response_model=WebhookAck,
    responses={401: {"description": "Invalid signature"}},
)
@router.post("/webhooks/square", response_model=WebhookAck, include_in_schema=False)
async def receive_payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    handler: WebhookHandler = Depends(get_webhook_handler),
    config: ReconcilerConfig = Depends(get_config),
) -> WebhookAck:
    """Verify a payment webhook and schedule the payment-confirmed saga."""
    raw_body = await request.body()
    sender = WebhookSender.PAYMENT_PLATFORM.value
    context = SenderContext(
        WebhookSender.PAYMENT_PLATFORM,
        notification_url=payment_notification_url(request, config),
    )

    if not verifier.verify(raw_body, request.headers.get(PAYMENT_SIGNATURE_HEADER), context):
        log_webhook_event(logger, sender, "event", result="rejected", url=context.notification_url)
        raise InvalidSignatureError()

    log_webhook_event(logger, sender, "event", result="received")
    background_tasks.add_task(
        run_detached,
        partial(handler.process_payment_webhook, raw_body),
        correlation_id=get_correlation_id(),
        label="payment webhook",
    )
    return WebhookAck()
