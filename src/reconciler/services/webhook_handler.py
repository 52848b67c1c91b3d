"""Webhook processing separate from HTTP routing.

Runs after the sender has been acknowledged: parses the verified raw
body and hands the event to the reconciliation engine. Nothing here
raises back to the transport; a malformed payload is logged and skipped.
"""

from reconciler.models import PayloadParseError, SagaOutcome, WebhookSender
from reconciler.services.payload_parser import parse_order_event, parse_payment_event
from reconciler.services.reconciliation import ReconciliationEngine
from reconciler.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

ORDER_CREATED_TOPIC = "orders/create"


class WebhookHandler:
    """Turns verified webhook bodies into reconciliation sagas."""

    def __init__(self, engine: ReconciliationEngine) -> None:
        self.engine = engine

    def process_order_webhook(
        self,
        raw_body: bytes,
        topic: str | None = None,
        delivery_id: str | None = None,
    ) -> SagaOutcome:
        """Process an order-system webhook.

        Args:
            raw_body: Verified request body
            topic: Order-system topic header, if sent
            delivery_id: Sender-assigned delivery ID, if sent

        Returns:
            Outcome of the saga, or SKIPPED for topics and payloads
            that are not processed
        """
        sender = WebhookSender.ORDER_SYSTEM.value
        if topic and topic != ORDER_CREATED_TOPIC:
            log_webhook_event(logger, sender, topic, delivery_id, result="skipped")
            return SagaOutcome.SKIPPED

        try:
            event = parse_order_event(raw_body)
        except PayloadParseError as e:
            log_webhook_event(
                logger, sender, ORDER_CREATED_TOPIC, delivery_id, result="rejected", error=str(e)
            )
            return SagaOutcome.SKIPPED

        outcome = self.engine.handle_order_received(event)
        log_webhook_event(
            logger,
            sender,
            ORDER_CREATED_TOPIC,
            delivery_id,
            result=outcome.value,
            order_number=event.order_number,
        )
        return outcome

    def process_payment_webhook(
        self,
        raw_body: bytes,
        delivery_id: str | None = None,
    ) -> SagaOutcome:
        """Process a payment-platform webhook.

        Only invoice-paid events start a saga; every other event type
        is acknowledged and skipped.
        """
        sender = WebhookSender.PAYMENT_PLATFORM.value
        try:
            event = parse_payment_event(raw_body)
        except PayloadParseError as e:
            log_webhook_event(
                logger, sender, "unknown", delivery_id, result="rejected", error=str(e)
            )
            return SagaOutcome.SKIPPED

        if event is None:
            log_webhook_event(logger, sender, "other", delivery_id, result="skipped")
            return SagaOutcome.SKIPPED

        outcome = self.engine.handle_payment_confirmed(event)
        log_webhook_event(
            logger,
            sender,
            event.event_type,
            delivery_id or event.event_id,
            result=outcome.value,
            invoice_id=event.invoice_id,
        )
        return outcome
