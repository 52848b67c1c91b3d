"""FastAPI dependency injection providers for the reconciliation services.

Each factory is cached with @lru_cache so one instance is shared per
process. Routes receive them through Depends, so tests can swap any of
them with app.dependency_overrides.

Service Dependency Graph:
    ReconcilerConfig (get_config)
    DynamoDBService (singleton via get_dynamodb_service)
        └── DynamoOrderLedger
    SquarePaymentGateway
    ShopifyOrderSystem
    CompositeAlertSink (logging + optional SES)
    ReconciliationEngine (ledger, gateway, order system, alerts)
        └── WebhookHandler
    SignatureVerifier

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from reconciler.config import get_config
from reconciler.models import ConfigurationError
from reconciler.services.alerts import CompositeAlertSink, LoggingAlertSink, SesAlertSink
from reconciler.services.dynamodb import DynamoDBService
from reconciler.services.dynamodb import get_dynamodb_service as _shared_dynamodb_service
from reconciler.services.gateway import AlertSink
from reconciler.services.ledger import DynamoOrderLedger
from reconciler.services.reconciliation import ReconciliationEngine
from reconciler.services.shopify_client import ShopifyOrderSystem
from reconciler.services.signature import SignatureVerifier
from reconciler.services.square_gateway import SquarePaymentGateway
from reconciler.services.webhook_handler import WebhookHandler


def get_dynamodb_service() -> DynamoDBService:
    """Get the shared DynamoDBService using the configured table prefix."""
    return _shared_dynamodb_service(get_config().table_prefix)


@lru_cache
def get_order_ledger() -> DynamoOrderLedger:
    return DynamoOrderLedger(db=get_dynamodb_service())


@lru_cache
def get_payment_gateway() -> SquarePaymentGateway:
    """Get cached SquarePaymentGateway configured for the merchant's location."""
    config = get_config()
    if not config.square_location_id:
        raise ConfigurationError("SQUARE_LOCATION_ID is not set")
    return SquarePaymentGateway(
        config.square_access_token,
        location_id=config.square_location_id,
        environment=config.square_environment,
        currency=config.currency,
        line_item_name=config.invoice_line_item_name,
        timeout=config.http_timeout_seconds,
    )


@lru_cache
def get_order_system() -> ShopifyOrderSystem:
    config = get_config()
    if not config.shopify_store_url:
        raise ConfigurationError("SHOPIFY_STORE_URL is not set")
    return ShopifyOrderSystem(
        config.shopify_store_url,
        config.shopify_admin_api_token,
        api_version=config.shopify_api_version,
        timeout=config.http_timeout_seconds,
    )


@lru_cache
def get_alert_sink() -> AlertSink:
    """Get cached alert sink.

    Alerts always go to the error log. They are also e-mailed when both
    MERCHANT_ALERT_EMAIL and ALERT_FROM_EMAIL are configured.
    """
    config = get_config()
    sinks: list[AlertSink] = [LoggingAlertSink()]
    if config.merchant_alert_email and config.alert_from_email:
        sinks.append(SesAlertSink(config.alert_from_email, config.merchant_alert_email))
    return CompositeAlertSink(sinks)


@lru_cache
def get_signature_verifier() -> SignatureVerifier:
    config = get_config()
    return SignatureVerifier(
        order_webhook_secret=config.shopify_webhook_secret,
        payment_signature_key=config.square_webhook_signature_key,
    )


@lru_cache
def get_reconciliation_engine() -> ReconciliationEngine:
    """Get cached ReconciliationEngine wired to the production adapters."""
    return ReconciliationEngine(
        ledger=get_order_ledger(),
        payments=get_payment_gateway(),
        orders=get_order_system(),
        alerts=get_alert_sink(),
        config=get_config(),
    )


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    return WebhookHandler(get_reconciliation_engine())


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the configuration and the underlying DynamoDB singleton.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    from reconciler.services.dynamodb import reset_dynamodb_service
    from reconciler.services.ssm_service import reset_ssm_service

    get_order_ledger.cache_clear()
    get_payment_gateway.cache_clear()
    get_order_system.cache_clear()
    get_alert_sink.cache_clear()
    get_signature_verifier.cache_clear()
    get_reconciliation_engine.cache_clear()
    get_webhook_handler.cache_clear()
    get_config.cache_clear()

    reset_dynamodb_service()
    reset_ssm_service()
