"""Runtime configuration.

Non-secret settings are read from environment variables. Secrets are read
from the environment when present and otherwise fetched from SSM Parameter
Store under /reconciler/{environment}/{platform}/{name}.
"""

import logging
import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

from reconciler.services.ssm_service import (
    PARAMETER_ROOT,
    SSMServiceError,
    get_ssm_service,
    parameter_path,
)

logger = logging.getLogger(__name__)

# env var -> (platform, SSM parameter name)
SECRET_PARAMETERS: dict[str, tuple[str, str]] = {
    "SHOPIFY_WEBHOOK_SECRET": ("shopify", "webhook_secret"),
    "SHOPIFY_ADMIN_API_TOKEN": ("shopify", "admin_api_token"),
    "SQUARE_ACCESS_TOKEN": ("square", "access_token"),
    "SQUARE_WEBHOOK_SIGNATURE_KEY": ("square", "webhook_signature_key"),
}


class ReconcilerConfig(BaseModel):
    """Settings for one deployment (single merchant, store and payment account)."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"

    # Order system (Shopify)
    shopify_store_url: str = ""
    shopify_api_version: str = "2024-10"
    shopify_admin_api_token: str = Field(default="", repr=False)
    shopify_webhook_secret: str = Field(default="", repr=False)

    # Payment platform (Square)
    square_environment: str = "sandbox"
    square_access_token: str = Field(default="", repr=False)
    square_location_id: str = ""
    square_webhook_signature_key: str = Field(default="", repr=False)
    square_notification_url: str | None = Field(
        default=None,
        description="URL registered with Square; overrides the request URL when signing",
    )

    # Alerts
    merchant_alert_email: str | None = None
    alert_from_email: str | None = None

    # Invoicing / charging
    currency: str = "USD"
    invoice_line_item_name: str = "Research Materials"

    # Persistence / transport
    dynamodb_table_prefix: str = ""
    http_timeout_seconds: float = Field(default=15.0, gt=0)

    @property
    def table_prefix(self) -> str:
        return self.dynamodb_table_prefix or f"reconciler-{self.environment}"

    @property
    def square_is_production(self) -> bool:
        return self.square_environment.lower() == "production"


def _load_stored_secrets(environment: str) -> dict[str, str]:
    """Read every secret stored for this environment from SSM.

    An unreadable store resolves to no secrets so that signature
    verification fails closed instead of crashing startup.
    """
    try:
        return get_ssm_service().get_parameters_under(f"{PARAMETER_ROOT}/{environment}")
    except SSMServiceError as e:
        logger.warning("SSM secrets unavailable for %s: %s", environment, e)
        return {}


def _resolve_secret(env_var: str, environment: str, stored: dict[str, str]) -> str:
    """Read a secret from the environment, falling back to the SSM values."""
    value = os.environ.get(env_var)
    if value:
        return value
    platform, name = SECRET_PARAMETERS[env_var]
    return stored.get(parameter_path(environment, platform, name), "")


def load_config(*, use_ssm: bool | None = None) -> ReconcilerConfig:
    """Build configuration from the process environment.

    Args:
        use_ssm: Fetch missing secrets from SSM. Defaults to the
            RECONCILER_USE_SSM env var (on unless set to "false").
    """
    environment = os.environ.get("ENVIRONMENT", "dev")
    if use_ssm is None:
        use_ssm = os.environ.get("RECONCILER_USE_SSM", "true").lower() != "false"

    missing = [name for name in SECRET_PARAMETERS if not os.environ.get(name)]
    stored = _load_stored_secrets(environment) if use_ssm and missing else {}

    secrets = {
        env_var.lower(): _resolve_secret(env_var, environment, stored)
        for env_var in SECRET_PARAMETERS
    }

    return ReconcilerConfig(
        environment=environment,
        shopify_store_url=os.environ.get("SHOPIFY_STORE_URL", ""),
        shopify_api_version=os.environ.get("SHOPIFY_API_VERSION", "2024-10"),
        square_environment=os.environ.get("SQUARE_ENVIRONMENT", "sandbox"),
        square_location_id=os.environ.get("SQUARE_LOCATION_ID", ""),
        square_notification_url=os.environ.get("SQUARE_NOTIFICATION_URL") or None,
        merchant_alert_email=os.environ.get("MERCHANT_ALERT_EMAIL") or None,
        alert_from_email=os.environ.get("ALERT_FROM_EMAIL") or None,
        currency=os.environ.get("CURRENCY", "USD"),
        invoice_line_item_name=os.environ.get(
            "INVOICE_LINE_ITEM_NAME", "Research Materials"
        ),
        dynamodb_table_prefix=os.environ.get("DYNAMODB_TABLE_PREFIX", ""),
        http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "15")),
        **secrets,
    )


@lru_cache(maxsize=1)
def get_config() -> ReconcilerConfig:
    """Get the process-wide configuration (cached)."""
    return load_config()
