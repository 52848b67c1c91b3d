"""API routes package.

- health: liveness endpoints
- webhooks: order-system and payment-platform webhook receivers
"""

from reconciler_api.routes.health import router as health_router
from reconciler_api.routes.webhooks import router as webhooks_router

__all__ = ["health_router", "webhooks_router"]
