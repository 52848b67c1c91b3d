"""FastAPI application for the order/payment reconciliation service.

Exposes the two webhook receivers and liveness endpoints. Runs under
uvicorn locally and on AWS Lambda through Mangum.
"""

import os

from fastapi import FastAPI
from mangum import Mangum

import reconciler
from reconciler.utils.logging import configure_logging
from reconciler_api.exceptions import register_exception_handlers
from reconciler_api.middleware import CorrelationIdMiddleware
from reconciler_api.routes import health_router, webhooks_router

configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

app = FastAPI(
    title="Order Reconciliation Service",
    description="Reconciles order-system orders with payment-platform payments",
    version=reconciler.__version__,
)

app.add_middleware(CorrelationIdMiddleware)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

app.include_router(health_router)
app.include_router(webhooks_router)


# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int | None = None, reload: bool = False) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: $PORT or 3000)
        reload: Enable hot reload for development (default: False)
    """
    import uvicorn

    port = port or int(os.environ.get("PORT", "3000"))
    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run("reconciler_api.main:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
