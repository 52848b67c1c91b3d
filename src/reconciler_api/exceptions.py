"""FastAPI exception handlers for converting ReconcilerError to HTTP responses.

Only the webhook acknowledgement can fail visibly to a sender, so in
practice this maps a bad signature to 401. The other codes are mapped
for completeness; reconciliation errors never reach the HTTP layer.

Usage:
    from reconciler_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_409_CONFLICT,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from reconciler.models.errors import ErrorCode, ReconcilerError
from reconciler.utils.logging import get_logger

logger = get_logger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_SIGNATURE: HTTP_401_UNAUTHORIZED,
    ErrorCode.INVALID_PAYLOAD: HTTP_400_BAD_REQUEST,
    ErrorCode.DATA_INCONSISTENCY: HTTP_409_CONFLICT,
    ErrorCode.TRANSPORT_FAILURE: HTTP_502_BAD_GATEWAY,
    ErrorCode.CONFIGURATION_ERROR: HTTP_503_SERVICE_UNAVAILABLE,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def reconciler_error_handler(request: Request, exc: ReconcilerError) -> JSONResponse:
    """Convert a ReconcilerError to a JSON error body.

    The body carries only the public message for the code; internal
    detail stays in the logs.
    """
    status_code = get_http_status_for_error(exc.code)
    if status_code >= 500:
        logger.error("Request %s failed: %s", request.url.path, exc.message)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(ReconcilerError, reconciler_error_handler)  # type: ignore[arg-type]
