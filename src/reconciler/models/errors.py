"""Error codes and exceptions for the reconciliation service.

Only signature failures are reported to webhook senders. Every other
error is surfaced through logging or an operator alert, because the
sender has already been acknowledged by the time reconciliation runs.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    INVALID_SIGNATURE = "ERR_SIG_001"
    INVALID_PAYLOAD = "ERR_PAYLOAD_001"
    TRANSPORT_FAILURE = "ERR_TRANSPORT_001"
    DATA_INCONSISTENCY = "ERR_DATA_001"
    CONFIGURATION_ERROR = "ERR_CONFIG_001"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_SIGNATURE: "Invalid webhook signature",
    ErrorCode.INVALID_PAYLOAD: "Webhook payload is missing a mandatory identifier",
    ErrorCode.TRANSPORT_FAILURE: "External call failed",
    ErrorCode.DATA_INCONSISTENCY: "Ledger and payment platform disagree",
    ErrorCode.CONFIGURATION_ERROR: "Service is not configured",
}


class ErrorResponse(BaseModel):
    """JSON body returned by the HTTP layer for rejected requests."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    details: Optional[dict[str, str]] = None


class ReconcilerError(Exception):
    """Base exception for reconciliation failures."""

    code: ErrorCode = ErrorCode.TRANSPORT_FAILURE

    def __init__(
        self,
        message: str | None = None,
        details: Optional[dict[str, str]] = None,
    ) -> None:
        self.message = message or ERROR_MESSAGES[self.code]
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        """Convert to the public error body. Never includes internal detail."""
        return ErrorResponse(error_code=self.code, message=ERROR_MESSAGES[self.code])


class InvalidSignatureError(ReconcilerError):
    """Webhook signature did not match. Expected adversarial noise, never alerted."""

    code = ErrorCode.INVALID_SIGNATURE


class PayloadParseError(ReconcilerError):
    """A mandatory identifier (order id, invoice id) is absent from a payload."""

    code = ErrorCode.INVALID_PAYLOAD


class TransportFailure(ReconcilerError):
    """A call to the ledger, payment platform or order system failed unexpectedly."""

    code = ErrorCode.TRANSPORT_FAILURE

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict[str, str]] = None,
    ) -> None:
        self.operation = operation
        super().__init__(f"{operation}: {message}", details)


class DataInconsistencyError(ReconcilerError):
    """A payment event references an order the ledger does not know about."""

    code = ErrorCode.DATA_INCONSISTENCY


class ConfigurationError(ReconcilerError):
    """A required setting or credential is missing."""

    code = ErrorCode.CONFIGURATION_ERROR
