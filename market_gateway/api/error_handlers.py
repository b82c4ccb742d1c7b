"""Centralized error handling: error kinds to HTTP status and the failure envelope."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from market_gateway.services.errors import GatewayError
from market_gateway.utils.event_store import ERROR, event_store
from market_gateway.utils.logger import StructuredLogger
from market_gateway.utils.trace_context import get_current_trace

logger = StructuredLogger("ErrorHandlers")


class GatewayErrorCode:
    """Error codes returned in the ``error`` field of failure responses."""

    INVALID_PARAMETER = "INVALID_PARAMETER"
    UNKNOWN_ASSET = "UNKNOWN_ASSET"
    ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_CODE = {
    GatewayErrorCode.INVALID_PARAMETER: status.HTTP_400_BAD_REQUEST,
    GatewayErrorCode.UNKNOWN_ASSET: status.HTTP_400_BAD_REQUEST,
    GatewayErrorCode.ASSET_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    GatewayErrorCode.UPSTREAM_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
    GatewayErrorCode.UPSTREAM_TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    GatewayErrorCode.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    GatewayErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class RateLimitExceeded(GatewayError):
    """Raised by the rate limit dependency."""

    code = GatewayErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, rate_info: dict[str, Any]):
        super().__init__("Rate limit exceeded, retry later")
        self.rate_info = rate_info


class ErrorResponse:
    """Standardized failure response: ``{success: false, error, message, details?}``."""

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize error response.

        Args:
            error_code: Code from GatewayErrorCode
            message: Short human-readable message, safe to show to clients
            details: Additional structured details
            status_code: HTTP status code
            headers: Extra response headers
        """
        self.error_code = error_code
        self.message = message
        self.details = details
        self.status_code = status_code
        self.headers = headers

    def to_dict(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "success": False,
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.to_dict(),
            headers=self.headers,
        )


def status_for(error_code: str) -> int:
    return STATUS_BY_CODE.get(error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_gateway_error_response(error: GatewayError) -> ErrorResponse:
    """Map a classified gateway error to its response."""
    headers = None
    if isinstance(error, RateLimitExceeded):
        info = error.rate_info
        headers = {
            "X-RateLimit-Limit": str(info["limit"]),
            "X-RateLimit-Remaining": str(info["remaining"]),
            "X-RateLimit-Reset": str(info["reset_time"]),
            "Retry-After": str(info.get("retry_after", info["window_seconds"])),
        }

    return ErrorResponse(
        error_code=error.code,
        message=error.message,
        details=error.details,
        status_code=status_for(error.code),
        headers=headers,
    )


def create_validation_error_response(errors: list[dict[str, Any]]) -> ErrorResponse:
    """
    Create an INVALID_PARAMETER response from FastAPI validation errors.

    Args:
        errors: Errors as returned by ``RequestValidationError.errors()``

    Returns:
        ErrorResponse with one message per offending parameter
    """
    field_errors = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        # Drop the "query"/"path" prefix FastAPI puts in front of the name
        field_path = ".".join(loc[1:] if len(loc) > 1 else loc)
        field_errors[field_path] = error.get("msg", "Invalid value")

    return ErrorResponse(
        error_code=GatewayErrorCode.INVALID_PARAMETER,
        message="Invalid request parameters",
        details=field_errors,
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def create_internal_error(message: str = "An unexpected error occurred") -> ErrorResponse:
    """Generic 500 response; never carries exception text."""
    return ErrorResponse(
        error_code=GatewayErrorCode.INTERNAL_ERROR,
        message=message,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    error_response = create_gateway_error_response(exc)
    context = {
        "path": request.url.path,
        "error": exc.code,
        "status_code": error_response.status_code,
    }
    if error_response.status_code >= 500:
        logger.error("Request failed", context=context)
        event_store.add_event(
            trace_id=get_current_trace(),
            event_type=ERROR,
            component="ErrorHandlers",
            message=exc.message,
            context=context,
        )
    else:
        logger.info("Request rejected", context=context)
    return error_response.to_json_response()


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return create_validation_error_response(exc.errors()).to_json_response()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort handler for unclassified exceptions.

    Logs the full exception with request context and answers with a generic
    INTERNAL_ERROR body.
    """
    context = {"path": request.url.path, "method": request.method}
    logger.error("Unhandled exception", context=context, exception=exc)
    event_store.add_event(
        trace_id=get_current_trace(),
        event_type=ERROR,
        component="ErrorHandlers",
        message=f"Unhandled {type(exc).__name__}",
        context=context,
    )
    return create_internal_error().to_json_response()


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
