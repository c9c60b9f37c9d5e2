"""Error taxonomy for the payment core and its FastAPI handlers."""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class BookingCoreError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class ConfigurationError(BookingCoreError):
    """A secret or credential the operation needs is not configured."""

    code = "configuration_error"


class ValidationError(BookingCoreError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class AuthorizationError(BookingCoreError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "authorization_error"


class WebhookSignatureError(AuthorizationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_signature"


class NotFoundError(BookingCoreError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(BookingCoreError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class UpstreamError(BookingCoreError):
    """Data store or payment processor failure. Safe to retry by default."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_error"
    retryable = True


def booking_core_error_handler(_: Request, exc: BookingCoreError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code, "retryable": exc.retryable},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingCoreError, booking_core_error_handler)
