"""
Error taxonomy shared by the order, payment and notification services.

Services raise these instead of HTTPException so the same failure can be
handled in-process (tests, background jobs) and rendered at the HTTP edge by
`storefront_error_handler` as a `{"error": ..., "details": ...}` body.
"""
from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class StorefrontError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body: dict = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError):
    """Missing or malformed input. The caller can fix it and retry."""
    status_code = status.HTTP_400_BAD_REQUEST


class WrongPaymentMethodError(ValidationError):
    pass


class ConflictError(StorefrontError):
    """The order is not in a state that allows the operation (e.g. already paid)."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND


class SignatureError(StorefrontError):
    """Gateway proof of payment did not verify. Terminal, never retried."""
    status_code = status.HTTP_400_BAD_REQUEST


class PersistenceError(StorefrontError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConfigurationError(StorefrontError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class GatewayError(StorefrontError):
    """Remote payment provider failure. Provider codes are passed through as-is."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: Any = None,
        upstream_status: Optional[int] = None,
        provider_code: Optional[str] = None,
        provider_description: Optional[str] = None,
    ):
        super().__init__(message, details)
        self.upstream_status = upstream_status
        self.provider_code = provider_code
        self.provider_description = provider_description

    def to_body(self) -> dict:
        body = super().to_body()
        body.update(
            {
                "statusCode": self.upstream_status,
                "providerErrorCode": self.provider_code,
                "providerErrorDescription": self.provider_description,
            }
        )
        return body


class NotificationError(StorefrontError):
    """Raised inside the notification dispatcher only. Never reaches a client."""

    def __init__(self, message: str, code: Optional[str] = None, transient: bool = False):
        super().__init__(message)
        self.code = code
        self.transient = transient


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Missing required fields", "details": details},
    )
