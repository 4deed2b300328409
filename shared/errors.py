"""Error taxonomy shared by every service, plus the FastAPI handlers for it."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class CommerceError(Exception):
    """Base exception for all storefront errors."""

    code = "ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(CommerceError):
    """User-correctable input problem (missing address, empty cart, bad quantity)."""

    code = "VALIDATION_ERROR"


class InvalidStatusError(ValidationError):
    code = "INVALID_STATUS"

    def __init__(self, status: str, allowed):
        self.status = status
        super().__init__(f"Invalid status '{status}'. Allowed: {', '.join(sorted(allowed))}")


class NotFoundError(CommerceError):
    """Entity absent or not owned by the caller."""

    code = "NOT_FOUND"


class ConflictError(CommerceError):
    code = "CONFLICT"


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, out_of_stock_items: list):
        self.out_of_stock_items = out_of_stock_items
        super().__init__("Some items are out of stock. Please update your cart.")


class OrderCannotBeCancelledError(ConflictError):
    code = "ORDER_CANNOT_BE_CANCELLED"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Cannot cancel order with status: {status}")


class SecurityError(CommerceError):
    code = "SECURITY_ERROR"


class InvalidSignatureError(SecurityError):
    code = "INVALID_SIGNATURE"

    def __init__(self):
        # Never echo the signature or the expected value back to the caller
        super().__init__("Payment verification failed")


class UpstreamError(CommerceError):
    """A gateway or collaborator call failed. `retryable` marks transient failures."""

    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)


ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    SecurityError: 400,
    UpstreamError: 502,
}


def status_code_for(exc: CommerceError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


async def commerce_error_handler(request: Request, exc: CommerceError) -> JSONResponse:
    """Map CommerceError subclasses to HTTP responses."""
    content = {"detail": exc.message, "code": exc.code, "error_type": type(exc).__name__}
    if isinstance(exc, InsufficientStockError):
        content["out_of_stock_items"] = exc.out_of_stock_items
    if isinstance(exc, UpstreamError):
        content["retryable"] = exc.retryable
    return JSONResponse(status_code=status_code_for(exc), content=content)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(CommerceError, commerce_error_handler)
