"""
Error taxonomy and the handlers that turn errors into client responses.

Every error leaves the API as {"message", "code", "timestamp"}. The message
is the fixed client-facing text for the error class, never the text of an
underlying exception; full details are logged server-side only.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("storefront.errors")


class StorefrontError(Exception):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
    message = "An unexpected error occurred. Please try again later."

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)


class ValidationFailed(StorefrontError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid input provided"


class Unauthenticated(StorefrontError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Authentication required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, redirect="/login")


class Forbidden(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You do not have permission to perform this action"


class NotFound(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"
    message = "Order not found"


class Conflict(StorefrontError):
    status_code = 409
    code = "CONFLICT"
    message = "Request conflicts with existing resource"


class CartEmpty(StorefrontError):
    status_code = 400
    code = "CART_EMPTY"
    message = "Your cart is empty"


class PaymentNotCompleted(StorefrontError):
    status_code = 400
    code = "PAYMENT_NOT_COMPLETED"
    message = "Payment not completed"


class PaymentAlreadyProcessed(StorefrontError):
    status_code = 400
    code = "PAYMENT_ALREADY_PROCESSED"
    message = "Payment already processed"


class WebhookSignatureInvalid(StorefrontError):
    status_code = 400
    code = "WEBHOOK_SIGNATURE_INVALID"
    message = "Invalid webhook signature"


class RateLimited(StorefrontError):
    status_code = 429
    code = "RATE_LIMITED"
    message = "Too many requests, please try again later"

    def __init__(self, message: Optional[str], retry_after: int):
        super().__init__(message, retry_after=retry_after)
        self.retry_after = retry_after


class CheckoutFailed(StorefrontError):
    status_code = 502
    code = "CHECKOUT_FAILED"
    message = "Payment processing failed. Please try again or contact support."


class PaymentNotConfigured(StorefrontError):
    status_code = 503
    code = "PAYMENT_NOT_CONFIGURED"
    message = "Payment system not configured. Please contact support."


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_body(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    body = {"message": message, "code": code, "timestamp": _now_iso()}
    body.update(extra)
    return body


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc.code, request.method, request.url.path, exc_info=exc)
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, **exc.extra),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    # loc is ("body", "shipping_address", "city") / ("query", "limit")
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    return JSONResponse(
        status_code=400,
        content=error_body(
            ValidationFailed.code,
            first.get("msg", ValidationFailed.message),
            field=field,
        ),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    codes = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(codes.get(exc.status_code, "HTTP_ERROR"), str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body(StorefrontError.code, StorefrontError.message),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
