"""Exception handlers rendering every failure as ``{"error": message}``."""

import logging

import stripe
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from faloclaro.services.errors import ServiceError

logger = logging.getLogger(__name__)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"✗ {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message, **exc.extra}
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message})


async def database_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.error(f"✗ Database error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={"error": "Database error", "details": exc.message, "code": exc.code},
    )


async def stripe_error_handler(request: Request, exc: stripe.StripeError) -> JSONResponse:
    logger.error(f"✗ Stripe error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"error": exc.user_message or str(exc)})


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"✗ Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(APIError, database_error_handler)
    app.add_exception_handler(stripe.StripeError, stripe_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
