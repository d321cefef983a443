"""Exception handlers mapping the error taxonomy onto HTTP responses.

Bodies are ``{"error": code, "message": ..., "details": {...}}``. Provider
messages never reach the body; they are logged with the failing request.
Anything outside the taxonomy is a 500 with a generic body, so a webhook
delivery that hit it is redelivered by the gateway.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.errors import MarketplaceError
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        error=exc.code,
        status_code=exc.status_code,
        reason=exc.reason,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.as_payload())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "message": "Request is invalid", "details": {"errors": errors}},
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_failed_unexpectedly", path=request.url.path, error=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal server error", "details": {}},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the marketplace handlers alongside Protean's own."""
    register_exception_handlers(app)
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
