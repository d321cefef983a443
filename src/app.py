"""Magazine marketplace FastAPI application.

Serves checkout, payment webhooks and order management. Every request runs
inside the marketplace domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from marketplace.domain import marketplace
from marketplace.settings import get_settings

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the config overlay and the log level.
marketplace.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Magazine Marketplace API",
    description="Order and payment processing for retailer purchases from publishers",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context for each request."""
    with marketplace.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketplace.api import (  # noqa: E402
    checkout_router,
    order_router,
    register_error_handlers,
    webhook_router,
)

app.include_router(checkout_router)
app.include_router(webhook_router)
app.include_router(order_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    settings = get_settings()
    return JSONResponse(
        content={
            "status": "ok",
            "domain": marketplace.name,
            "environment": settings.environment,
            "gateway": settings.gateway,
        }
    )
