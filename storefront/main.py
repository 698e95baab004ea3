from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api.routes_cart import router as cart_router
from storefront.api.routes_checkout import router as checkout_router
from storefront.api.routes_orders import router as orders_router
from storefront.core.config import get_settings
from storefront.core.errors import InsufficientStockError, StorefrontError
from storefront.core.logging import configure_logging
from storefront.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("storefront api ready env=%s", settings.env)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(_: Request, exc: StorefrontError):
    content = {
        "detail": str(exc),
        "error": exc.code,
    }
    if isinstance(exc, InsufficientStockError) and exc.errors:
        content["items"] = exc.errors
    if exc.status_code >= 500:
        logger.error("request failed: %s", exc)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(checkout_router)
