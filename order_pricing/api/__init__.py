"""
FastAPI application factory and API package.

Run with:
    uvicorn order_pricing.api:app --reload --port 8000

Or via main.py:
    python -m order_pricing.main --serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_pricing.config import get_settings
from order_pricing.models.enums import ErrorKind
from order_pricing.models.errors import PricingError
from order_pricing.api.catalog_routes import catalog_router, sku_router
from order_pricing.api.dependencies import get_partner_client, get_rate_provider
from order_pricing.api.routes import health_router, pricing_router, shipping_router
from order_pricing.services.currency_service import LiveRateProvider

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PROVIDER_FAILURE: 502,
    ErrorKind.CONSISTENCY: 500,
    ErrorKind.UNAVAILABLE_DEGRADE: 503,
}


async def pricing_error_handler(request: Request, exc: PricingError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: [{exc.code}] {exc.message}")
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Order Pricing & Shipping API",
        description="Cart pricing, shipping quotes and partner SKU resolution",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        debug=settings.debug,
    )

    # CORS: allow the storefront (adjust origins in production)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(PricingError, pricing_error_handler)

    application.include_router(health_router, tags=["Health"])
    application.include_router(pricing_router, prefix="/api/pricing", tags=["Pricing"])
    application.include_router(shipping_router, prefix="/api/shipping", tags=["Shipping"])
    application.include_router(catalog_router, prefix="/api/catalog", tags=["Catalog"])
    application.include_router(sku_router, prefix="/api/sku", tags=["SKU"])

    @application.on_event("startup")
    async def startup():
        logger.info(f"Starting {settings.app_name} API ({settings.prodigi_environment})")
        provider = get_rate_provider()
        if isinstance(provider, LiveRateProvider):
            await provider.refresh()

    @application.on_event("shutdown")
    async def shutdown():
        if get_partner_client.cache_info().currsize:
            client = get_partner_client()
            if hasattr(client, "aclose"):
                await client.aclose()

    return application


# Module-level instance for `uvicorn order_pricing.api:app`
app = create_app()
