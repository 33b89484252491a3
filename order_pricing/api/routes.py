"""
API routes — thin HTTP layer over the pricing and shipping services.

Routes:
  GET  /health                    → API health check
  POST /api/pricing/calculate     → Price a cart with an optional shipping result
  POST /api/pricing/checkout      → Guaranteed shipping + totals in one call
  POST /api/shipping/quote        → Shipping quotes (?guaranteed=true never fails)
  GET  /api/shipping/countries    → Supported destination countries
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from order_pricing.api.dependencies import (
    get_checkout_service,
    get_pricing_calculator,
    get_shipping_service,
)
from order_pricing.config import get_settings
from order_pricing.models.schemas import CheckoutQuote, PricingResult, TaxConfig
from order_pricing.services.checkout_service import CheckoutService
from order_pricing.services.pricing_service import PricingCalculator
from order_pricing.services.shipping_service import ShippingService

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
pricing_router = APIRouter()
shipping_router = APIRouter()


# ── Request schemas ──────────────────────────────────────
# Items and addresses stay loosely typed here; the services normalize and
# validate them so malformed carts get the pricing error body, not a 422.

class PricingRequest(BaseModel):
    items: list[Any]
    shipping: Optional[dict[str, Any]] = None
    discount_amount: float = 0.0
    tax_rate: Optional[float] = Field(default=None, ge=0, le=1)


class CheckoutRequest(BaseModel):
    items: list[Any]
    address: dict[str, Any]
    options: Optional[dict[str, Any]] = None
    discount_amount: float = 0.0


class ShippingQuoteRequest(BaseModel):
    items: list[Any]
    address: dict[str, Any]
    options: Optional[dict[str, Any]] = None
    address_validated: bool = False


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.app_name,
        "partner_environment": settings.prodigi_environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Pricing ──────────────────────────────────────────────

@pricing_router.post("/calculate", response_model=PricingResult)
async def calculate_pricing(
    request: PricingRequest,
    calculator: PricingCalculator = Depends(get_pricing_calculator),
):
    if request.tax_rate is not None:
        calculator = PricingCalculator(
            tax_config=TaxConfig(rate=request.tax_rate),
            currency=calculator.currency,
            max_line_total=calculator.max_line_total,
            max_shipping_cost=calculator.max_shipping_cost,
            free_shipping_threshold=calculator.free_shipping_threshold,
        )

    result = calculator.calculate_total(request.items, request.shipping, request.discount_amount)
    calculator.validate_pricing_result(result)
    return result


@pricing_router.post("/checkout", response_model=CheckoutQuote)
async def checkout_quote(
    request: CheckoutRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
):
    return await checkout.price_cart(
        request.items, request.address, request.options, request.discount_amount
    )


# ── Shipping ─────────────────────────────────────────────

@shipping_router.post("/quote")
async def shipping_quote(
    request: ShippingQuoteRequest,
    guaranteed: bool = False,
    shipping: ShippingService = Depends(get_shipping_service),
):
    if guaranteed:
        return await shipping.calculate_shipping_guaranteed(
            request.items, request.address, request.options, request.address_validated
        )
    result = await shipping.calculate_shipping(request.items, request.address, request.options)
    return result.model_copy(update={"address_validated": request.address_validated})


@shipping_router.get("/countries")
async def supported_countries(shipping: ShippingService = Depends(get_shipping_service)):
    return {"countries": shipping.get_supported_countries()}
