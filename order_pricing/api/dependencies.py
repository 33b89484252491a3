"""
Service wiring for the HTTP layer.

Each getter returns a process-wide instance built from settings; tests
swap them out through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from order_pricing.config import get_settings
from order_pricing.services.checkout_service import CheckoutService
from order_pricing.services.currency_service import (
    CurrencyConverter,
    LiveRateProvider,
    RateProvider,
    StaticRateProvider,
)
from order_pricing.services.frame_catalog import FrameCatalog
from order_pricing.services.pricing_service import PricingCalculator
from order_pricing.services.prodigi_client import PartnerClient, ProdigiClient
from order_pricing.services.shipping_service import ShippingService
from order_pricing.services.sku_resolver import SkuResolver


@lru_cache()
def get_rate_provider() -> RateProvider:
    settings = get_settings()
    if settings.use_live_exchange_rates:
        return LiveRateProvider(settings.exchange_rate_api_url, settings.exchange_rate_cache_hours)
    return StaticRateProvider()


@lru_cache()
def get_converter() -> CurrencyConverter:
    return CurrencyConverter(get_rate_provider())


@lru_cache()
def get_partner_client() -> PartnerClient:
    return ProdigiClient()


@lru_cache()
def get_pricing_calculator() -> PricingCalculator:
    return PricingCalculator()


@lru_cache()
def get_shipping_service() -> ShippingService:
    return ShippingService(get_partner_client(), converter=get_converter())


@lru_cache()
def get_sku_resolver() -> SkuResolver:
    return SkuResolver(get_partner_client())


@lru_cache()
def get_frame_catalog() -> FrameCatalog:
    return FrameCatalog(get_partner_client(), converter=get_converter())


def get_checkout_service(
    pricing: PricingCalculator = Depends(get_pricing_calculator),
    shipping: ShippingService = Depends(get_shipping_service),
) -> CheckoutService:
    return CheckoutService(pricing, shipping)
