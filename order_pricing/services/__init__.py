"""Services — pricing, shipping, SKU resolution, frame catalog, partner client, orders, checkout."""

from order_pricing.services.currency_service import CurrencyConverter, LiveRateProvider, StaticRateProvider
from order_pricing.services.prodigi_client import PartnerClient, ProdigiClient
from order_pricing.services.pricing_service import PricingCalculator
from order_pricing.services.shipping_service import FallbackPricing, ShippingService
from order_pricing.services.sku_resolver import SkuCatalogConfig, SkuResolutionState, SkuResolver
from order_pricing.services.frame_catalog import FrameCatalog
from order_pricing.services.order_service import OrderService
from order_pricing.services.checkout_service import CheckoutService

__all__ = [
    "CurrencyConverter",
    "LiveRateProvider",
    "StaticRateProvider",
    "PartnerClient",
    "ProdigiClient",
    "PricingCalculator",
    "FallbackPricing",
    "ShippingService",
    "SkuCatalogConfig",
    "SkuResolutionState",
    "SkuResolver",
    "FrameCatalog",
    "OrderService",
    "CheckoutService",
]
