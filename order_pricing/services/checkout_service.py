"""
Checkout Service — prices a cart end to end.

    items ─► guaranteed shipping ─► recommended quote ─► calculate_total ─► validate
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from order_pricing.models.schemas import CheckoutQuote
from order_pricing.services.currency_service import CurrencyConverter
from order_pricing.services.normalization import normalize_pricing_item
from order_pricing.services.pricing_service import PricingCalculator
from order_pricing.services.shipping_service import ShippingService

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(
        self,
        pricing: PricingCalculator,
        shipping: ShippingService,
        converter: CurrencyConverter | None = None,
    ):
        self.pricing = pricing
        self.shipping = shipping
        self.converter = converter or shipping.converter

    @staticmethod
    def _shipping_items(items: list[Any]) -> list[dict[str, Any]]:
        shipping_items = []
        for raw in items:
            item = normalize_pricing_item(raw)
            if isinstance(item, Mapping):
                shipping_items.append(
                    {"sku": item.get("sku"), "quantity": item.get("quantity"), "price": item.get("price")}
                )
        return shipping_items

    async def price_cart(
        self,
        items: list[Any],
        address: Any,
        options: Any = None,
        discount_amount: float = 0.0,
    ) -> CheckoutQuote:
        # Malformed lines fail here, before any partner call.
        self.pricing.calculate_subtotal(items)

        shipping = await self.shipping.calculate_shipping_guaranteed(
            self._shipping_items(items), address, options
        )

        quote = shipping.recommended
        shipping_result = quote.to_shipping_result()
        if quote.currency.upper() != self.pricing.currency.upper():
            converted = self.converter.convert(quote.cost, quote.currency, self.pricing.currency)
            shipping_result = shipping_result.model_copy(
                update={"cost": converted, "currency": self.pricing.currency}
            )
            logger.debug(
                f"Converted shipping {quote.cost} {quote.currency} → {converted} {self.pricing.currency}"
            )

        pricing = self.pricing.calculate_total(items, shipping_result, discount_amount)
        self.pricing.validate_pricing_result(pricing)

        logger.info(
            f"Checkout priced: total={pricing.total} {pricing.currency} "
            f"(shipping {shipping.kind} via {shipping.provider})"
        )
        return CheckoutQuote(pricing=pricing, shipping=shipping)
