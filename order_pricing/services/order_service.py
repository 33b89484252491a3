"""
Order Service — converts a paid checkout order into a partner order and
submits it, resolving every SKU first.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from order_pricing.models.errors import PartnerApiError, PricingError
from order_pricing.models.schemas import PartnerOrder, PartnerOrderItem, PartnerOrderResponse
from order_pricing.services.normalization import normalize_recipient
from order_pricing.services.prodigi_client import PartnerClient
from order_pricing.services.sku_resolver import SkuResolver

logger = logging.getLogger(__name__)


def rejected_skus(error: PartnerApiError, skus: list[str]) -> list[str]:
    """
    SKUs a partner rejection is attributable to: those named in the error
    body, or all of them on a 404.  Address and payload errors name none.
    """
    if error.status_code == 404:
        return list(skus)
    text = f"{error} {error.body}".upper()
    return [sku for sku in skus if sku.upper() in text]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return default


class OrderService:
    def __init__(self, partner_client: PartnerClient, sku_resolver: SkuResolver):
        self.partner_client = partner_client
        self.sku_resolver = sku_resolver

    def build_partner_order(self, order_data: Mapping[str, Any]) -> PartnerOrder:
        reference = _pick(order_data, "order_reference", "orderReference")
        if not reference:
            raise PricingError("Order reference is required", "INVALID_ORDER")

        address = _pick(order_data, "shipping_address", "shippingAddress")
        if not isinstance(address, Mapping):
            raise PricingError(
                "Shipping address is required", "INVALID_ORDER", {"order_reference": reference}
            )

        items = []
        for raw in _pick(order_data, "items", default=[]):
            style = _pick(raw, "frame_style", "frameStyle", default="")
            items.append(
                PartnerOrderItem(
                    merchant_reference=f"item-{_pick(raw, 'product_sku', 'productSku', default='')}",
                    sku=self.sku_resolver.get_product_sku(
                        _pick(raw, "frame_size", "frameSize", default=""),
                        style,
                        _pick(raw, "frame_material", "frameMaterial", default=""),
                    ),
                    copies=_pick(raw, "quantity", default=1),
                    attributes=self.sku_resolver.get_product_attributes(style),
                    assets=[{"printArea": "default", "url": _pick(raw, "image_url", "imageUrl", default="")}],
                )
            )
        if not items:
            raise PricingError("Order has no items", "INVALID_ORDER", {"order_reference": reference})

        return PartnerOrder(
            merchant_reference=reference,
            recipient=normalize_recipient(address),
            items=items,
            metadata={
                "customerEmail": _pick(order_data, "customer_email", "customerEmail"),
                "customerPhone": _pick(order_data, "customer_phone", "customerPhone"),
            },
        )

    async def submit_order(self, order_data: Mapping[str, Any]) -> PartnerOrderResponse:
        order = self.build_partner_order(order_data)

        resolved_items = []
        for item in order.items:
            resolution = await self.sku_resolver.resolve_sku(item.sku)
            resolved_items.append(item.model_copy(update={"sku": resolution.sku}))
        order = order.model_copy(update={"items": resolved_items})

        try:
            response = await self.partner_client.create_order(order)
        except PartnerApiError as e:
            for sku in rejected_skus(e, [item.sku for item in order.items]):
                self.sku_resolver.record_failure(sku)
            logger.error(f"Partner rejected order {order.merchant_reference}: {e}")
            raise

        logger.info(f"Submitted order {order.merchant_reference} as partner order {response.id}")
        return response
