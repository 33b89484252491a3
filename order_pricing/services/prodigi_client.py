"""
Prodigi Client — async wrapper around the print partner's REST API.

Non-2xx responses and bodies that are not the expected JSON raise
``PartnerApiError``; transport failures propagate as the underlying ``httpx``
errors.  Callers that must not fail (shipping fallback, SKU resolution,
catalog) catch these themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from order_pricing.config import get_settings
from order_pricing.models.enums import OrderStatus, PartnerEnvironment
from order_pricing.models.errors import PartnerApiError
from order_pricing.models.schemas import (
    PartnerOrder,
    PartnerOrderResponse,
    PartnerShippingCost,
    ShippingAddress,
)

logger = logging.getLogger(__name__)

BASE_URLS = {
    PartnerEnvironment.SANDBOX: "https://api.sandbox.prodigi.com/v4.0",
    PartnerEnvironment.PRODUCTION: "https://api.prodigi.com/v4.0",
}

DEFAULT_ESTIMATED_DAYS = 7  # the quotes endpoint does not report transit time

STATUS_MAP = {
    "InProgress": OrderStatus.PROCESSING,
    "Complete": OrderStatus.SHIPPED,
    "Cancelled": OrderStatus.CANCELLED,
    "OnHold": OrderStatus.PENDING,
    "Error": OrderStatus.FAILED,
}


class PartnerClient(Protocol):
    """The partner operations the pricing core depends on."""

    async def calculate_shipping_cost(
        self, items: list[dict[str, Any]], address: ShippingAddress
    ) -> PartnerShippingCost: ...

    async def get_all_products(self, category: str | None = None) -> list[dict[str, Any]]: ...

    async def get_product_details(self, sku: str) -> dict[str, Any]: ...

    async def search_products(self, criteria: Mapping[str, Any]) -> list[dict[str, Any]]: ...

    async def create_order(self, order: PartnerOrder) -> PartnerOrderResponse: ...


def map_order_status(status: str) -> str:
    mapped = STATUS_MAP.get(status)
    return mapped.value if mapped else status.lower()


def product_list(data: Any) -> list[dict[str, Any]]:
    """The product array of a ``/products`` response, or empty for any other shape."""
    if isinstance(data, Mapping):
        data = data.get("products")
    return data if isinstance(data, list) else []


class ProdigiClient:
    """
    Prodigi v4 API client.  Use as an async context manager or call
    ``aclose()`` when done.
    """

    def __init__(
        self,
        api_key: str | None = None,
        environment: str | PartnerEnvironment | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.prodigi_api_key
        self.environment = PartnerEnvironment(environment or settings.prodigi_environment)
        self.base_url = base_url or settings.prodigi_base_url or BASE_URLS[self.environment]

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-API-Key": self.api_key, "Content-Type": "application/json"},
            timeout=timeout if timeout is not None else settings.prodigi_http_timeout_seconds,
            transport=transport,
        )

        if not self.api_key:
            logger.warning("Prodigi API key is not configured, partner calls will be rejected")

    async def __aenter__(self) -> "ProdigiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Transport ────────────────────────────────────────

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        logger.debug(f"Prodigi {method} {endpoint} ({self.environment.value})")
        response = await self._client.request(method, endpoint, json=json, params=params)

        if response.is_error:
            status = response.status_code
            if status == 401:
                message = "Prodigi API 401 Unauthorized: invalid or missing API key"
            elif status == 403:
                message = "Prodigi API 403 Forbidden: insufficient permissions"
            elif status == 404:
                message = f"Prodigi API 404 Not Found: {endpoint}"
            else:
                message = f"Prodigi API error: {status} {response.reason_phrase} - {response.text}"
            logger.error(f"{message} [{method} {endpoint}]")
            raise PartnerApiError(message, status, endpoint, response.text)

        try:
            return response.json()
        except ValueError as e:
            content_type = response.headers.get("content-type", "no content type")
            message = f"Prodigi API returned a non-JSON body: {response.status_code} {content_type}"
            logger.error(f"{message} [{method} {endpoint}]")
            raise PartnerApiError(message, response.status_code, endpoint, response.text) from e

    @staticmethod
    def _expect_mapping(data: Any, endpoint: str) -> Mapping[str, Any]:
        if not isinstance(data, Mapping):
            raise PartnerApiError(
                f"Unexpected Prodigi response shape: {type(data).__name__}", 200, endpoint, repr(data)
            )
        return data

    # ── Products ─────────────────────────────────────────

    async def get_all_products(self, category: str | None = None) -> list[dict[str, Any]]:
        params = {"category": category} if category else None
        data = await self._request("GET", "/products", params=params)
        products = product_list(data)
        logger.info(f"Fetched {len(products)} Prodigi products")
        return products

    async def get_product_details(self, sku: str) -> dict[str, Any]:
        data = self._expect_mapping(await self._request("GET", f"/products/{sku}"), f"/products/{sku}")
        if isinstance(data.get("product"), Mapping):
            return data["product"]
        return data

    async def search_products(self, criteria: Mapping[str, Any]) -> list[dict[str, Any]]:
        params = {key: value for key, value in criteria.items() if value is not None}
        return product_list(await self._request("GET", "/products", params=params))

    # ── Quotes ───────────────────────────────────────────

    async def calculate_shipping_cost(
        self, items: list[dict[str, Any]], address: ShippingAddress
    ) -> PartnerShippingCost:
        """Quote the Standard method and return the first quote's shipping cost."""
        body = {
            "shippingMethod": "Standard",
            "destinationCountryCode": address.country_code,
            "items": [
                {
                    "sku": item["sku"],
                    "copies": item["quantity"],
                    "attributes": item.get("attributes") or {},
                    "assets": [{"printArea": "default"}],
                }
                for item in items
            ],
        }
        data = self._expect_mapping(await self._request("POST", "/quotes", json=body), "/quotes")

        quotes = data.get("quotes") or []
        if not quotes:
            raise PartnerApiError("No shipping quotes returned from Prodigi API", 200, "/quotes", str(data))

        first = quotes[0]
        shipping = first["costSummary"]["shipping"]
        return PartnerShippingCost(
            cost=float(shipping["amount"]),
            currency=shipping["currency"],
            estimated_days=DEFAULT_ESTIMATED_DAYS,
            service_name=first.get("shipmentMethod") or "Standard",
        )

    # ── Orders ───────────────────────────────────────────

    @staticmethod
    def _parse_order(data: Any) -> PartnerOrderResponse:
        data = ProdigiClient._expect_mapping(data, "/Orders")
        order = data.get("order", data)
        status = order.get("status", "")
        if isinstance(status, Mapping):
            status = status.get("stage", "")
        return PartnerOrderResponse(
            id=str(order["id"]),
            status=status,
            tracking_number=order.get("trackingNumber"),
            tracking_url=order.get("trackingUrl"),
            estimated_delivery=order.get("estimatedDelivery"),
        )

    async def create_order(self, order: PartnerOrder) -> PartnerOrderResponse:
        data = await self._request("POST", "/Orders", json=order.to_payload())
        response = self._parse_order(data)
        logger.info(f"Created Prodigi order {response.id} for {order.merchant_reference}")
        return response

    async def get_order(self, order_id: str) -> PartnerOrderResponse:
        return self._parse_order(await self._request("GET", f"/Orders/{order_id}"))

    async def get_order_status(self, order_id: str) -> PartnerOrderResponse:
        """The order with its status mapped onto ``OrderStatus`` values."""
        order = await self.get_order(order_id)
        return order.model_copy(update={"status": map_order_status(order.status)})
