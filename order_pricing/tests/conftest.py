"""Shared fixtures: an in-memory stand-in for the print partner."""

import asyncio
import uuid

import httpx
import pytest

from order_pricing.models.errors import PartnerApiError
from order_pricing.models.schemas import PartnerOrderResponse, PartnerShippingCost
from order_pricing.services.prodigi_client import ProdigiClient


class FakePartnerClient:
    """
    Implements the partner contract in memory.

    ``shipping_failures`` makes the first N quote calls fail;
    ``valid_skus`` is the set ``get_product_details`` accepts (None = all).
    """

    def __init__(
        self,
        shipping=None,
        shipping_failures=0,
        shipping_delay=0.0,
        products=None,
        products_error=None,
        valid_skus=None,
        search_results=None,
        search_error=None,
        order_error=None,
    ):
        self.shipping = shipping if shipping is not None else PartnerShippingCost(
            cost=12.5, currency="USD", estimated_days=7, service_name="Standard"
        )
        self.shipping_failures = shipping_failures
        self.shipping_delay = shipping_delay
        self.products = products or []
        self.products_error = products_error
        self.valid_skus = valid_skus
        self.search_results = search_results or []
        self.search_error = search_error
        self.order_error = order_error

        self.shipping_calls = 0
        self.product_calls = 0
        self.probed_skus = []
        self.search_criteria = []
        self.orders = []

    async def calculate_shipping_cost(self, items, address):
        self.shipping_calls += 1
        if self.shipping_delay:
            await asyncio.sleep(self.shipping_delay)
        if self.shipping_calls <= self.shipping_failures:
            raise PartnerApiError("Prodigi API error: 503 Service Unavailable", 503, "/quotes")
        return self.shipping

    async def get_all_products(self, category=None):
        self.product_calls += 1
        if self.products_error:
            raise self.products_error
        return self.products

    async def get_product_details(self, sku):
        self.probed_skus.append(sku)
        if self.valid_skus is not None and sku not in self.valid_skus:
            raise PartnerApiError(f"Prodigi API 404 Not Found: /products/{sku}", 404, f"/products/{sku}")
        return {"sku": sku}

    async def search_products(self, criteria):
        self.search_criteria.append(dict(criteria))
        if self.search_error:
            raise self.search_error
        return self.search_results

    async def create_order(self, order):
        self.orders.append(order)
        if self.order_error:
            raise self.order_error
        return PartnerOrderResponse(id="ord_123", status="InProgress")


def maintenance_page_client() -> ProdigiClient:
    """A real client whose partner answers every call with a 200 HTML page."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>", headers={"Content-Type": "text/html"})

    return ProdigiClient(api_key="test-key", environment="sandbox", transport=httpx.MockTransport(handler))


def make_item(price=29.99, quantity=1, sku="GLOBAL-CFPM-16X20", **extra):
    """A valid pricing item dict."""
    return {"id": str(uuid.uuid4()), "sku": sku, "price": price, "quantity": quantity, **extra}


@pytest.fixture
def partner():
    return FakePartnerClient()


@pytest.fixture
def us_address():
    return {"country_code": "US", "postal_code": "94103", "city": "San Francisco"}
