"""
Tests: Frame catalog — product expansion, caching, fallback and queries.

Run with:
    pytest order_pricing/tests/test_frame_catalog.py -v
"""

import asyncio

import httpx

from conftest import FakePartnerClient, maintenance_page_client
from order_pricing.models.enums import CatalogSource, FrameSize
from order_pricing.models.errors import PartnerApiError
from order_pricing.services.frame_catalog import (
    FrameCatalog,
    extract_material,
    is_frame_product,
    normalize_frame_color,
    size_category,
)

CANVAS = {
    "sku": "GLOBAL-FRA-CAN-30X40",
    "category": "Wall art",
    "productType": "Framed canvas",
    "color": ["black", "WHT"],
    "size": ["30x40cm"],
    "fullProductHorizontalDimensions": 30,
    "fullProductVerticalDimensions": 40,
    "sizeUnits": "cm",
    "productDepthMm": 38,
    "wrap": ["Black"],
    "basePriceFrom": 2000,
    "priceCurrency": "USD",
    "destinationCountries": ["US", "GB"],
}

FRAMED_PRINT = {
    "sku": "GLOBAL-CFPM-20X24",
    "category": "Wall art",
    "productType": "Framed print",
    "attributes": {"color": ["oak", "gold"], "size": ["20x24in"]},
    "fullProductHorizontalDimensions": 20,
    "fullProductVerticalDimensions": 24,
    "sizeUnits": "in",
    "basePriceFrom": 5000,
    "priceCurrency": "USD",
    "destinationCountries": ["GB"],
}

MUG = {"sku": "GLOBAL-MUG-11OZ", "category": "Homeware", "productType": "Mug", "color": ["white"]}


def _catalog(client) -> FrameCatalog:
    return FrameCatalog(client, cache_ttl_seconds=3600, retail_markup=1.5)


def _partner() -> FakePartnerClient:
    return FakePartnerClient(products=[CANVAS, FRAMED_PRINT, MUG])


class TestProductHelpers:
    def test_frame_detection(self):
        assert is_frame_product(CANVAS)
        assert is_frame_product(FRAMED_PRINT)
        assert not is_frame_product(MUG)
        assert not is_frame_product({"category": "Wall art", "sku": "GLOBAL-FAP-8X10"})

    def test_size_buckets(self):
        assert size_category(20, 25) == FrameSize.SMALL
        assert size_category(30, 40) == FrameSize.MEDIUM
        assert size_category(20, 24, "in") == FrameSize.LARGE
        assert size_category(600, 800, "mm") == FrameSize.EXTRA_LARGE

    def test_color_synonyms(self):
        assert normalize_frame_color(" Light Gray ") == "grey"
        assert normalize_frame_color("OAK") == "natural"
        assert normalize_frame_color("Teal") == "teal"

    def test_material(self):
        assert extract_material(CANVAS) == "canvas"
        assert extract_material(FRAMED_PRINT) == "wood"
        assert extract_material({"sku": "GLOBAL-BAP-8X10"}) == "bamboo"
        assert extract_material({"sku": "X", "attributes": {"material": "Brushed metal"}}) == "metal"


class TestExpansion:
    def test_one_option_per_color(self):
        options = _catalog(_partner()).expand_product(CANVAS)
        assert [option.style for option in options] == ["black", "white"]

        black = options[0]
        assert black.size == FrameSize.MEDIUM
        assert black.size_label == "30x40cm"
        assert black.material == "canvas"
        assert black.price == 30.0
        assert black.dimensions.depth == 3.8
        assert black.wrap_color == "Black"
        assert black.available is True

    def test_availability_requires_us(self):
        options = _catalog(_partner()).expand_product(FRAMED_PRINT)
        assert [option.style for option in options] == ["natural", "gold"]
        assert all(not option.available for option in options)
        assert options[0].price == 75.0

    def test_unmappable_product_skipped(self):
        catalog = _catalog(_partner())
        assert catalog.expand_product({"category": "Frames", "color": ["black"]}) == []
        broken = dict(CANVAS, fullProductHorizontalDimensions="wide")
        assert catalog.expand_product(broken) == []


class TestLoading:
    def test_partner_then_cache(self):
        client = _partner()
        catalog = _catalog(client)

        first = asyncio.run(catalog.load_frame_options())
        assert first.source == CatalogSource.PARTNER
        assert len(first.options) == 4

        second = asyncio.run(catalog.load_frame_options())
        assert second.source == CatalogSource.CACHE
        assert second.options == first.options
        assert client.product_calls == 1

    def test_cache_expiry_and_clear(self):
        client = _partner()
        catalog = _catalog(client)
        asyncio.run(catalog.load_frame_options())

        catalog._cached_at -= 3601
        assert asyncio.run(catalog.load_frame_options()).source == CatalogSource.PARTNER

        catalog.clear_cache()
        assert asyncio.run(catalog.load_frame_options()).source == CatalogSource.PARTNER
        assert client.product_calls == 3

    def test_fallback_not_cached(self):
        client = FakePartnerClient(products_error=httpx.ConnectError("down"))
        catalog = _catalog(client)

        snapshot = asyncio.run(catalog.load_frame_options())
        assert snapshot.source == CatalogSource.FALLBACK
        assert [option.price for option in snapshot.options] == [29.99, 39.99, 59.99, 89.99]
        assert {option.style for option in snapshot.options} == {"black"}

        asyncio.run(catalog.load_frame_options())
        assert client.product_calls == 2

    def test_partner_error_falls_back(self):
        client = FakePartnerClient(products_error=PartnerApiError("Prodigi API 401 Unauthorized", 401, "/products"))
        assert asyncio.run(_catalog(client).load_frame_options()).source == CatalogSource.FALLBACK

    def test_non_json_partner_body_falls_back(self):
        async def load():
            async with maintenance_page_client() as client:
                return await _catalog(client).load_frame_options()

        snapshot = asyncio.run(load())
        assert snapshot.source == CatalogSource.FALLBACK
        assert len(snapshot.options) == 4


class TestQueries:
    def test_combinations(self):
        combinations = asyncio.run(_catalog(_partner()).get_frame_combinations())
        assert set(combinations) == {"black", "white", "natural", "gold"}
        assert combinations["black"]["medium"][0].sku == "GLOBAL-FRA-CAN-30X40"
        assert list(combinations["gold"]) == ["large"]

    def test_colors_and_sizes(self):
        catalog = _catalog(_partner())
        assert asyncio.run(catalog.get_available_colors()) == ["black", "gold", "natural", "white"]
        assert asyncio.run(catalog.get_available_sizes("natural")) == ["large"]
        assert asyncio.run(catalog.get_available_sizes("teal")) == []

    def test_combination_availability(self):
        catalog = _catalog(_partner())
        assert asyncio.run(catalog.is_combination_available("black", "medium"))
        assert not asyncio.run(catalog.is_combination_available("natural", "large"))
        assert not asyncio.run(catalog.is_combination_available("black", "large"))

    def test_stats(self):
        stats = asyncio.run(_catalog(_partner()).get_catalog_stats())
        assert stats.total_products == 4
        assert stats.frame_colors == 4
        assert stats.sizes == 2
        assert stats.price_min == 30.0
        assert stats.price_max == 75.0

    def test_empty_catalog_stats(self):
        stats = asyncio.run(_catalog(FakePartnerClient(products=[])).get_catalog_stats())
        assert stats.total_products == 0
        assert stats.price_max == 0.0
