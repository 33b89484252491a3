"""
Frame Catalog — partner products expanded into per-color frame options.

Fetched options are cached in-process for ``catalog_cache_ttl_seconds``.
When the partner catalog cannot be fetched a small fixed set of black
canvas options is served instead (never cached).
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from typing import Any

import httpx

from order_pricing.config import get_settings
from order_pricing.models.enums import CatalogSource, FrameSize
from order_pricing.models.errors import PartnerApiError
from order_pricing.models.schemas import (
    CatalogSnapshot,
    CatalogStats,
    FrameCatalogOption,
    FrameDimensions,
)
from order_pricing.services.currency_service import CurrencyConverter, round2
from order_pricing.services.prodigi_client import PartnerClient

logger = logging.getLogger(__name__)

SIZE_ORDER = [FrameSize.SMALL, FrameSize.MEDIUM, FrameSize.LARGE, FrameSize.EXTRA_LARGE]

COLOR_SYNONYMS = {
    "blk": "black",
    "wht": "white",
    "gray": "grey",
    "light grey": "grey",
    "light gray": "grey",
    "dark grey": "grey",
    "dark gray": "grey",
    "nat": "natural",
    "oak": "natural",
    "walnut": "natural",
    "espresso": "brown",
    "gold fitting": "gold",
    "silver fitting": "silver",
}

FRAME_SKU_MARKERS = ("fra-can", "cfpm", "global-fra")


def _fallback_option(sku: str, size: FrameSize, width: int, height: int, depth: int, price: float):
    return FrameCatalogOption(
        sku=sku,
        size=size,
        size_label=f"{width}x{height}cm",
        style="black",
        material="canvas",
        price=price,
        dimensions=FrameDimensions(width=width, height=height, depth=depth),
        category="Wall art",
        product_type="Framed canvas",
    )


def fallback_options() -> list[FrameCatalogOption]:
    return [
        _fallback_option("GLOBAL-FRA-CAN-20X25-BLK", FrameSize.SMALL, 20, 25, 2, 29.99),
        _fallback_option("GLOBAL-FRA-CAN-30X40-BLK", FrameSize.MEDIUM, 30, 40, 2, 39.99),
        _fallback_option("GLOBAL-FRA-CAN-40X50-BLK", FrameSize.LARGE, 40, 50, 3, 59.99),
        _fallback_option("GLOBAL-FRA-CAN-50X70-BLK", FrameSize.EXTRA_LARGE, 50, 70, 3, 89.99),
    ]


# ── Product helpers ──────────────────────────────────────


def _text(value: Any) -> str:
    return value.lower() if isinstance(value, str) else ""


def _list_attr(product: Mapping[str, Any], key: str) -> list:
    value = product.get(key)
    if isinstance(value, list) and value:
        return value
    attributes = product.get("attributes")
    if isinstance(attributes, Mapping):
        nested = attributes.get(key)
        if isinstance(nested, list) and nested:
            return nested
    return []


def product_colors(product: Mapping[str, Any]) -> list[str]:
    for key in ("color", "frameColour"):
        value = product.get(key)
        if isinstance(value, list) and value:
            return [str(c) for c in value]
    return [str(c) for c in _list_attr(product, "color")]


def is_frame_product(product: Mapping[str, Any]) -> bool:
    category = _text(product.get("category"))
    product_type = _text(product.get("productType"))
    sku = _text(product.get("sku"))

    frame_like = (
        "wall art" in category
        or "frame" in category
        or "frame" in product_type
        or any(marker in sku for marker in FRAME_SKU_MARKERS)
    )
    return frame_like and bool(product_colors(product))


def normalize_frame_color(color: str) -> str:
    normalized = color.lower().strip()
    return COLOR_SYNONYMS.get(normalized, normalized)


def size_category(width: float, height: float, unit: str | None = "cm") -> FrameSize:
    """Bucket by diagonal in centimetres."""
    if unit == "in":
        width, height = width * 2.54, height * 2.54
    elif unit == "mm":
        width, height = width / 10, height / 10

    diagonal = math.sqrt(width * width + height * height)
    if diagonal < 45:
        return FrameSize.SMALL
    if diagonal < 70:
        return FrameSize.MEDIUM
    if diagonal < 100:
        return FrameSize.LARGE
    return FrameSize.EXTRA_LARGE


def extract_material(product: Mapping[str, Any]) -> str:
    sku = _text(product.get("sku"))
    product_type = _text(product.get("productType"))
    paper_types = product.get("paperType") or []
    paper_type = _text(paper_types[0]) if isinstance(paper_types, list) and paper_types else ""
    attributes = product.get("attributes") if isinstance(product.get("attributes"), Mapping) else {}
    frames = product.get("frame") or []
    material = _text(attributes.get("material")) or (
        _text(frames[0]) if isinstance(frames, list) and frames else ""
    )

    if "fra-can" in sku or "slimcan" in sku or "canvas" in product_type or "canvas" in paper_type:
        return "canvas"
    if "metal" in product_type or "metal" in material or "metal" in sku:
        return "metal"
    if "acrylic" in product_type or "acrylic" in material or "acry" in sku:
        return "acrylic"
    if "bamboo" in product_type or "bamboo" in material or "bamboo" in sku or "bap" in sku:
        return "bamboo"
    if "plastic" in product_type or "plastic" in material:
        return "plastic"
    return "wood"


def is_product_available(product: Mapping[str, Any]) -> bool:
    destinations = product.get("destinationCountries") or []
    has_size = bool(_list_attr(product, "size")) or bool(
        product.get("fullProductHorizontalDimensions") and product.get("fullProductVerticalDimensions")
    )
    return "US" in destinations and bool(product_colors(product)) and has_size


class FrameCatalog:
    """Per-color frame options built from the partner catalog."""

    def __init__(
        self,
        partner_client: PartnerClient,
        cache_ttl_seconds: float | None = None,
        retail_markup: float | None = None,
        converter: CurrencyConverter | None = None,
    ):
        settings = get_settings()
        self.partner_client = partner_client
        self.cache_ttl_seconds = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.catalog_cache_ttl_seconds
        )
        self.retail_markup = retail_markup if retail_markup is not None else settings.catalog_retail_markup
        self.converter = converter or CurrencyConverter()
        self._cache: CatalogSnapshot | None = None
        self._cached_at: float = 0.0

    # ── Cache ────────────────────────────────────────────

    def _cache_valid(self) -> bool:
        return self._cache is not None and time.monotonic() - self._cached_at < self.cache_ttl_seconds

    def clear_cache(self) -> None:
        self._cache = None
        self._cached_at = 0.0
        logger.info("Frame catalog cache cleared")

    # ── Mapping ──────────────────────────────────────────

    def _retail_price(self, base_price: Any, currency: Any) -> float:
        """Partner prices are minor units in the partner's currency."""
        try:
            major = float(base_price) / 100
        except (TypeError, ValueError):
            return 0.0
        usd = self.converter.convert(major, str(currency or "USD"), "USD")
        return round2(usd * self.retail_markup)

    def _to_option(self, product: Mapping[str, Any], color: str) -> FrameCatalogOption:
        width = float(product.get("fullProductHorizontalDimensions") or 0)
        height = float(product.get("fullProductVerticalDimensions") or 0)
        unit = product.get("sizeUnits") or "cm"
        sizes = _list_attr(product, "size")
        depth_mm = product.get("productDepthMm")

        def first(key: str) -> str | None:
            values = _list_attr(product, key)
            return str(values[0]) if values else None

        return FrameCatalogOption(
            sku=product["sku"],
            size=size_category(width, height, unit),
            size_label=str(sizes[0]) if sizes else f"{width:g}x{height:g}",
            style=normalize_frame_color(color),
            material=extract_material(product),
            price=self._retail_price(product.get("basePriceFrom"), product.get("priceCurrency")),
            dimensions=FrameDimensions(
                width=width,
                height=height,
                depth=float(depth_mm) / 10 if depth_mm else 3,
                unit=unit,
            ),
            category=product.get("category") or "",
            product_type=product.get("productType") or "",
            wrap_color=first("wrap"),
            glaze=first("glaze"),
            mount=first("mount"),
            available=is_product_available(product),
        )

    def expand_product(self, product: Mapping[str, Any]) -> list[FrameCatalogOption]:
        """One option per color the product is offered in."""
        options = []
        for color in product_colors(product):
            try:
                options.append(self._to_option(product, color))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unmappable product {product.get('sku')}: {e}")
        return options

    # ── Loading ──────────────────────────────────────────

    async def load_frame_options(self) -> CatalogSnapshot:
        if self._cache_valid():
            logger.debug(f"Using cached frame options: {len(self._cache.options)} options")
            return self._cache.model_copy(update={"source": CatalogSource.CACHE})

        try:
            products = await self.partner_client.get_all_products()
        except (httpx.HTTPError, PartnerApiError) as e:
            logger.warning(f"Frame catalog fetch failed, serving fallback options: {e}")
            return CatalogSnapshot(source=CatalogSource.FALLBACK, options=fallback_options())

        frames = [p for p in products if isinstance(p, Mapping) and is_frame_product(p)]
        options = [option for product in frames for option in self.expand_product(product)]
        logger.info(f"Expanded {len(frames)} frame products into {len(options)} options")

        snapshot = CatalogSnapshot(source=CatalogSource.PARTNER, options=options)
        self._cache = snapshot
        self._cached_at = time.monotonic()
        return snapshot

    async def get_frame_options(self) -> list[FrameCatalogOption]:
        return (await self.load_frame_options()).options

    async def get_frame_combinations(self) -> dict[str, dict[str, list[FrameCatalogOption]]]:
        """color → size → options"""
        combinations: dict[str, dict[str, list[FrameCatalogOption]]] = {}
        for option in await self.get_frame_options():
            combinations.setdefault(option.style, {}).setdefault(option.size.value, []).append(option)
        return combinations

    async def get_available_colors(self) -> list[str]:
        return sorted({option.style for option in await self.get_frame_options()})

    async def get_available_sizes(self, color: str) -> list[str]:
        sizes = {option.size for option in await self.get_frame_options() if option.style == color}
        return [size.value for size in SIZE_ORDER if size in sizes]

    async def is_combination_available(self, color: str, size: str) -> bool:
        return any(
            option.style == color and option.size.value == size and option.available
            for option in await self.get_frame_options()
        )

    async def get_catalog_stats(self) -> CatalogStats:
        options = await self.get_frame_options()
        if not options:
            return CatalogStats()
        prices = [option.price for option in options]
        return CatalogStats(
            total_products=len(options),
            frame_colors=len({option.style for option in options}),
            sizes=len({option.size for option in options}),
            combinations=len(options),
            price_min=min(prices),
            price_max=max(prices),
        )
