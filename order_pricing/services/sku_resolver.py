"""
SKU Resolver — maps frame attributes to partner SKUs and recovers from
SKUs the partner rejects.

Failed SKUs and discovered replacements live in a ``SkuResolutionState``
owned by the resolver.  They never expire; ``reset()`` clears both.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from types import MappingProxyType

import httpx
from pydantic import BaseModel, Field

from order_pricing.config import get_settings
from order_pricing.models.enums import FrameSize, SkuResolutionSource
from order_pricing.models.errors import PartnerApiError
from order_pricing.models.schemas import SkuResolution
from order_pricing.services.prodigi_client import PartnerClient

logger = logging.getLogger(__name__)

SIZE_TOKEN_PATTERN = re.compile(r"(\d+)[xX](\d+)")

PRIMARY_FRAME_COLORS = ["black", "white", "natural", "gold", "silver"]


def extract_size_token(sku: str) -> str | None:
    """``"PRODIGI-11x14-B-W"`` → ``"11X14"``."""
    match = SIZE_TOKEN_PATTERN.search(sku or "")
    if not match:
        return None
    return f"{match.group(1)}X{match.group(2)}"


def _default_product_map() -> dict[str, str]:
    size_skus = {
        FrameSize.SMALL: "GLOBAL-CAN-10x10",
        FrameSize.MEDIUM: "GLOBAL-CFPM-16X20",
        FrameSize.LARGE: "GLOBAL-FAP-16X24",
        FrameSize.EXTRA_LARGE: "GLOBAL-FRA-CAN-30X40",
    }
    return {
        f"{size.value}-{color}-wood": sku
        for size, sku in size_skus.items()
        for color in PRIMARY_FRAME_COLORS
    }


class SkuCatalogConfig(BaseModel):
    """Partner-specific SKU data.  Replace per instance as the catalog changes."""
    product_map: dict[str, str] = Field(default_factory=_default_product_map)
    default_sku: str = "GLOBAL-CFPM-16X20"
    known_working: dict[str, list[str]] = {
        "canvas": ["GLOBAL-CAN-10x10", "GLOBAL-CAN-12X16", "GLOBAL-CAN-16X20"],
        "framed_canvas_mount": ["GLOBAL-CFPM-11X14", "GLOBAL-CFPM-16X20"],
        "framed_art_print": [
            "GLOBAL-FAP-8X10", "GLOBAL-FAP-11X14", "GLOBAL-FAP-16X24", "GLOBAL-FAP-16X20",
        ],
        "framed_canvas": ["GLOBAL-FRA-CAN-30X40", "GLOBAL-FRA-CAN-20X25"],
        "frame": ["GLOBAL-FRAME-8X10", "GLOBAL-FRAME-11X14"],
        "print": ["GLOBAL-PRINT-11X14"],
    }
    # always offered, whatever the failed SKU's size
    anchor_skus: list[str] = [
        "GLOBAL-CAN-10x10",
        "GLOBAL-CFPM-16X20",
        "GLOBAL-FAP-16X24",
        "GLOBAL-FRA-CAN-30X40",
    ]
    known_prefixes: list[str] = ["GLOBAL-CAN-", "GLOBAL-CFPM-", "GLOBAL-FAP-", "GLOBAL-FRA-CAN-"]
    guess_templates: list[str] = [
        "GLOBAL-{size}-{color}-{material}",
        "GLOBAL-FRAME-{size}-{color}",
        "GLOBAL-PRINT-{size}-{material}",
    ]
    guess_colors: list[str] = ["BLACK", "WHITE", "NATURAL"]
    guess_materials: list[str] = ["WOOD", "CANVAS"]
    default_guess_size: str = "16X20"


class SkuResolutionState:
    """Failed SKUs and their cached replacements."""

    def __init__(self):
        self._failed: set[str] = set()
        self._alternatives: dict[str, str] = {}

    def mark_failed(self, sku: str) -> None:
        self._failed.add(sku)

    def is_failed(self, sku: str) -> bool:
        return sku in self._failed

    def remember_alternative(self, failed_sku: str, alternative: str) -> None:
        self._alternatives[failed_sku] = alternative

    def cached_alternative(self, failed_sku: str) -> str | None:
        return self._alternatives.get(failed_sku)

    @property
    def failed_skus(self) -> frozenset[str]:
        return frozenset(self._failed)

    @property
    def alternative_skus(self) -> Mapping[str, str]:
        return MappingProxyType(self._alternatives)

    def reset(self) -> None:
        self._failed.clear()
        self._alternatives.clear()


class SkuResolver:
    """Attribute → SKU lookup plus failure-driven alternative discovery."""

    def __init__(
        self,
        partner_client: PartnerClient,
        config: SkuCatalogConfig | None = None,
        state: SkuResolutionState | None = None,
        min_known_alternatives: int | None = None,
        max_probe_attempts: int | None = None,
    ):
        settings = get_settings()
        self.partner_client = partner_client
        self.config = config or SkuCatalogConfig()
        self.state = state or SkuResolutionState()
        self.min_known_alternatives = (
            min_known_alternatives
            if min_known_alternatives is not None
            else settings.sku_min_known_alternatives
        )
        self.max_probe_attempts = (
            max_probe_attempts if max_probe_attempts is not None else settings.sku_max_probe_attempts
        )

    # ── Lookup ───────────────────────────────────────────

    def get_product_sku(self, size: str, style: str, material: str) -> str:
        size_value = size.value if isinstance(size, FrameSize) else size
        key = f"{size_value}-{style}-{material}"
        return self.config.product_map.get(key, self.config.default_sku)

    def get_product_attributes(self, style: str) -> dict[str, str]:
        if style in PRIMARY_FRAME_COLORS:
            return {"color": style}
        return {}

    # ── Alternatives ─────────────────────────────────────

    def _known_candidates(self, size_token: str | None) -> list[str]:
        known = [sku for skus in self.config.known_working.values() for sku in skus]
        if size_token is None:
            return known
        matching = [sku for sku in known if extract_size_token(sku) == size_token]
        return matching + self.config.anchor_skus

    def _generated_candidates(self, size_token: str | None) -> list[str]:
        size = size_token or self.config.default_guess_size
        generated = []
        for template in self.config.guess_templates:
            for color in self.config.guess_colors:
                for material in self.config.guess_materials:
                    generated.append(template.format(size=size, color=color, material=material))
        return generated

    async def _search_candidates(self, failed_sku: str, size_token: str | None) -> list[str]:
        criteria = {"size": size_token} if size_token else {"sku": failed_sku}
        try:
            products = await self.partner_client.search_products(criteria)
        except (httpx.HTTPError, PartnerApiError) as e:
            logger.warning(f"Partner product search failed for {failed_sku}, using static alternatives: {e}")
            return []
        return [
            product["sku"]
            for product in products
            if isinstance(product, Mapping) and product.get("sku")
        ]

    async def find_alternative_skus(self, failed_sku: str) -> list[str]:
        """
        Candidate replacements for a rejected SKU, known-working patterns
        first.  Never contains ``failed_sku`` or duplicates; never raises on
        partner errors.
        """
        size_token = extract_size_token(failed_sku)
        known = self._known_candidates(size_token)
        candidates = known + await self._search_candidates(failed_sku, size_token)

        if len(set(known)) < self.min_known_alternatives:
            candidates += self._generated_candidates(size_token)

        unique: list[str] = []
        seen = {failed_sku.upper()}
        for sku in candidates:
            if sku.upper() not in seen:
                seen.add(sku.upper())
                unique.append(sku)

        logger.debug(f"Found {len(unique)} alternative(s) for {failed_sku}")
        return self.prioritize_alternatives(unique, failed_sku)

    def prioritize_alternatives(self, alternatives: list[str], failed_sku: str) -> list[str]:
        """Stable sort: known prefixes, then same size token, then the rest."""
        size_token = extract_size_token(failed_sku)

        def rank(sku: str) -> int:
            if any(sku.startswith(prefix) for prefix in self.config.known_prefixes):
                return 0
            if size_token and extract_size_token(sku) == size_token:
                return 1
            return 2

        return sorted(alternatives, key=rank)

    # ── Resolution ───────────────────────────────────────

    async def _probe(self, sku: str) -> bool:
        try:
            await self.partner_client.get_product_details(sku)
            return True
        except (httpx.HTTPError, PartnerApiError) as e:
            logger.debug(f"SKU probe failed for {sku}: {e}")
            return False

    def record_failure(self, sku: str) -> None:
        self.state.mark_failed(sku)

    async def resolve_sku(self, sku: str) -> SkuResolution:
        """A SKU the partner accepts.  Falls back to the default SKU; never raises."""
        cached = self.state.cached_alternative(sku)
        if cached:
            return SkuResolution(requested_sku=sku, sku=cached, source=SkuResolutionSource.CACHED)

        if not self.state.is_failed(sku):
            if await self._probe(sku):
                return SkuResolution(requested_sku=sku, sku=sku, source=SkuResolutionSource.ORIGINAL)
            self.state.mark_failed(sku)

        attempts = 0
        for alternative in await self.find_alternative_skus(sku):
            if self.state.is_failed(alternative):
                continue
            if attempts >= self.max_probe_attempts:
                break
            attempts += 1
            if await self._probe(alternative):
                self.state.remember_alternative(sku, alternative)
                logger.info(f"Resolved failed SKU {sku} → {alternative}")
                return SkuResolution(
                    requested_sku=sku, sku=alternative, source=SkuResolutionSource.ALTERNATIVE
                )
            self.state.mark_failed(alternative)

        logger.warning(f"No working alternative for {sku}, using default {self.config.default_sku}")
        return SkuResolution(
            requested_sku=sku, sku=self.config.default_sku, source=SkuResolutionSource.DEFAULT
        )

    def reset(self) -> None:
        self.state.reset()
        logger.info("SKU resolution caches cleared")
