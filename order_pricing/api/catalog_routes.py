"""
Catalog & SKU routes.

Routes:
  GET  /api/catalog/frames              → Per-color frame options (tagged source)
  GET  /api/catalog/combinations        → color → size → options
  GET  /api/catalog/stats               → Option / color / size counts and price range
  POST /api/catalog/clear-cache         → Drop the cached catalog
  GET  /api/sku/resolve                 → A SKU the partner accepts
  GET  /api/sku/{sku}/alternatives      → Prioritized replacements for a SKU
  POST /api/sku/reset                   → Clear failed / alternative SKU caches
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from order_pricing.api.dependencies import get_frame_catalog, get_sku_resolver
from order_pricing.models.schemas import CatalogSnapshot, CatalogStats, SkuResolution
from order_pricing.services.frame_catalog import FrameCatalog
from order_pricing.services.sku_resolver import SkuResolver

logger = logging.getLogger(__name__)

catalog_router = APIRouter()
sku_router = APIRouter()


# ── Catalog ──────────────────────────────────────────────

@catalog_router.get("/frames", response_model=CatalogSnapshot)
async def frame_options(catalog: FrameCatalog = Depends(get_frame_catalog)):
    return await catalog.load_frame_options()


@catalog_router.get("/combinations")
async def frame_combinations(catalog: FrameCatalog = Depends(get_frame_catalog)):
    return await catalog.get_frame_combinations()


@catalog_router.get("/stats", response_model=CatalogStats)
async def catalog_stats(catalog: FrameCatalog = Depends(get_frame_catalog)):
    return await catalog.get_catalog_stats()


@catalog_router.post("/clear-cache")
async def clear_catalog_cache(catalog: FrameCatalog = Depends(get_frame_catalog)):
    catalog.clear_cache()
    return {"status": "cleared"}


# ── SKU resolution ───────────────────────────────────────

@sku_router.get("/resolve", response_model=SkuResolution)
async def resolve_sku(
    sku: Optional[str] = None,
    size: Optional[str] = None,
    style: Optional[str] = None,
    material: Optional[str] = None,
    resolver: SkuResolver = Depends(get_sku_resolver),
):
    """Resolve ``sku`` directly, or the SKU mapped from size/style/material."""
    if not sku:
        if not (size and style and material):
            raise HTTPException(
                status_code=400, detail="Provide either sku or size, style and material"
            )
        sku = resolver.get_product_sku(size, style, material)
    return await resolver.resolve_sku(sku)


@sku_router.get("/{sku}/alternatives")
async def sku_alternatives(sku: str, resolver: SkuResolver = Depends(get_sku_resolver)):
    return {"sku": sku, "alternatives": await resolver.find_alternative_skus(sku)}


@sku_router.post("/reset")
async def reset_sku_caches(resolver: SkuResolver = Depends(get_sku_resolver)):
    resolver.reset()
    return {"status": "cleared"}
