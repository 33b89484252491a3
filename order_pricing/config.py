"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Order Pricing & Shipping Engine"
    debug: bool = False

    # ── Fulfillment partner (Prodigi) ────────────────────
    prodigi_api_key: str = ""
    prodigi_environment: str = "sandbox"  # "sandbox" | "production"
    prodigi_base_url: str = ""  # overrides the environment URL when set
    prodigi_http_timeout_seconds: float = 15.0

    # ── Pricing ──────────────────────────────────────────
    default_tax_rate: float = 0.08
    default_currency: str = "USD"
    max_line_total: float = 100000.00
    max_shipping_cost: float = 500.00
    free_shipping_threshold: float = 100.00

    # ── Shipping ─────────────────────────────────────────
    shipping_max_attempts: int = 3
    shipping_retry_delay_seconds: float = 1.0
    shipping_timeout_seconds: float = 30.0
    fallback_item_price: float = 35.00  # used when a cart item has no price

    # ── Frame catalog ────────────────────────────────────
    catalog_cache_ttl_seconds: int = 3600
    catalog_retail_markup: float = 1.5

    # ── SKU resolution ───────────────────────────────────
    sku_min_known_alternatives: int = 10
    sku_max_probe_attempts: int = 5

    # ── Exchange rates ───────────────────────────────────
    use_live_exchange_rates: bool = False
    exchange_rate_api_url: str = "https://api.exchangerate-api.com/v4/latest/USD"
    exchange_rate_cache_hours: int = 12

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
