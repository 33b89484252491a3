"""
Shipping Service — multi-provider quote resolution with retry, timeout and
an always-available fallback estimate.

Per calculation:

    START → VALIDATE → QUOTE_ATTEMPT(n) → [SUCCESS | RETRY | FALLBACK] → DONE

``calculate_shipping`` surfaces validation and provider failures.
``calculate_shipping_guaranteed`` never raises: when no real quote can be
obtained it returns an ``EstimatedShipping`` computed locally.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ValidationError

from order_pricing.config import get_settings
from order_pricing.models.errors import (
    ShippingServiceError,
    ShippingTimeoutError,
    ShippingValidationError,
)
from order_pricing.models.schemas import (
    DaysRange,
    EstimatedShipping,
    PartnerShippingCost,
    QuotedShipping,
    ShippingAddress,
    ShippingItem,
    ShippingOptions,
    ShippingQuote,
)
from order_pricing.services.currency_service import (
    CurrencyConverter,
    currency_for_country,
    format_money,
)
from order_pricing.services.normalization import normalize_address, normalize_shipping_item
from order_pricing.services.pricing_service import address_rule_violation
from order_pricing.services.prodigi_client import PartnerClient

logger = logging.getLogger(__name__)

SUPPORTED_COUNTRIES = [
    "US", "CA", "GB", "AU", "DE", "FR", "IT", "ES", "NL", "BE",
    "AT", "CH", "SE", "NO", "DK", "FI", "IE", "PT", "LU", "JP",
]

_OPTION_ALIASES = {"trackingRequired": "tracking_required"}


class FallbackPricing(BaseModel):
    """Rate card for the local estimate.  All money values are USD."""
    base_rate: float = 8.99
    country_multipliers: dict[str, float] = {
        "US": 1.0,
        "CA": 1.3,
        "GB": 1.8,
        "AU": 2.2,
        "DE": 1.9,
        "FR": 1.9,
        "IT": 2.0,
        "ES": 1.9,
    }
    default_multiplier: float = 2.5
    additional_item_surcharge: float = 3.99
    large_item_marker: str = "large"
    large_item_surcharge: float = 5.99
    expedited_multiplier: float = 1.8
    insurance_minimum: float = 2.99
    insurance_rate: float = 0.02
    express_multiplier: float = 1.6
    express_days_factor: float = 0.6
    minimum_days: int = 4
    # (min, max) delivery days per country, keyed "expedited" / "standard"
    delivery_days: dict[str, dict[str, tuple[int, int]]] = {
        "US": {"expedited": (4, 6), "standard": (5, 8)},
        "CA": {"expedited": (5, 7), "standard": (7, 12)},
        "GB": {"expedited": (5, 7), "standard": (7, 12)},
    }
    default_delivery_days: dict[str, tuple[int, int]] = {
        "expedited": (7, 10),
        "standard": (10, 15),
    }


def _discard_late_result(task: asyncio.Future) -> None:
    # Retrieve the outcome so a late failure is not reported as unhandled.
    if not task.cancelled():
        task.exception()


def score_quote(quote: ShippingQuote) -> float:
    """Higher is better: cheap, fast, tracked, insured."""
    cost_score = max(0.0, 100 - quote.cost)
    speed_score = max(0, 20 - quote.estimated_days) * 2
    features_score = (10 if quote.tracking_available else 0) + (5 if quote.insurance_included else 0)
    return cost_score + speed_score + features_score


def select_recommended_quote(quotes: list[ShippingQuote]) -> ShippingQuote:
    if len(quotes) == 1:
        return quotes[0]
    # max() keeps the first of equally scored quotes
    return max(quotes, key=score_quote)


class ShippingService:
    """
    Resolves shipping quotes for a cart and destination.

    ``providers`` maps a provider name to a partner client; by default the
    single ``partner_client`` is registered as ``"prodigi"``.
    """

    def __init__(
        self,
        partner_client: PartnerClient | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        timeout: float | None = None,
        free_shipping_threshold: float | None = None,
        fallback_item_price: float | None = None,
        fallback_pricing: FallbackPricing | None = None,
        converter: CurrencyConverter | None = None,
        providers: dict[str, PartnerClient] | None = None,
    ):
        settings = get_settings()
        self.max_attempts = max_attempts if max_attempts is not None else settings.shipping_max_attempts
        self.retry_delay = retry_delay if retry_delay is not None else settings.shipping_retry_delay_seconds
        self.timeout = timeout if timeout is not None else settings.shipping_timeout_seconds
        self.free_shipping_threshold = (
            free_shipping_threshold
            if free_shipping_threshold is not None
            else settings.free_shipping_threshold
        )
        self.fallback_item_price = (
            fallback_item_price if fallback_item_price is not None else settings.fallback_item_price
        )
        self.fallback_pricing = fallback_pricing or FallbackPricing()
        self.converter = converter or CurrencyConverter()

        if providers is None:
            providers = {"prodigi": partner_client} if partner_client is not None else {}
        self.providers = providers

    # ── Validation ───────────────────────────────────────

    def _validate_items(self, items: Any) -> list[ShippingItem]:
        if items is not None and not isinstance(items, (list, tuple)):
            raise ShippingValidationError("Items must be a list", {"items": repr(items)})
        if not items:
            raise ShippingValidationError("Items array cannot be empty")

        validated = []
        for index, raw in enumerate(items):
            if isinstance(raw, ShippingItem):
                validated.append(raw)
                continue
            try:
                validated.append(ShippingItem.model_validate(normalize_shipping_item(raw)))
            except ValidationError as e:
                raise ShippingValidationError(
                    f"Invalid item at index {index}",
                    {"index": index, "item": raw, "errors": [err["msg"] for err in e.errors()]},
                ) from e
        return validated

    def _validate_options(self, options: Any) -> ShippingOptions:
        if options is None:
            return ShippingOptions()
        if isinstance(options, ShippingOptions):
            return options
        if not isinstance(options, Mapping):
            raise ShippingValidationError("Invalid shipping options", {"options": repr(options)})

        data = {_OPTION_ALIASES.get(key, key): value for key, value in options.items()}
        try:
            return ShippingOptions.model_validate(data)
        except ValidationError as e:
            raise ShippingValidationError(
                "Invalid shipping options",
                {"options": dict(options), "errors": [err["msg"] for err in e.errors()]},
            ) from e

    def validate_shipping_address(self, address: Any) -> ShippingAddress:
        """Return the canonical address, or raise ShippingValidationError."""
        canonical = normalize_address(address)
        problem = address_rule_violation(canonical)
        if problem:
            raise ShippingValidationError(problem, {"address": canonical.model_dump()})
        return canonical

    def validate_shipping_request(
        self, items: Any, address: Any, options: Any
    ) -> tuple[list[ShippingItem], ShippingAddress, ShippingOptions]:
        validated_items = self._validate_items(items)
        canonical = self.validate_shipping_address(address)
        validated_options = self._validate_options(options)
        return validated_items, canonical, validated_options

    # ── Partner calls ────────────────────────────────────

    async def _call_with_timeout(
        self,
        provider: str,
        client: PartnerClient,
        items: list[dict[str, Any]],
        address: ShippingAddress,
    ) -> Any:
        task = asyncio.ensure_future(client.calculate_shipping_cost(items, address))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            # The request keeps running; whatever it eventually returns is dropped.
            task.add_done_callback(_discard_late_result)
            raise ShippingTimeoutError(provider, self.timeout) from None

    async def _with_retry(self, provider: str, call) -> Any:
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except Exception as e:
                last_error = e
                if attempt >= self.max_attempts:
                    break
                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    f"[{provider}] Quote attempt {attempt}/{self.max_attempts} failed: {e} "
                    f"(retrying in {delay:g}s)"
                )
                await asyncio.sleep(delay)

        raise ShippingServiceError(
            f"Failed after {self.max_attempts} attempts",
            provider,
            {"error": str(last_error), "attempts": self.max_attempts},
        )

    async def _get_provider_quote(
        self,
        provider: str,
        client: PartnerClient,
        items: list[ShippingItem],
        address: ShippingAddress,
        options: ShippingOptions,
    ) -> ShippingQuote:
        partner_items = [
            {"sku": item.sku, "quantity": item.quantity, "attributes": item.attributes or {}}
            for item in items
        ]
        raw = await self._with_retry(
            provider, lambda: self._call_with_timeout(provider, client, partner_items, address)
        )

        try:
            result = raw if isinstance(raw, PartnerShippingCost) else PartnerShippingCost.model_validate(raw)
        except ValidationError as e:
            raise ShippingServiceError(
                "Invalid shipping response",
                provider,
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e

        logger.info(
            f"[{provider}] Quoted {result.cost} {result.currency} "
            f"({result.service_name}, {result.estimated_days} days)"
        )
        return ShippingQuote(
            carrier=provider.title(),
            service=result.service_name,
            cost=result.cost,
            currency=result.currency,
            estimated_days=result.estimated_days,
            estimated_days_range=result.estimated_days_range,
            tracking_available=result.tracking_available is not False,
            insurance_included=options.insurance,
            signature_required=options.signature,
        )

    async def _get_quotes(
        self, items: list[ShippingItem], address: ShippingAddress, options: ShippingOptions
    ) -> list[tuple[str, ShippingQuote]]:
        if not self.providers:
            raise ShippingServiceError("No shipping providers configured", "all_providers")

        quotes: list[tuple[str, ShippingQuote]] = []
        errors: dict[str, ShippingServiceError] = {}
        for provider, client in self.providers.items():
            try:
                quotes.append((provider, await self._get_provider_quote(provider, client, items, address, options)))
            except ShippingServiceError as e:
                logger.warning(f"[{provider}] Shipping calculation failed: {e}")
                errors[provider] = e

        if quotes:
            return quotes
        if len(errors) == 1:
            raise next(iter(errors.values()))
        raise ShippingServiceError(
            "All shipping providers failed",
            "all_providers",
            {"errors": {provider: e.to_dict() for provider, e in errors.items()}},
        )

    # ── Public API ───────────────────────────────────────

    async def calculate_shipping(
        self,
        items: Any,
        address: Any,
        options: Any = None,
    ) -> QuotedShipping:
        """
        Real quotes only.  Free shipping is never applied here; the partner's
        cost is returned and ``free_shipping_threshold`` is reported.
        """
        validated_items, canonical, validated_options = self.validate_shipping_request(
            items, address, options
        )
        provider_quotes = await self._get_quotes(validated_items, canonical, validated_options)

        quotes = [quote for _, quote in provider_quotes]
        recommended = select_recommended_quote(quotes)
        provider = next(name for name, quote in provider_quotes if quote is recommended)

        return QuotedShipping(
            quotes=sorted(quotes, key=lambda q: q.cost),
            recommended=recommended,
            free_shipping_available=False,
            free_shipping_threshold=self.free_shipping_threshold,
            provider=provider,
        )

    async def calculate_shipping_guaranteed(
        self,
        items: Any,
        address: Any,
        options: Any = None,
        address_validated: bool = False,
    ) -> QuotedShipping | EstimatedShipping:
        """Never raises: falls back to a local estimate on any failure."""
        try:
            result = await self.calculate_shipping(items, address, options)
            return result.model_copy(update={"address_validated": address_validated})
        except Exception as e:
            logger.warning(f"Primary shipping calculation failed, using intelligent fallback: {e}")
            estimate = self.calculate_fallback(items, address, options)
            return estimate.model_copy(
                update={"address_validated": address_validated, "fallback_reason": str(e)}
            )

    # ── Fallback estimate ────────────────────────────────

    def _lenient_items(self, items: Any) -> list[tuple[str, int, float | None]]:
        """(sku, quantity, price) for whatever parts of ``items`` are usable."""
        if not isinstance(items, (list, tuple)):
            return []
        parsed = []
        for raw in items:
            if isinstance(raw, ShippingItem):
                parsed.append((raw.sku, raw.quantity, raw.price))
                continue
            data = normalize_shipping_item(raw)
            if not isinstance(data, Mapping):
                continue
            try:
                quantity = max(1, int(data.get("quantity") or 1))
            except (TypeError, ValueError, OverflowError):
                quantity = 1
            try:
                price = float(data["price"]) if data.get("price") is not None else None
            except (TypeError, ValueError):
                price = None
            if price is not None and (not math.isfinite(price) or price < 0):
                price = None
            parsed.append((str(data.get("sku") or ""), quantity, price))
        return parsed

    @staticmethod
    def _lenient_country(address: Any) -> str:
        try:
            return normalize_address(address).country_code
        except (ShippingValidationError, ValidationError):
            return ""

    @staticmethod
    def _lenient_options(options: Any) -> ShippingOptions:
        if isinstance(options, ShippingOptions):
            return options
        if not isinstance(options, Mapping):
            return ShippingOptions()
        data = {_OPTION_ALIASES.get(key, key): value for key, value in options.items()}
        return ShippingOptions(
            expedited=data.get("expedited") is True,
            insurance=data.get("insurance") is True,
            signature=data.get("signature") is True,
            tracking_required=data.get("tracking_required") is not False,
        )

    def calculate_fallback(self, items: Any, address: Any, options: Any = None) -> EstimatedShipping:
        """
        Location and quantity based estimate.  Tolerates malformed input:
        unusable items are skipped and an unknown country gets the default
        multiplier.
        """
        rates = self.fallback_pricing
        parsed = self._lenient_items(items)
        country = self._lenient_country(address)
        opts = self._lenient_options(options)

        currency = currency_for_country(country)
        subtotal = sum(
            quantity * (price if price is not None else self.fallback_item_price)
            for _, quantity, price in parsed
        )
        total_quantity = sum(quantity for _, quantity, _ in parsed)

        base_cost = rates.base_rate * rates.country_multipliers.get(country, rates.default_multiplier)
        if total_quantity > 1:
            base_cost += (total_quantity - 1) * rates.additional_item_surcharge
        if any(rates.large_item_marker in sku.lower() for sku, _, _ in parsed):
            base_cost += rates.large_item_surcharge
        if opts.expedited:
            base_cost *= rates.expedited_multiplier
        if opts.insurance:
            base_cost += max(rates.insurance_minimum, subtotal * rates.insurance_rate)

        speed = "expedited" if opts.expedited else "standard"
        low, high = rates.delivery_days.get(country, rates.default_delivery_days)[speed]
        low = max(low, rates.minimum_days)
        high = max(high, low + 1)

        standard_quote = ShippingQuote(
            carrier="Estimated",
            service="Express Shipping" if opts.expedited else "Standard Shipping",
            cost=self.converter.convert_from_usd(base_cost, currency),
            currency=currency,
            estimated_days=high,
            estimated_days_range=DaysRange(min=low, max=high),
            tracking_available=True,
            insurance_included=opts.insurance,
            signature_required=opts.signature,
        )

        express_range = DaysRange(
            min=max(rates.minimum_days, math.floor(low * rates.express_days_factor)),
            max=max(rates.minimum_days + 1, math.floor(high * rates.express_days_factor)),
        )
        express_quote = ShippingQuote(
            carrier="Estimated",
            service="Express Shipping",
            cost=self.converter.convert_from_usd(base_cost * rates.express_multiplier, currency),
            currency=currency,
            estimated_days=express_range.max,
            estimated_days_range=express_range,
            tracking_available=True,
            insurance_included=True,
            signature_required=opts.signature,
        )

        quotes = [express_quote, standard_quote] if opts.expedited else [standard_quote, express_quote]

        if subtotal >= self.free_shipping_threshold:
            quotes = [
                quote.model_copy(update={"cost": 0.0, "service": f"Free {quote.service}"})
                for quote in quotes
            ]
            return EstimatedShipping(
                quotes=quotes,
                recommended=quotes[0],
                free_shipping_available=True,
                free_shipping_threshold=None,
            )

        return EstimatedShipping(
            quotes=quotes,
            recommended=quotes[0],
            free_shipping_available=False,
            free_shipping_threshold=self.free_shipping_threshold,
        )

    # ── Utilities ────────────────────────────────────────

    def get_supported_countries(self) -> list[str]:
        return list(SUPPORTED_COUNTRIES)

    def is_shipping_available(self, country_code: str) -> bool:
        return (country_code or "").upper() in SUPPORTED_COUNTRIES

    def get_estimated_delivery_date(
        self, quote: ShippingQuote, order_date: date | datetime | None = None
    ) -> date | datetime:
        """Add ``estimated_days`` calendar days, then move past a weekend."""
        delivery = (order_date or datetime.now()) + timedelta(days=quote.estimated_days)
        while delivery.weekday() >= 5:
            delivery += timedelta(days=1)
        return delivery

    def format_shipping_cost(self, quote: ShippingQuote) -> str:
        if quote.cost == 0:
            return "FREE"
        return format_money(quote.cost, quote.currency)


# ── Factories & predicates ───────────────────────────────


def get_supported_countries() -> list[str]:
    return list(SUPPORTED_COUNTRIES)


def create_shipping_service(
    partner_client: PartnerClient | None = None,
    max_attempts: int | None = None,
    retry_delay: float | None = None,
    timeout: float | None = None,
) -> ShippingService:
    return ShippingService(
        partner_client,
        max_attempts=max_attempts,
        retry_delay=retry_delay,
        timeout=timeout,
    )


def is_valid_shipping_item(item: Any) -> bool:
    try:
        ShippingItem.model_validate(normalize_shipping_item(item))
        return True
    except ValidationError:
        return False


def is_valid_shipping_options(options: Any) -> bool:
    if not isinstance(options, Mapping):
        return isinstance(options, ShippingOptions)
    try:
        ShippingOptions.model_validate({_OPTION_ALIASES.get(k, k): v for k, v in options.items()})
        return True
    except ValidationError:
        return False
