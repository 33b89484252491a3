"""
Pricing Calculator — subtotal, tax, shipping, discount and total for a cart.

Validates every input and re-checks its own output; malformed cart data
fails the request instead of silently flowing on to payment.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from order_pricing.config import get_settings
from order_pricing.models.enums import ErrorKind
from order_pricing.models.errors import (
    PricingError,
    ShippingCalculationError,
    TaxCalculationError,
)
from order_pricing.models.schemas import (
    DiscountLine,
    LineItemBreakdown,
    PricingBreakdown,
    PricingItem,
    PricingResult,
    ShippingAddress,
    ShippingLine,
    ShippingQuote,
    ShippingResult,
    TaxConfig,
    TaxLine,
)
from order_pricing.services.currency_service import apply_tax_rate, format_money, round2
from order_pricing.services.normalization import normalize_address, normalize_pricing_item

logger = logging.getLogger(__name__)

COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")
TOTAL_TOLERANCE = 0.01


def address_rule_violation(address: ShippingAddress) -> str | None:
    """Return a description of the first broken address rule, or None."""
    if not address.country_code:
        return "Country code is required"
    if not COUNTRY_CODE_PATTERN.match(address.country_code):
        return "Invalid country code format"
    if address.country_code == "US" and not address.postal_code:
        return "Postal code required for US addresses"
    return None


def _validation_messages(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc']) or 'item'}: {err['msg']}"
        for err in error.errors()
    ]


class PricingCalculator:
    """Core pricing calculation with validation at every step."""

    def __init__(
        self,
        tax_config: TaxConfig | None = None,
        currency: str | None = None,
        max_line_total: float | None = None,
        max_shipping_cost: float | None = None,
        free_shipping_threshold: float | None = None,
    ):
        settings = get_settings()
        self.tax_config = tax_config or TaxConfig(rate=settings.default_tax_rate)
        self.currency = currency or settings.default_currency
        self.max_line_total = max_line_total if max_line_total is not None else settings.max_line_total
        self.max_shipping_cost = (
            max_shipping_cost if max_shipping_cost is not None else settings.max_shipping_cost
        )
        self.free_shipping_threshold = (
            free_shipping_threshold
            if free_shipping_threshold is not None
            else settings.free_shipping_threshold
        )

    # ── Items ────────────────────────────────────────────

    def _validate_items(self, items: Any) -> list[PricingItem]:
        """Validate every item; stop on the first violation."""
        validated: list[PricingItem] = []
        for index, raw in enumerate(items or []):
            try:
                item = PricingItem.model_validate(normalize_pricing_item(raw))
            except ValidationError as e:
                raise PricingError(
                    f"Invalid pricing item at index {index}",
                    "INVALID_ITEM",
                    {"index": index, "item": raw, "errors": _validation_messages(e)},
                ) from e

            line_total = item.price * item.quantity
            if line_total > self.max_line_total:
                raise PricingError(
                    f"Invalid line total for item {item.id}: {line_total:.2f}",
                    "INVALID_LINE_TOTAL",
                    {"index": index, "item_id": str(item.id), "line_total": line_total,
                     "max_allowed": self.max_line_total},
                )
            validated.append(item)
        return validated

    def calculate_subtotal(self, items: Any) -> float:
        """Sum price * quantity across items, rounded to cents."""
        validated = self._validate_items(items)
        return round2(sum(item.price * item.quantity for item in validated))

    # ── Tax ──────────────────────────────────────────────

    def calculate_tax(
        self,
        subtotal: float,
        shipping_amount: float = 0.0,
        rate: float | None = None,
    ) -> float:
        """
        Tax on the subtotal.  ``shipping_amount`` is validated but not taxed.
        """
        if subtotal < 0:
            raise TaxCalculationError("Subtotal cannot be negative", {"subtotal": subtotal})
        if shipping_amount < 0:
            raise TaxCalculationError(
                "Shipping amount cannot be negative", {"shipping_amount": shipping_amount}
            )
        return apply_tax_rate(subtotal, self.tax_config.rate if rate is None else rate)

    # ── Address ──────────────────────────────────────────

    def validate_shipping_address(self, address: Any) -> bool:
        canonical = normalize_address(address)
        problem = address_rule_violation(canonical)
        if problem:
            raise ShippingCalculationError(problem, {"address": canonical.model_dump()})
        return True

    # ── Totals ───────────────────────────────────────────

    def _coerce_shipping(self, shipping_result: Any) -> ShippingResult | None:
        if shipping_result is None:
            return None
        if isinstance(shipping_result, ShippingResult):
            return shipping_result
        try:
            if isinstance(shipping_result, ShippingQuote):
                return shipping_result.to_shipping_result()
            return ShippingResult.model_validate(shipping_result)
        except ValidationError as e:
            raise ShippingCalculationError(
                "Invalid shipping result", {"errors": _validation_messages(e)}
            ) from e

    def calculate_total(
        self,
        items: Any,
        shipping_result: ShippingResult | ShippingQuote | Mapping[str, Any] | None = None,
        discount_amount: float = 0.0,
    ) -> PricingResult:
        """Compute the full pricing result with breakdown."""
        if not isinstance(items, (list, tuple)):
            raise PricingError("Items must be a list", "INVALID_ITEMS", {"items": repr(items)})
        if not math.isfinite(discount_amount):
            raise PricingError(
                "Discount amount must be a finite number",
                "INVALID_DISCOUNT",
                {"discount_amount": repr(discount_amount)},
            )
        if discount_amount < 0:
            raise PricingError(
                "Discount amount cannot be negative",
                "INVALID_DISCOUNT",
                {"discount_amount": discount_amount},
            )

        validated = self._validate_items(items)
        subtotal = round2(sum(item.price * item.quantity for item in validated))

        shipping = self._coerce_shipping(shipping_result)
        shipping_amount = round2(shipping.cost) if shipping else 0.0
        if not 0 <= shipping_amount <= self.max_shipping_cost:
            raise ShippingCalculationError(
                f"Invalid shipping cost: {shipping_amount}",
                {"shipping_amount": shipping_amount, "max_allowed": self.max_shipping_cost},
            )

        tax_amount = self.calculate_tax(subtotal, shipping_amount)
        applied_discount = round2(min(discount_amount, subtotal))
        total = round2(max(0.0, subtotal - applied_discount + tax_amount + shipping_amount))

        breakdown = PricingBreakdown(
            items=[
                LineItemBreakdown(
                    id=str(item.id),
                    name=item.name or f"Item {item.sku}",
                    price=item.price,
                    quantity=item.quantity,
                    line_total=round2(item.price * item.quantity),
                )
                for item in validated
            ],
            taxes=[
                TaxLine(
                    rate=self.tax_config.rate,
                    amount=tax_amount,
                    description=self._tax_description(),
                )
            ],
            shipping=ShippingLine(
                cost=shipping.cost,
                method=shipping.service_name,
                estimated_days=shipping.estimated_days,
                carrier=shipping.carrier,
            ) if shipping else None,
            discounts=[
                DiscountLine(
                    code="APPLIED_DISCOUNT",
                    amount=applied_discount,
                    description="Applied Discount",
                )
            ] if applied_discount > 0 else [],
        )

        result = PricingResult(
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            discount_amount=applied_discount,
            total=total,
            item_count=sum(item.quantity for item in validated),
            currency=self.currency,
            breakdown=breakdown,
        )
        logger.debug(
            f"Priced {result.item_count} item(s): subtotal={subtotal} tax={tax_amount} "
            f"shipping={shipping_amount} discount={applied_discount} total={total}"
        )
        return result

    def _tax_description(self) -> str:
        description = f"Sales Tax ({self.tax_config.rate * 100:.1f}%)"
        if self.tax_config.region:
            description += f" - {self.tax_config.region}"
        return description

    # ── Helpers ──────────────────────────────────────────

    def qualifies_for_free_shipping(self, subtotal: float, threshold: float | None = None) -> bool:
        return subtotal >= (self.free_shipping_threshold if threshold is None else threshold)

    def format_price(self, amount: float, currency: str | None = None) -> str:
        return format_money(amount, currency or self.currency, decimals=2)

    def validate_pricing_result(self, result: PricingResult | Mapping[str, Any]) -> bool:
        """Post-condition check: amounts non-negative and total re-derivable."""
        if not isinstance(result, PricingResult):
            try:
                result = PricingResult.model_validate(result)
            except ValidationError as e:
                raise PricingError(
                    "Invalid pricing result",
                    "INVALID_RESULT",
                    {"errors": _validation_messages(e)},
                    kind=ErrorKind.CONSISTENCY,
                ) from e

        amounts = {
            "subtotal": result.subtotal,
            "tax_amount": result.tax_amount,
            "shipping_amount": result.shipping_amount,
            "discount_amount": result.discount_amount,
            "total": result.total,
        }
        non_finite = {name: repr(value) for name, value in amounts.items() if not math.isfinite(value)}
        if non_finite:
            raise PricingError(
                "Pricing amounts must be finite",
                "NON_FINITE_AMOUNTS",
                non_finite,
                kind=ErrorKind.CONSISTENCY,
            )

        negative = {name: value for name, value in amounts.items() if value < 0}
        if negative:
            raise PricingError(
                "Pricing amounts cannot be negative",
                "NEGATIVE_AMOUNTS",
                negative,
                kind=ErrorKind.CONSISTENCY,
            )

        expected = result.subtotal - result.discount_amount + result.tax_amount + result.shipping_amount
        difference = abs(result.total - expected)
        if not difference <= TOTAL_TOLERANCE:
            raise PricingError(
                "Total calculation mismatch",
                "CALCULATION_MISMATCH",
                {"expected": round2(expected), "actual": result.total, "difference": difference},
                kind=ErrorKind.CONSISTENCY,
            )
        return True


# ── Factories & predicates ───────────────────────────────


def create_pricing_calculator(tax_rate: float | None = None, currency: str | None = None) -> PricingCalculator:
    tax_config = TaxConfig(rate=tax_rate) if tax_rate is not None else None
    return PricingCalculator(tax_config=tax_config, currency=currency)


def is_valid_pricing_item(item: Any) -> bool:
    try:
        PricingItem.model_validate(normalize_pricing_item(item))
        return True
    except ValidationError:
        return False


def is_valid_shipping_address(address: Any) -> bool:
    try:
        return address_rule_violation(normalize_address(address)) is None
    except (ShippingCalculationError, ValidationError):
        return False
