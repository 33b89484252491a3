"""
Tests: Pricing calculator — subtotal, tax, totals, discounts, address rules.

Run with:
    pytest order_pricing/tests/test_pricing.py -v
"""

import pytest

from conftest import make_item
from order_pricing.models.enums import ErrorKind
from order_pricing.models.errors import (
    PricingError,
    ShippingCalculationError,
    TaxCalculationError,
)
from order_pricing.models.schemas import ShippingQuote, ShippingResult, TaxConfig
from order_pricing.services.pricing_service import (
    PricingCalculator,
    create_pricing_calculator,
    is_valid_pricing_item,
    is_valid_shipping_address,
)


def _calculator() -> PricingCalculator:
    return PricingCalculator(tax_config=TaxConfig(rate=0.08), currency="USD")


def _shipping(cost: float) -> ShippingResult:
    return ShippingResult(cost=cost, estimated_days=5, service_name="Standard", carrier="Prodigi")


class TestSubtotal:
    def test_sums_price_times_quantity(self):
        items = [make_item(29.99, 1), make_item(39.99, 2)]
        assert _calculator().calculate_subtotal(items) == 109.97

    def test_empty_list_is_zero(self):
        assert _calculator().calculate_subtotal([]) == 0.0

    def test_negative_price_rejected(self):
        with pytest.raises(PricingError) as exc:
            _calculator().calculate_subtotal([make_item(29.99), make_item(-1.0)])
        assert exc.value.code == "INVALID_ITEM"
        assert exc.value.details["index"] == 1
        assert exc.value.kind == ErrorKind.VALIDATION

    def test_zero_and_fractional_quantity_rejected(self):
        with pytest.raises(PricingError):
            _calculator().calculate_subtotal([make_item(10.0, 0)])
        with pytest.raises(PricingError):
            _calculator().calculate_subtotal([make_item(10.0, 1.5)])

    def test_non_uuid_id_rejected(self):
        item = make_item(10.0)
        item["id"] = "not-a-uuid"
        with pytest.raises(PricingError):
            _calculator().calculate_subtotal([item])

    def test_line_total_ceiling(self):
        with pytest.raises(PricingError) as exc:
            _calculator().calculate_subtotal([make_item(60_000.0, 2)])
        assert exc.value.code == "INVALID_LINE_TOTAL"

    def test_legacy_unit_price_key(self):
        item = make_item(10.0, 3)
        item["unitPrice"] = item.pop("price")
        assert _calculator().calculate_subtotal([item]) == 30.0


class TestTax:
    def test_default_rate(self):
        assert _calculator().calculate_tax(109.97) == 8.8

    def test_shipping_not_taxed(self):
        assert _calculator().calculate_tax(100.0, 50.0) == 8.0

    def test_explicit_rate(self):
        assert _calculator().calculate_tax(100.0, rate=0.2) == 20.0

    def test_negative_inputs(self):
        with pytest.raises(TaxCalculationError):
            _calculator().calculate_tax(-1.0)
        with pytest.raises(TaxCalculationError):
            _calculator().calculate_tax(10.0, -5.0)

    def test_rate_out_of_range(self):
        with pytest.raises(TaxCalculationError):
            _calculator().calculate_tax(10.0, rate=1.5)


class TestTotal:
    def test_worked_example(self):
        items = [make_item(29.99, 1), make_item(39.99, 2)]
        result = _calculator().calculate_total(items, _shipping(9.99))
        assert result.subtotal == 109.97
        assert result.tax_amount == 8.8
        assert result.shipping_amount == 9.99
        assert result.total == 128.76
        assert result.item_count == 3

    def test_breakdown(self):
        items = [make_item(29.99, 1, name="Sunset"), make_item(39.99, 2, sku="GLOBAL-FAP-16X24")]
        result = _calculator().calculate_total(items, _shipping(9.99), discount_amount=5.0)
        breakdown = result.breakdown

        assert [line.name for line in breakdown.items] == ["Sunset", "Item GLOBAL-FAP-16X24"]
        assert breakdown.items[1].line_total == 79.98
        assert breakdown.taxes[0].description == "Sales Tax (8.0%)"
        assert breakdown.shipping.method == "Standard"
        assert breakdown.shipping.carrier == "Prodigi"
        assert breakdown.discounts[0].code == "APPLIED_DISCOUNT"
        assert breakdown.discounts[0].amount == 5.0

    def test_no_shipping(self):
        result = _calculator().calculate_total([make_item(50.0)])
        assert result.shipping_amount == 0.0
        assert result.breakdown.shipping is None
        assert result.total == 54.0

    def test_discount_capped_at_subtotal(self):
        result = _calculator().calculate_total([make_item(50.0)], _shipping(10.0), discount_amount=200.0)
        assert result.discount_amount == 50.0
        assert result.total == 14.0  # tax 4.00 + shipping 10.00

    def test_negative_discount_rejected(self):
        with pytest.raises(PricingError) as exc:
            _calculator().calculate_total([make_item(50.0)], None, discount_amount=-1.0)
        assert exc.value.code == "INVALID_DISCOUNT"

    def test_items_must_be_list(self):
        with pytest.raises(PricingError) as exc:
            _calculator().calculate_total("not a list")
        assert exc.value.code == "INVALID_ITEMS"

    def test_shipping_ceiling(self):
        with pytest.raises(ShippingCalculationError):
            _calculator().calculate_total([make_item(50.0)], _shipping(750.0))

    def test_non_finite_shipping_rejected(self):
        for cost in (float("nan"), float("inf")):
            with pytest.raises(ShippingCalculationError):
                _calculator().calculate_total([make_item(50.0)], {"cost": cost})

        quote = ShippingQuote.model_construct(
            carrier="Prodigi", service="Standard", cost=float("nan"), currency="USD", estimated_days=7
        )
        with pytest.raises(ShippingCalculationError):
            _calculator().calculate_total([make_item(50.0)], quote)

    def test_non_finite_discount_rejected(self):
        for discount in (float("nan"), float("inf")):
            with pytest.raises(PricingError) as exc:
                _calculator().calculate_total([make_item(50.0)], None, discount)
            assert exc.value.code == "INVALID_DISCOUNT"

    def test_accepts_quote_and_mapping(self):
        quote = ShippingQuote(carrier="Prodigi", service="Standard", cost=9.99, currency="USD", estimated_days=7)
        by_quote = _calculator().calculate_total([make_item(20.0)], quote)
        by_mapping = _calculator().calculate_total([make_item(20.0)], {"cost": 9.99})
        assert by_quote.total == by_mapping.total == 31.59

    def test_results_always_pass_consistency_check(self):
        calculator = _calculator()
        carts = [
            [make_item(0.01, 7)],
            [make_item(19.99, 3), make_item(4.5, 2)],
            [make_item(999.99, 10), make_item(0.0, 1)],
        ]
        for cart in carts:
            for discount in (0.0, 3.33, 10_000.0):
                result = calculator.calculate_total(cart, _shipping(7.77), discount)
                assert calculator.validate_pricing_result(result)


class TestValidatePricingResult:
    def _result(self, **overrides):
        result = _calculator().calculate_total([make_item(29.99, 1), make_item(39.99, 2)], _shipping(9.99))
        return result.model_copy(update=overrides)

    def test_mismatch_is_consistency_error(self):
        with pytest.raises(PricingError) as exc:
            _calculator().validate_pricing_result(self._result(total=200.0))
        assert exc.value.code == "CALCULATION_MISMATCH"
        assert exc.value.kind == ErrorKind.CONSISTENCY

    def test_rounding_tolerance(self):
        assert _calculator().validate_pricing_result(self._result(total=128.765))

    def test_negative_amount(self):
        with pytest.raises(PricingError) as exc:
            _calculator().validate_pricing_result(self._result(tax_amount=-1.0))
        assert exc.value.code == "NEGATIVE_AMOUNTS"

    def test_non_finite_amounts(self):
        for field in ("total", "discount_amount", "shipping_amount"):
            with pytest.raises(PricingError) as exc:
                _calculator().validate_pricing_result(self._result(**{field: float("nan")}))
            assert exc.value.code == "NON_FINITE_AMOUNTS"
            assert exc.value.kind == ErrorKind.CONSISTENCY

    def test_non_finite_mapping_is_consistency_error(self):
        data = self._result().model_dump()
        data["total"] = float("inf")
        with pytest.raises(PricingError) as exc:
            _calculator().validate_pricing_result(data)
        assert exc.value.code == "INVALID_RESULT"
        assert exc.value.kind == ErrorKind.CONSISTENCY


class TestShippingAddress:
    def test_gb_without_postal_code_is_valid(self):
        assert _calculator().validate_shipping_address({"countryCode": "GB", "city": "London"})

    def test_us_without_postal_code_fails(self):
        with pytest.raises(ShippingCalculationError) as exc:
            _calculator().validate_shipping_address({"countryCode": "US", "stateOrCounty": "CA"})
        assert "Postal code" in exc.value.message

    def test_us_with_postal_code(self):
        assert _calculator().validate_shipping_address({"countryCode": "US", "zip": "94103"})

    def test_malformed_country(self):
        with pytest.raises(ShippingCalculationError) as exc:
            _calculator().validate_shipping_address({"country_code": "USA", "postal_code": "1"})
        assert exc.value.message == "Invalid country code format"

    def test_missing_country(self):
        with pytest.raises(ShippingCalculationError):
            _calculator().validate_shipping_address({"city": "Paris"})


class TestHelpers:
    def test_free_shipping_threshold(self):
        calculator = _calculator()
        assert calculator.qualifies_for_free_shipping(150.0)
        assert calculator.qualifies_for_free_shipping(100.0)
        assert not calculator.qualifies_for_free_shipping(99.99)
        assert calculator.qualifies_for_free_shipping(60.0, threshold=50.0)

    def test_format_price(self):
        calculator = _calculator()
        assert calculator.format_price(1234.5) == "$1,234.50"
        assert calculator.format_price(10, "EUR") == "€10.00"
        assert calculator.format_price(10, "JPY") == "¥10.00"
        assert calculator.format_price(10, "NOT-A-CODE") == "$10.00"

    def test_factory_and_predicates(self):
        calculator = create_pricing_calculator(tax_rate=0.2, currency="GBP")
        assert calculator.tax_config.rate == 0.2
        assert calculator.currency == "GBP"
        assert is_valid_pricing_item(make_item(1.0))
        assert not is_valid_pricing_item({"sku": "X"})
        assert is_valid_shipping_address({"countryCode": "FR"})
        assert not is_valid_shipping_address({"countryCode": "US"})
        assert not is_valid_shipping_address(None)
