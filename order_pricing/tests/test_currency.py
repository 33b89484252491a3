"""
Tests: Currency utilities — rounding, formatting, static and live rate providers.

Run with:
    pytest order_pricing/tests/test_currency.py -v
"""

import asyncio

import httpx
import pytest

from order_pricing.models.errors import TaxCalculationError
from order_pricing.services.currency_service import (
    CurrencyConverter,
    LiveRateProvider,
    StaticRateProvider,
    apply_tax_rate,
    currency_for_country,
    format_money,
    round2,
    round_currency,
)


def _live(handler) -> LiveRateProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LiveRateProvider("https://rates.test/latest/USD", cache_hours=1, http_client=client)


class TestRounding:
    def test_half_up(self):
        assert round2(2.675) == 2.68
        assert round2(1.005) == 1.01
        assert round2(8.7976) == 8.8

    def test_zero_decimal_currencies(self):
        assert round_currency(1349.5, "JPY") == 1350.0
        assert round_currency(1349.5, "jpy") == 1350.0
        assert round_currency(13.495, "USD") == 13.5

    def test_tax_rate_bounds(self):
        assert apply_tax_rate(100.0, 0.075) == 7.5
        with pytest.raises(TaxCalculationError):
            apply_tax_rate(100.0, 1.01)


class TestFormatting:
    def test_symbols(self):
        assert format_money(1234.5) == "$1,234.50"
        assert format_money(10, "GBP") == "£10.00"
        assert format_money(-3, "EUR") == "-€3.00"

    def test_zero_decimal_default(self):
        assert format_money(1500, "JPY") == "¥1,500"

    def test_code_prefix_without_symbol(self):
        assert format_money(10, "SEK") == "SEK 10.00"

    def test_unknown_code_falls_back_to_usd(self):
        assert format_money(10, "ZZZ") == "$10.00"


class TestConverter:
    def test_country_currency(self):
        assert currency_for_country("de") == "EUR"
        assert currency_for_country("ZZ") == "USD"
        assert currency_for_country("") == "USD"

    def test_from_usd(self):
        converter = CurrencyConverter()
        assert converter.convert_from_usd(10.0, "GBP") == 7.3
        assert converter.convert_from_usd(10.0, "JPY") == 1500.0

    def test_cross_rate(self):
        converter = CurrencyConverter(StaticRateProvider({"USD": 1.0, "EUR": 0.8, "GBP": 0.5}))
        assert converter.convert(8.0, "EUR", "USD") == 10.0
        assert converter.convert(8.0, "EUR", "GBP") == 5.0
        assert converter.convert(8.0, "eur", "EUR") == 8.0
        assert converter.get_rate("EUR", "GBP") == 0.625

    def test_unknown_currency_is_identity(self):
        assert CurrencyConverter().convert_from_usd(12.34, "XYZ") == 12.34


class TestLiveRates:
    def test_refresh_and_lookup(self):
        provider = _live(lambda request: httpx.Response(200, json={"rates": {"EUR": 0.9, "gbp": 0.8}}))
        assert provider.rate_for("EUR") == 0.85  # static until refreshed

        assert asyncio.run(provider.refresh()) is True
        assert provider.is_fresh()
        assert provider.rate_for("EUR") == 0.9
        assert provider.rate_for("GBP") == 0.8
        assert provider.rate_for("JPY") == 150  # missing from feed

    def test_http_error_keeps_fallback(self):
        provider = _live(lambda request: httpx.Response(503))
        assert asyncio.run(provider.refresh()) is False
        assert not provider.is_fresh()
        assert provider.rate_for("GBP") == 0.73

    def test_bad_payload(self):
        provider = _live(lambda request: httpx.Response(200, json={"result": "error"}))
        assert asyncio.run(provider.refresh()) is False

    def test_expiry(self):
        provider = _live(lambda request: httpx.Response(200, json={"rates": {"EUR": 0.9}}))
        asyncio.run(provider.refresh())

        provider._fetched_at -= 3601
        assert not provider.is_fresh()
        assert provider.rate_for("EUR") == 0.85

    def test_clear_cache(self):
        provider = _live(lambda request: httpx.Response(200, json={"rates": {"EUR": 0.9}}))
        asyncio.run(provider.refresh())
        provider.clear_cache()
        assert provider.rate_for("EUR") == 0.85
