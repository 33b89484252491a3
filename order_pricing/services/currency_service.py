"""
Currency & tax utilities.

  - round2() / round_currency()      → money rounding
  - CurrencyConverter                → USD-based conversion over a RateProvider
  - StaticRateProvider               → the fixed, periodically-updated table
  - LiveRateProvider                 → HTTP rates with TTL cache, static fallback
  - apply_tax_rate() / format_money()
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

import httpx

from order_pricing.models.errors import TaxCalculationError

logger = logging.getLogger(__name__)

# Approximate USD-based rates; refresh periodically or inject a live provider.
CURRENCY_RATES: dict[str, float] = {
    "USD": 1.0,
    "CAD": 1.35,
    "EUR": 0.85,
    "GBP": 0.73,
    "AUD": 1.50,
    "JPY": 150,
    "CHF": 0.88,
    "SEK": 10.5,
    "NOK": 10.8,
    "DKK": 6.8,
    "PLN": 4.0,
    "CZK": 22.5,
    "HUF": 360,
    "SGD": 1.35,
    "HKD": 7.8,
    "KRW": 1300,
    "MXN": 17.5,
    "BRL": 5.0,
    "INR": 83,
    "NZD": 1.65,
}

COUNTRY_CURRENCIES: dict[str, str] = {
    "US": "USD", "CA": "CAD", "GB": "GBP", "AU": "AUD", "DE": "EUR", "FR": "EUR",
    "IT": "EUR", "ES": "EUR", "NL": "EUR", "BE": "EUR", "AT": "EUR", "PT": "EUR",
    "IE": "EUR", "FI": "EUR", "LU": "EUR", "JP": "JPY", "KR": "KRW", "SG": "SGD",
    "HK": "HKD", "CH": "CHF", "SE": "SEK", "NO": "NOK", "DK": "DKK", "PL": "PLN",
    "CZ": "CZK", "HU": "HUF", "MX": "MXN", "BR": "BRL", "IN": "INR", "NZ": "NZD",
}

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "PYG", "UGX"})

# en-US display prefixes; codes without an entry render as "XXX 1.00"
CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "HKD": "HK$",
    "MXN": "MX$",
    "BRL": "R$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "KRW": "₩",
    "INR": "₹",
}

_CENT = Decimal("0.01")
_UNIT = Decimal("1")


def round2(value: float) -> float:
    """Round half-up to two decimal places."""
    return float(Decimal(repr(float(value))).quantize(_CENT, rounding=ROUND_HALF_UP))


def round_currency(amount: float, currency: str) -> float:
    """Round to whole units for zero-decimal currencies, to cents otherwise."""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return float(Decimal(repr(float(amount))).quantize(_UNIT, rounding=ROUND_HALF_UP))
    return round2(amount)


def currency_for_country(country_code: str) -> str:
    return COUNTRY_CURRENCIES.get((country_code or "").upper(), "USD")


def apply_tax_rate(amount: float, rate: float) -> float:
    if rate < 0 or rate > 1:
        raise TaxCalculationError("Tax rate must be between 0 and 1", {"rate": rate})
    return round2(amount * rate)


def is_known_currency(currency: str) -> bool:
    code = (currency or "").upper()
    return code in CURRENCY_RATES or code in CURRENCY_SYMBOLS


def format_money(amount: float, currency: str = "USD", decimals: int | None = None) -> str:
    """
    Format an amount the way an en-US storefront shows prices.
    Unrecognized currency codes fall back to USD formatting.
    """
    code = (currency or "").upper()
    if not is_known_currency(code):
        code = "USD"
    if decimals is None:
        decimals = 0 if code in ZERO_DECIMAL_CURRENCIES else 2

    number = f"{abs(amount):,.{decimals}f}"
    sign = "-" if amount < 0 else ""
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{number}"
    return f"{sign}{code} {number}"


# ── Rate providers ───────────────────────────────────────


class RateProvider(Protocol):
    def rate_for(self, currency: str) -> float | None:
        """Units of ``currency`` per 1 USD, or None when unknown."""
        ...


class StaticRateProvider:
    """Fixed conversion table (not a live FX feed)."""

    def __init__(self, rates: dict[str, float] | None = None):
        self._rates = dict(rates or CURRENCY_RATES)

    def rate_for(self, currency: str) -> float | None:
        return self._rates.get(currency.upper())


class LiveRateProvider:
    """
    USD rates fetched from an HTTP endpoint and cached for ``cache_hours``.
    Until the first successful refresh (or after expiry) lookups are served
    by the static table.
    """

    def __init__(
        self,
        api_url: str,
        cache_hours: int = 12,
        fallback: RateProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url
        self.cache_seconds = cache_hours * 3600
        self._fallback = fallback or StaticRateProvider()
        self._http_client = http_client
        self._rates: dict[str, float] = {}
        self._fetched_at: float | None = None

    def is_fresh(self) -> bool:
        return self._fetched_at is not None and time.monotonic() - self._fetched_at < self.cache_seconds

    async def refresh(self) -> bool:
        """Fetch live rates.  Returns False (and keeps the fallback) on any failure."""
        client = self._http_client or httpx.AsyncClient(timeout=5.0)
        try:
            response = await client.get(self.api_url, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()
            rates = data.get("rates")
            if not isinstance(rates, dict) or not rates:
                raise ValueError("Invalid exchange rate response format")
            self._rates = {code.upper(): float(rate) for code, rate in rates.items()}
            self._fetched_at = time.monotonic()
            logger.info(f"Fetched {len(self._rates)} live exchange rates")
            return True
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Live exchange rates unavailable, using fallback table: {e}")
            return False
        finally:
            if self._http_client is None:
                await client.aclose()

    def clear_cache(self) -> None:
        self._rates = {}
        self._fetched_at = None

    def rate_for(self, currency: str) -> float | None:
        if self.is_fresh():
            rate = self._rates.get(currency.upper())
            if rate is not None:
                return rate
        return self._fallback.rate_for(currency)


# ── Converter ────────────────────────────────────────────


class CurrencyConverter:
    """Converts through USD using whatever RateProvider it is given."""

    def __init__(self, provider: RateProvider | None = None):
        self.provider = provider or StaticRateProvider()

    def _rate(self, currency: str) -> float:
        rate = self.provider.rate_for(currency)
        if not rate:
            logger.warning(f"No exchange rate for {currency.upper()}, using 1.0 (no conversion)")
            return 1.0
        return rate

    def convert_from_usd(self, amount_usd: float, target_currency: str) -> float:
        return round_currency(amount_usd * self._rate(target_currency), target_currency)

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        source = from_currency.upper()
        target = to_currency.upper()
        if source == target:
            return round_currency(amount, target)
        if source == "USD":
            return self.convert_from_usd(amount, target)
        amount_usd = amount / self._rate(source)
        if target == "USD":
            return round2(amount_usd)
        return round_currency(amount_usd * self._rate(target), target)

    def get_rate(self, from_currency: str, to_currency: str) -> float:
        source = from_currency.upper()
        target = to_currency.upper()
        if source == "USD":
            return self._rate(target)
        if target == "USD":
            return 1 / self._rate(source)
        return self._rate(target) / self._rate(source)
