"""
Boundary adapters — map every historical input shape (camelCase keys,
``address1``/``line1``, ``zip``/``postal_code``, ``copies``/``quantity``…)
onto the canonical schemas.  Core services only ever see canonical types.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from order_pricing.models.errors import ShippingValidationError
from order_pricing.models.schemas import RecipientAddress, ShippingAddress

_COUNTRY_KEYS = ("country_code", "countryCode", "country", "destinationCountryCode")
_STATE_KEYS = ("state_or_county", "stateOrCounty", "state", "region")
_POSTAL_KEYS = ("postal_code", "postalCode", "postalOrZipCode", "zip", "postcode")
_CITY_KEYS = ("city", "townOrCity", "town")


def _first(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_address(raw: Any) -> ShippingAddress:
    """Accept a ShippingAddress or any known mapping shape."""
    if isinstance(raw, ShippingAddress):
        return raw
    if not isinstance(raw, Mapping):
        raise ShippingValidationError("Shipping address is required", {"address": raw})

    country = _clean(_first(raw, _COUNTRY_KEYS))
    return ShippingAddress(
        country_code=(country or "").upper(),
        state_or_county=_clean(_first(raw, _STATE_KEYS)),
        postal_code=_clean(_first(raw, _POSTAL_KEYS)),
        city=_clean(_first(raw, _CITY_KEYS)),
    )


def normalize_recipient(raw: Mapping[str, Any]) -> RecipientAddress:
    """Map a checkout shipping-address snapshot onto the partner recipient."""
    first_name = _first(raw, ("firstName", "first_name")) or ""
    last_name = _first(raw, ("lastName", "last_name")) or ""
    name = _first(raw, ("name", "fullName")) or f"{first_name} {last_name}"

    return RecipientAddress(
        name=str(name).strip(),
        line1=_clean(_first(raw, ("address1", "line1", "address_line1"))) or "",
        line2=_clean(_first(raw, ("address2", "line2", "address_line2"))),
        postal_code=_clean(_first(raw, _POSTAL_KEYS)) or "",
        country_code=(_clean(_first(raw, _COUNTRY_KEYS)) or "").upper(),
        city=_clean(_first(raw, _CITY_KEYS)) or "",
        state_or_county=_clean(_first(raw, _STATE_KEYS)),
    )


def normalize_shipping_item(raw: Any) -> Any:
    """
    Rename legacy shipping-item keys.  Non-mappings are returned untouched
    so schema validation reports them.
    """
    if not isinstance(raw, Mapping):
        return raw
    item = dict(raw)
    if "quantity" not in item and "copies" in item:
        item["quantity"] = item.pop("copies")
    if "price" not in item:
        for key in ("unitPrice", "unit_price"):
            if key in item:
                item["price"] = item.pop(key)
                break
    return item


def normalize_pricing_item(raw: Any) -> Any:
    if not isinstance(raw, Mapping):
        return raw
    item = dict(raw)
    if "price" not in item:
        for key in ("unitPrice", "unit_price"):
            if key in item:
                item["price"] = item.pop(key)
                break
    if "quantity" not in item and "qty" in item:
        item["quantity"] = item.pop("qty")
    return item
