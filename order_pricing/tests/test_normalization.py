"""
Tests: Boundary adapters for addresses and items.

Run with:
    pytest order_pricing/tests/test_normalization.py -v
"""

import pytest

from order_pricing.models.errors import ShippingValidationError
from order_pricing.models.schemas import ShippingAddress
from order_pricing.services.normalization import (
    normalize_address,
    normalize_pricing_item,
    normalize_recipient,
    normalize_shipping_item,
)


class TestAddress:
    @pytest.mark.parametrize(
        "raw",
        [
            {"countryCode": "us", "postalCode": "94103", "townOrCity": "SF"},
            {"country_code": "US", "postal_code": "94103", "city": "SF"},
            {"country": " US ", "zip": "94103", "city": "SF"},
            {"destinationCountryCode": "US", "postalOrZipCode": "94103", "town": "SF"},
        ],
    )
    def test_all_shapes_map_to_canonical(self, raw):
        address = normalize_address(raw)
        assert address == ShippingAddress(country_code="US", postal_code="94103", city="SF")

    def test_blank_values_skipped(self):
        address = normalize_address({"country_code": "", "countryCode": "GB", "postal_code": "  "})
        assert address.country_code == "GB"
        assert address.postal_code is None

    def test_passthrough(self):
        address = ShippingAddress(country_code="FR")
        assert normalize_address(address) is address

    def test_missing_address(self):
        with pytest.raises(ShippingValidationError):
            normalize_address(None)


class TestRecipient:
    def test_checkout_snapshot(self):
        recipient = normalize_recipient(
            {
                "firstName": "Ada",
                "lastName": "Lovelace",
                "address1": "1 Main St",
                "address2": "Apt 2",
                "city": "Boston",
                "state": "MA",
                "zip": "02101",
                "country": "us",
            }
        )
        assert recipient.name == "Ada Lovelace"
        assert recipient.line1 == "1 Main St"
        assert recipient.line2 == "Apt 2"
        assert recipient.postal_code == "02101"
        assert recipient.country_code == "US"
        assert recipient.state_or_county == "MA"

    def test_full_name_wins(self):
        assert normalize_recipient({"name": "A. L.", "firstName": "Ada"}).name == "A. L."


class TestItems:
    def test_shipping_copies_alias(self):
        assert normalize_shipping_item({"sku": "X", "copies": 2, "unitPrice": 5}) == {
            "sku": "X",
            "quantity": 2,
            "price": 5,
        }

    def test_quantity_wins_over_copies(self):
        assert normalize_shipping_item({"sku": "X", "quantity": 1, "copies": 4})["quantity"] == 1

    def test_non_mapping_untouched(self):
        assert normalize_shipping_item(7) == 7
        assert normalize_pricing_item("x") == "x"

    def test_pricing_aliases(self):
        assert normalize_pricing_item({"sku": "X", "unit_price": 3.5, "qty": 2}) == {
            "sku": "X",
            "price": 3.5,
            "quantity": 2,
        }
