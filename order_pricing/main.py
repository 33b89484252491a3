"""
Order Pricing & Shipping Engine — Main Entry Point

Price a cart file directly (CLI):
    python -m order_pricing.main path/to/cart.json

Run as an API server:
    python -m order_pricing.main --serve
    # or: uvicorn order_pricing.api:app --reload --port 8000

Cart file format:
    {"items": [{"id": "...", "sku": "...", "price": 29.99, "quantity": 1}],
     "address": {"countryCode": "US", "postalCode": "94103"},
     "options": {"expedited": false},
     "discount_amount": 0}
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

from order_pricing.config import get_settings
from order_pricing.models.schemas import CheckoutQuote
from order_pricing.services.checkout_service import CheckoutService
from order_pricing.services.pricing_service import PricingCalculator
from order_pricing.services.prodigi_client import ProdigiClient
from order_pricing.services.shipping_service import ShippingService
from order_pricing.utils.logger import setup_logging


async def _price(cart: dict) -> CheckoutQuote:
    async with ProdigiClient() as client:
        checkout = CheckoutService(PricingCalculator(), ShippingService(client))
        return await checkout.price_cart(
            cart.get("items", []),
            cart.get("address", {}),
            cart.get("options"),
            cart.get("discount_amount", 0.0),
        )


def run(file_path: str) -> CheckoutQuote:
    """Price the cart in ``file_path`` and log a summary."""
    setup_logging(get_settings().log_level)
    cart = json.loads(Path(file_path).read_text(encoding="utf-8"))
    quote = asyncio.run(_price(cart))
    _print_summary(quote)
    return quote


def _print_summary(quote: CheckoutQuote) -> None:
    logger = logging.getLogger(__name__)
    pricing = quote.pricing
    calculator = PricingCalculator(currency=pricing.currency)
    shipping = quote.shipping

    logger.info("-" * 60)
    logger.info("  CHECKOUT SUMMARY")
    logger.info("-" * 60)
    for line in pricing.breakdown.items:
        logger.info(f"  {line.name:<30} x{line.quantity:<3} {calculator.format_price(line.line_total):>12}")
    logger.info(f"  Subtotal:       {calculator.format_price(pricing.subtotal)}")
    for tax in pricing.breakdown.taxes:
        logger.info(f"  {tax.description}: {calculator.format_price(tax.amount)}")
    logger.info(
        f"  Shipping:       {calculator.format_price(pricing.shipping_amount)} "
        f"({shipping.recommended.service}, {shipping.kind})"
    )
    if pricing.discount_amount:
        logger.info(f"  Discount:       -{calculator.format_price(pricing.discount_amount)}")
    logger.info(f"  Total:          {calculator.format_price(pricing.total)}")
    logger.info("-" * 60)


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the FastAPI server."""
    import uvicorn

    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("order_pricing.api:app", host=host, port=port, reload=get_settings().debug)


if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    elif len(sys.argv) > 1:
        run(sys.argv[1])
    else:
        print(__doc__)
        sys.exit(1)
