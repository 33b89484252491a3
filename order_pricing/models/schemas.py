"""
Data schemas shared by the pricing calculator, shipping service,
SKU resolver and frame catalog.  Every schema is the canonical internal
shape; legacy and camelCase inputs are mapped onto these by
``order_pricing.services.normalization`` before they reach the core.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from .enums import CatalogSource, FrameSize, SkuResolutionSource


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Pricing inputs ───────────────────────────────────────


class PricingItem(BaseModel):
    """A cart line handed to the pricing calculator."""
    id: UUID
    sku: str = Field(min_length=1)
    price: float = Field(ge=0, allow_inf_nan=False)
    quantity: int = Field(ge=1, strict=True)
    name: Optional[str] = None
    category: Optional[str] = None


class TaxConfig(BaseModel):
    rate: float = Field(ge=0, le=1)  # 0 to 100% as a decimal
    region: Optional[str] = None


class ShippingAddress(BaseModel):
    """Destination used for quoting.  Country + city alone is a valid address."""
    country_code: str
    state_or_county: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None


class ShippingResult(BaseModel):
    """The shipping figure fed into ``calculate_total``."""
    cost: float = Field(allow_inf_nan=False)
    currency: str = "USD"
    estimated_days: int = 0
    service_name: str = ""
    carrier: str = ""
    tracking_available: bool = True


# ── Pricing output ───────────────────────────────────────


class LineItemBreakdown(BaseModel):
    id: str
    name: str
    price: float
    quantity: int
    line_total: float


class TaxLine(BaseModel):
    type: str = "sales_tax"
    rate: float
    amount: float
    description: str


class ShippingLine(BaseModel):
    cost: float
    method: str
    estimated_days: int
    carrier: str


class DiscountLine(BaseModel):
    code: str
    amount: float
    type: Literal["percentage", "fixed"] = "fixed"
    description: str


class PricingBreakdown(BaseModel):
    items: list[LineItemBreakdown] = []
    taxes: list[TaxLine] = []
    shipping: Optional[ShippingLine] = None
    discounts: list[DiscountLine] = []


class PricingResult(BaseModel):
    subtotal: float = Field(allow_inf_nan=False)
    tax_amount: float = Field(allow_inf_nan=False)
    shipping_amount: float = Field(allow_inf_nan=False)
    discount_amount: float = Field(allow_inf_nan=False)
    total: float = Field(allow_inf_nan=False)
    item_count: int
    currency: str
    breakdown: PricingBreakdown = Field(default_factory=PricingBreakdown)


# ── Shipping ─────────────────────────────────────────────


class ItemDimensions(BaseModel):
    length: float = Field(ge=0)
    width: float = Field(ge=0)
    height: float = Field(ge=0)


class ShippingItem(BaseModel):
    sku: str = Field(min_length=1)
    quantity: int = Field(ge=1, strict=True)
    price: Optional[float] = Field(default=None, ge=0)
    weight: Optional[float] = Field(default=None, ge=0)
    attributes: Optional[dict[str, str]] = None  # partner attributes like color, wrap
    dimensions: Optional[ItemDimensions] = None


class ShippingOptions(BaseModel):
    expedited: bool = False
    insurance: bool = False
    signature: bool = False
    tracking_required: bool = True

    model_config = {"extra": "forbid", "strict": True}


class DaysRange(BaseModel):
    min: int = Field(ge=0)
    max: int = Field(ge=0)


class ShippingQuote(BaseModel):
    carrier: str
    service: str
    cost: float = Field(ge=0)
    currency: str
    estimated_days: int = Field(ge=0)
    estimated_days_range: Optional[DaysRange] = None
    tracking_available: bool = True
    insurance_included: bool = False
    signature_required: bool = False

    def to_shipping_result(self) -> ShippingResult:
        return ShippingResult(
            cost=self.cost,
            currency=self.currency,
            estimated_days=self.estimated_days,
            service_name=self.service,
            carrier=self.carrier,
            tracking_available=self.tracking_available,
        )


class PartnerShippingCost(BaseModel):
    """What the fulfillment partner returns for a quote request."""
    cost: float = Field(ge=0, allow_inf_nan=False)
    currency: str = Field(min_length=1)
    estimated_days: int = Field(ge=0)
    service_name: str = "Standard"
    tracking_available: Optional[bool] = None
    estimated_days_range: Optional[DaysRange] = None


class _ShippingCalculation(BaseModel):
    quotes: list[ShippingQuote]
    recommended: ShippingQuote
    free_shipping_available: bool = False
    free_shipping_threshold: Optional[float] = None
    calculated_at: datetime = Field(default_factory=_utcnow)
    provider: str
    address_validated: bool = False


class QuotedShipping(_ShippingCalculation):
    """A real quote obtained from a shipping provider."""
    kind: Literal["quoted"] = "quoted"

    @computed_field
    @property
    def is_estimated(self) -> bool:
        return False


class EstimatedShipping(_ShippingCalculation):
    """A locally computed estimate used when no real quote is available."""
    kind: Literal["estimated"] = "estimated"
    provider: str = "intelligent_fallback"
    fallback_reason: str = ""

    @computed_field
    @property
    def is_estimated(self) -> bool:
        return True


ShippingOutcome = Annotated[
    Union[QuotedShipping, EstimatedShipping],
    Field(discriminator="kind"),
]


# ── Frame catalog ────────────────────────────────────────


class FrameDimensions(BaseModel):
    width: float
    height: float
    depth: Optional[float] = None
    unit: str = "cm"


class FrameCatalogOption(BaseModel):
    sku: str
    size: FrameSize
    size_label: str  # e.g. "30x40cm"
    style: str  # normalized frame color
    material: str
    price: float
    currency: str = "USD"
    dimensions: FrameDimensions
    category: str = ""
    product_type: str = ""
    wrap_color: Optional[str] = None
    glaze: Optional[str] = None
    mount: Optional[str] = None
    available: bool = True


class CatalogSnapshot(BaseModel):
    source: CatalogSource
    options: list[FrameCatalogOption] = []
    fetched_at: datetime = Field(default_factory=_utcnow)


class CatalogStats(BaseModel):
    total_products: int = 0
    frame_colors: int = 0
    sizes: int = 0
    combinations: int = 0
    price_min: float = 0.0
    price_max: float = 0.0


# ── SKU resolution ───────────────────────────────────────


class SkuResolution(BaseModel):
    requested_sku: str
    sku: str
    source: SkuResolutionSource


# ── Partner orders ───────────────────────────────────────


class RecipientAddress(BaseModel):
    name: str = ""
    line1: str = ""
    line2: Optional[str] = None
    postal_code: str = ""
    country_code: str
    city: str = ""
    state_or_county: Optional[str] = None


class PartnerOrderItem(BaseModel):
    merchant_reference: str
    sku: str
    copies: int = Field(ge=1)
    sizing: str = "fillPrintArea"
    attributes: dict[str, str] = {}
    assets: list[dict[str, str]] = []


class PartnerOrder(BaseModel):
    merchant_reference: str
    shipping_method: str = "Standard"
    recipient: RecipientAddress
    items: list[PartnerOrderItem]
    metadata: dict[str, Any] = {}

    def to_payload(self) -> dict[str, Any]:
        """Serialize in the partner's camelCase wire format."""
        recipient = self.recipient
        return {
            "merchantReference": self.merchant_reference,
            "shippingMethod": self.shipping_method,
            "recipient": {
                "name": recipient.name,
                "address": {
                    "line1": recipient.line1,
                    "line2": recipient.line2,
                    "postalOrZipCode": recipient.postal_code,
                    "countryCode": recipient.country_code,
                    "townOrCity": recipient.city,
                    "stateOrCounty": recipient.state_or_county,
                },
            },
            "items": [
                {
                    "merchantReference": item.merchant_reference,
                    "sku": item.sku,
                    "copies": item.copies,
                    "sizing": item.sizing,
                    "attributes": item.attributes,
                    "assets": item.assets,
                }
                for item in self.items
            ],
            "metadata": self.metadata,
        }


class PartnerOrderResponse(BaseModel):
    id: str
    status: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[str] = None


# ── Checkout ─────────────────────────────────────────────


class CheckoutQuote(BaseModel):
    pricing: PricingResult
    shipping: ShippingOutcome
