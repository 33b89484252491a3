"""
Error taxonomy for the pricing / shipping engine.

Every error carries a machine-readable ``code``, a ``details`` dict and an
``ErrorKind`` so callers (and the HTTP layer) can tell malformed input apart
from partner outages and invariant violations.
"""

from __future__ import annotations

from typing import Any

from .enums import ErrorKind


class PricingError(Exception):
    """Base error for pricing computations."""

    default_kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
        kind: ErrorKind | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.kind = kind or self.default_kind

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "kind": self.kind.value,
            "details": self.details,
        }


class ShippingCalculationError(PricingError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "SHIPPING_CALCULATION_ERROR", details)


class TaxCalculationError(PricingError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "TAX_CALCULATION_ERROR", details)


class ShippingServiceError(ShippingCalculationError):
    """A shipping provider failed (after retries) or returned garbage."""

    default_kind = ErrorKind.PROVIDER_FAILURE

    def __init__(self, message: str, provider: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.provider = provider

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class ShippingTimeoutError(ShippingServiceError):
    def __init__(self, provider: str, timeout_seconds: float):
        super().__init__(
            f"Shipping calculation timed out after {timeout_seconds:g}s",
            provider,
            {"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class ShippingValidationError(ShippingServiceError):
    default_kind = ErrorKind.VALIDATION

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "validation", details)


class PartnerApiError(Exception):
    """Non-2xx response from the fulfillment partner API."""

    def __init__(self, message: str, status_code: int, endpoint: str, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
