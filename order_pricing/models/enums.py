from enum import Enum

class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PROVIDER_FAILURE = "provider_failure"
    CONSISTENCY = "consistency"
    UNAVAILABLE_DEGRADE = "unavailable_degrade"

class FrameSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    EXTRA_LARGE = "extra_large"

class CatalogSource(str, Enum):
    PARTNER = "partner"
    CACHE = "cache"
    FALLBACK = "fallback"

class SkuResolutionSource(str, Enum):
    ORIGINAL = "original"
    CACHED = "cached"
    ALTERNATIVE = "alternative"
    DEFAULT = "default"

class PartnerEnvironment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"
    FAILED = "failed"
