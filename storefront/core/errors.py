from __future__ import annotations


class StorefrontError(Exception):
    """Base class for checkout failures surfaced to callers."""

    code = "storefront_error"
    status_code = 500


class ValidationError(StorefrontError):
    code = "validation_error"
    status_code = 400


class NotFoundError(StorefrontError):
    code = "not_found"
    status_code = 404


class EmptyCartError(StorefrontError):
    code = "empty_cart"
    status_code = 400


class CorruptLocalStateError(StorefrontError):
    """The locally persisted cart blob is not parseable; offer a reset."""

    code = "corrupt_local_state"
    status_code = 400


class InsufficientStockError(StorefrontError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class TransientProviderError(StorefrontError):
    """Network or response-format failure talking to a shipping/payment provider."""

    code = "transient_provider_error"
    status_code = 502


class PersistenceError(StorefrontError):
    code = "persistence_error"
    status_code = 500
