"""Custom exceptions for the storefront backend."""
from __future__ import annotations


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class NotConfiguredError(StorefrontError):
    """Raised when a feature's credentials are missing."""

    def __init__(self, feature: str, keys: str | None = None):
        self.feature = feature
        msg = f"{feature} is not configured"
        if keys:
            msg = f"{msg} (set {keys})"
        super().__init__(msg)


class ProviderAPIError(StorefrontError):
    """Raised when an external API answers with an error."""

    def __init__(self, provider: str, status: int | None, body: str = ""):
        self.provider = provider
        self.status = status
        self.body = body
        detail = f"{provider} API error"
        if status is not None:
            detail = f"{detail}: {status}"
        if body:
            detail = f"{detail} - {body[:500]}"
        super().__init__(detail)


class UnknownProviderError(StorefrontError):
    """Raised when no adapter is registered under a provider name."""

    def __init__(self, provider: str | None):
        self.provider = provider
        super().__init__(f"Unknown provider: {provider}")


class NotImplementedProviderError(StorefrontError):
    """Raised by provider stubs that have no working integration yet."""

    def __init__(self, provider: str, operation: str = "integration"):
        self.provider = provider
        super().__init__(f"{provider} {operation} not yet implemented")


class InvalidSignatureError(StorefrontError):
    """Raised when a webhook signature is missing or does not match."""

    def __init__(self, source: str = "webhook"):
        super().__init__(f"Invalid {source} signature")


class AuthenticationError(StorefrontError):
    """Raised when a caller has no valid session."""

    def __init__(self, reason: str = "Authentication required"):
        super().__init__(reason)


class AuthorizationError(StorefrontError):
    """Raised when an authenticated caller is not an administrator."""

    def __init__(self, email: str | None):
        self.email = email
        super().__init__(f"Not an administrator: {email or 'anonymous'}")


class RecordNotFoundError(StorefrontError):
    """Raised when a stored record does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class OrderNotFoundError(RecordNotFoundError):
    def __init__(self, order_id: str):
        super().__init__("Order", order_id)


class DuplicateRecordError(StorefrontError):
    """Raised when creating a record whose unique key already exists."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} with this code already exists: {key}")


class ValidationFailedError(StorefrontError):
    """Raised when a request is well-formed JSON but semantically invalid."""

    pass


class VariantMismatchError(StorefrontError):
    """Raised when a variant is selected for a product it does not belong to."""

    def __init__(self, product_id: str, variant_id: str):
        self.product_id = product_id
        self.variant_id = variant_id
        super().__init__(f"Variant {variant_id} does not belong to product {product_id}")


class MissingFulfillmentDataError(StorefrontError):
    """Raised when an order lacks the shipping address or items needed to dispatch it."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Missing shipping address or items")


class PaymentError(StorefrontError):
    """Raised when a payment gateway rejects an operation."""

    pass
