"""Exceptions raised by the storefront services."""
from typing import List, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when checkout input is incomplete or invalid.

    Carries every problem found so the client can fix them in one round trip.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid request.")


class InvalidZone(StorefrontError):
    """Raised for a delivery location outside the known zones."""

    def __init__(self, zone):
        self.zone = zone
        super().__init__(f"Unknown delivery location: {zone!r}")


class PersistenceError(StorefrontError):
    """Raised when a datastore call fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class PartialFanoutFailure(PersistenceError):
    """Raised when a variant group failed midway and its rows could not be removed.

    The listed ids are left in the datastore and need manual reconciliation.
    """

    def __init__(self, message: str, created_ids: List, cause: Optional[BaseException] = None):
        self.created_ids = list(created_ids)
        super().__init__(f"{message} (left behind: {', '.join(str(i) for i in self.created_ids)})", cause)


class OrderNotFound(StorefrontError):
    """Raised when an order lookup fails or the contact does not match."""

    def __init__(self, order_number: str = ""):
        self.order_number = order_number
        super().__init__("Order not found.")


class RateLimited(StorefrontError):
    """Raised when a client exceeds its request window."""

    def __init__(self, retry_after: int):
        self.retry_after = max(0, int(retry_after))
        super().__init__("Too many requests. Please try again later.")
