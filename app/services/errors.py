"""
Error taxonomy for the customer ordering session.

Nothing here is fatal: validation errors are raised before any store call,
transport errors leave in-memory state untouched so the user can retry.
"""


class OrderingError(Exception):
    """Base class for ordering errors."""


class ValidationError(OrderingError):
    """Request rejected before reaching the store (empty cart, blank proof, ...)."""


class InvalidTransitionError(ValidationError):
    """The trigger is not available from the order's current status."""


class OrderNotFoundError(OrderingError):
    """No order with that id is known to this session."""


class TransportError(OrderingError):
    """The store is unreachable or rejected the write."""


class StoreError(TransportError):
    """Raised by OrderStore implementations on transport/permission failure."""
