# Overview: Domain error taxonomy shared by services and routes.

"""
Error taxonomy for the financial consistency core.

Services raise these; routes translate them to HTTP status codes; the
transaction helper in services/concurrency.py rolls the session back for
every one of them, so a failed operation never leaves a partial mutation.
"""


class ValidationError(ValueError):
    """400-level input problem (malformed payload, zero quantity, ...)."""


class TenantAccessError(Exception):
    """Referenced record does not exist in the caller's company."""


class InsufficientStockError(ValueError):
    """Deduction requested exceeds quantity on hand at the location."""

    def __init__(self, *, item_id: int, location_id: int, requested: int, available: int):
        self.item_id = item_id
        self.location_id = location_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"insufficient stock for item {item_id} at location {location_id}: "
            f"requested {requested}, available {available}"
        )


class ConcurrencyConflictError(Exception):
    """A conditional write lost a race against a concurrent operation."""


class ConfigurationError(RuntimeError):
    """Unknown valuation method, missing tenant settings or account."""


class UnbalancedPostingError(RuntimeError):
    """Journal lines do not balance. Always a programming defect."""


class DuplicatePostingError(ValueError):
    """A different journal record already exists for the same event."""


class InvalidTransitionError(ValueError):
    """Status change not allowed by the entity's transition table."""
