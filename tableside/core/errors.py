"""
Tableside Orders — Error taxonomy

Every operation either completes its single conditional write or raises one of
these before anything is persisted.
"""


class OrderingError(Exception):
    """Base class for errors surfaced to the caller of an order operation."""

    status_code = 400
    code = "ordering_error"
    retryable = False

    def __init__(self, detail: str, **extra):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra


class ValidationError(OrderingError):
    """Malformed or missing input. Raised before any read or mutation."""

    code = "validation_error"


class NotFoundError(OrderingError):
    """Unknown order, table, menu item or line reference."""

    status_code = 404
    code = "not_found"


class ConflictError(OrderingError):
    """The order cannot accept this change in its current state."""

    status_code = 409
    code = "conflict"

    def __init__(self, detail: str, retryable: bool = False, **extra):
        super().__init__(detail, **extra)
        self.retryable = retryable


class StaleDataError(ConflictError):
    """Raised when an optimistic lock conflict is detected:
    the version_id in the store changed between our read and write,
    meaning another concurrent operation on the same order won the race.
    The caller should re-read the order and resubmit.
    """

    code = "stale_data"

    def __init__(self, detail: str, **extra):
        super().__init__(detail, retryable=True, **extra)


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class ConfigurationError(OrderingError):
    """A table or order has no resolvable owning restaurant.

    Needs a data-repair pass, not a client retry.
    """

    status_code = 500
    code = "configuration_error"
