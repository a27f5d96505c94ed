"""Sales-specific exceptions.

Missing orders/listings surface as ``ObjectNotFoundError`` and illegal state
preconditions as ``ValidationError``, both from Protean. The two cases Protean
has no vocabulary for live here. Both carry a ``messages`` dict shaped like
``ValidationError.messages`` so the API renders all three the same way.
"""

from protean.exceptions import InvalidOperationError


class SalesOperationError(InvalidOperationError):
    def __init__(self, messages: dict):
        super().__init__(messages)
        self.messages = messages

    def __str__(self):
        return "; ".join(message for values in self.messages.values() for message in values)


class OrderAccessDenied(SalesOperationError):
    """The actor is not allowed to read or mutate this order."""

    def __init__(self, message="You do not have permission to access this order"):
        super().__init__({"order": [message]})


class VersionConflict(SalesOperationError):
    """The order changed since the caller last read it."""

    def __init__(self, order_id, expected_version, actual_version):
        self.order_id = str(order_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__({"version": [f"Order {order_id} is at version {actual_version}, expected {expected_version}"]})
