class OrderLedgerError(Exception):
    pass


class ValidationError(OrderLedgerError):
    pass


class InvalidStateTransitionError(ValidationError):
    pass


class NotFoundError(OrderLedgerError):
    pass


class ConflictError(OrderLedgerError):
    """Uniqueness violation. The caller should retry the whole operation."""


class TransactionAbortedError(OrderLedgerError):
    """The unit of work failed mid-flight and was rolled back in full."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class NotificationError(OrderLedgerError):
    """Delivery failure. Captured inside the dispatcher, never raised to callers."""
