class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist for the tenant."""


class ConflictError(DomainError):
    """Raised when an action does not apply to the record's current state."""


class StorageError(DomainError):
    """Raised when the device-local queue cannot persist or read an item.

    Fatal to the capture attempt: the operator must be told the event was not saved.
    """


class TransientNetworkError(DomainError):
    """No response, timeout or server-side failure. Safe to retry later."""


class RequestRejectedError(DomainError):
    """The server answered a device request with a client error (4xx)."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
