"""
Domain exceptions shared by the conversation directory and ride services.

Every exception carries an ``error_code`` the HTTP layer maps to a status.
"""


class DomainError(Exception):
    """Base class for failures that abort a unit of work without side effects."""
    error_code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class NotFoundError(DomainError):
    """The requested record does not exist."""
    error_code = "not_found"


class ForbiddenError(DomainError):
    """The caller is not allowed to perform this operation."""
    error_code = "forbidden"


class ValidationError(DomainError):
    """Input fields are malformed or out of range."""
    error_code = "validation_error"


class TransientConflictError(DomainError):
    """Lock or transaction contention; the operation is safe to retry."""
    error_code = "transient_conflict"
    retryable = True
