class ReconciliationError(Exception):
    """Base class for failures surfaced by the /identify endpoint."""

    status_code = 500
    public_message = "Internal server error"


class InvalidInput(ReconciliationError):
    status_code = 400
    public_message = "email or phoneNumber is required"

    def __init__(self, message: str = public_message):
        super().__init__(message)


class StorageUnavailable(ReconciliationError):
    """The contact store or its transaction failed. Callers may retry the request."""


class ConstraintViolation(ReconciliationError):
    """The stored contact graph breaks a linkage invariant.

    This should never happen while the invariants hold and is not recovered from.
    """
