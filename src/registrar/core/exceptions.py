"""
Service Errors

Every error a service raises for the caller carries an ``error_code`` and an
HTTP ``status_code``; routers translate them into structured responses.
"""


class EnrollmentServiceError(Exception):
    """Base exception for enrollment service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ValidationError(EnrollmentServiceError):
    """Malformed or missing input for a mutating operation."""

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        self.missing_fields = missing_fields or []
        super().__init__(message=message, error_code="VALIDATION_ERROR", status_code=400)


class ReceiptValidationError(ValidationError):
    """Payment receipt missing, too large or of a disallowed type."""

    def __init__(self, message: str):
        super().__init__(message)
        self.error_code = "INVALID_RECEIPT"


class InvalidStatusError(EnrollmentServiceError):
    """Status value outside the allowed set."""

    def __init__(self, status: str, allowed: list[str]):
        self.status = status
        self.allowed = allowed
        super().__init__(
            message=f"Invalid status '{status}'. Allowed values: {', '.join(allowed)}",
            error_code="INVALID_STATUS",
            status_code=400,
        )


class InvalidStatusTransitionError(InvalidStatusError):
    """Status is valid but the request cannot move to it from where it is."""

    def __init__(self, current: str, new: str, allowed: list[str], reason: str | None = None):
        super().__init__(new, allowed)
        self.current = current
        self.error_code = "INVALID_STATUS_TRANSITION"
        self.status_code = 409
        self.message = reason or (
            f"Invalid status transition: {current} -> {new}. "
            f"Valid transitions: {allowed}"
        )
        self.args = (self.message,)


class NotFoundError(EnrollmentServiceError):
    """Referenced enrollment request or ledger entry does not exist."""

    def __init__(self, entity: str, entity_id: int | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity} {entity_id} not found",
            error_code="NOT_FOUND",
            status_code=404,
        )


class DuplicateEnrollmentError(EnrollmentServiceError):
    """A change would create a second active ledger row for the same identity."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="DUPLICATE_ENROLLMENT", status_code=409)


class FatalBatchError(EnrollmentServiceError):
    """A batch operation could not even read its working set."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="MIGRATION_FAILED", status_code=500)
