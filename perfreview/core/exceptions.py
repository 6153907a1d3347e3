from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    """Malformed input: score out of range, text too long, wrong reviewer count.

    Not to be confused with pydantic.ValidationError, which is translated into this one
    at the service boundary.
    """
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details
        )


class AuthorizationError(AppException):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            error_code="PERMISSION_DENIED"
        )


class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} '{entity_id}' not found",
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )


class StoreError(AppException):
    """The underlying document store failed. Propagated as-is, never retried."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="STORE_ERROR",
            details=details
        )
