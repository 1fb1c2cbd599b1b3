from typing import Optional, Any


class AutoFloyError(Exception):
    """
    Base exception for AutoFloy application.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class BadRequestError(AutoFloyError):
    """
    Raised when a request is missing fields or violates a business rule.
    """
    def __init__(self, message: str = "Bad request", details: Optional[Any] = None, code: str = "BAD_REQUEST"):
        super().__init__(message, code=code, status_code=400, details=details)


class AuthenticationError(AutoFloyError):
    """
    Raised when the bearer token is missing, invalid or expired.
    """
    def __init__(self, message: str = "Unauthorized", details: Optional[Any] = None):
        super().__init__(message, code="UNAUTHORIZED", status_code=401, details=details)


class ForbiddenError(AutoFloyError):
    """
    Raised when an authenticated user may not perform an action.
    """
    def __init__(self, message: str = "Forbidden", details: Optional[Any] = None):
        super().__init__(message, code="FORBIDDEN", status_code=403, details=details)


class ResourceNotFoundError(AutoFloyError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class ConflictError(AutoFloyError):
    """
    Raised when a unique value (email, phone) is already taken.
    """
    def __init__(self, message: str = "Conflict", details: Optional[Any] = None):
        super().__init__(message, code="CONFLICT", status_code=409, details=details)


class RateLimitError(AutoFloyError):
    """
    Raised when a caller exceeds a request budget or hits a cooldown.
    """
    def __init__(self, message: str = "Too many requests", details: Optional[Any] = None):
        super().__init__(message, code="RATE_LIMITED", status_code=429, details=details)


class ExternalServiceError(AutoFloyError):
    """
    Raised when an external service (Resend, Twilio, webhooks) fails.
    """
    def __init__(
        self,
        message: str = "External service error",
        details: Optional[Any] = None,
        code: str = "EXTERNAL_SERVICE_ERROR",
        status_code: int = 502,
    ):
        super().__init__(message, code=code, status_code=status_code, details=details)
