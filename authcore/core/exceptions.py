"""
Error taxonomy for the authorization core.

Services raise these typed errors; the HTTP layer renders them through
`authcore.core.error_handlers`.  Messages are deliberately generic:
callers must not be able to tell "unknown user" from "wrong password",
or "unknown token" from "already consumed token".
"""

from fastapi import status


class AuthCoreError(Exception):
    """Base class — carries the HTTP status and a stable error code."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "AUTH_CORE_ERROR"
    default_detail: str = "Request could not be processed"
    retryable: bool = False

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidCredentialsError(AuthCoreError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "INVALID_CREDENTIALS"
    default_detail = "Invalid email or password"


class AccountNotActiveError(AuthCoreError):
    """Raised only once the caller has proven who they are."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "ACCOUNT_NOT_ACTIVE"
    default_detail = "Account is not active"

    def __init__(self, account_status: str, detail: str | None = None):
        self.account_status = account_status
        super().__init__(detail)


class InsufficientPermissionError(AuthCoreError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "INSUFFICIENT_PERMISSIONS"
    default_detail = "Insufficient permissions"


class AuthenticationRequiredError(AuthCoreError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTHENTICATION_REQUIRED"
    default_detail = "Authentication required"


class InvalidTokenError(AuthCoreError):
    error_code = "INVALID_TOKEN"
    default_detail = "Invalid or expired token"


class ExpiredTokenError(AuthCoreError):
    error_code = "EXPIRED_TOKEN"
    default_detail = "Token has expired, request a new one"


class DuplicateNameError(AuthCoreError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "DUPLICATE_NAME"
    default_detail = "Name is already in use"


class ProtectedRoleError(AuthCoreError):
    error_code = "PROTECTED_ROLE"
    default_detail = "System roles cannot be deleted"


class NotFoundError(AuthCoreError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    default_detail = "Resource not found"


class StorageUnavailableError(AuthCoreError):
    """The only retryable failure: the store timed out or went away."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "STORAGE_UNAVAILABLE"
    default_detail = "Storage temporarily unavailable, retry later"
    retryable = True


class ValidationError(AuthCoreError):
    error_code = "VALIDATION_ERROR"
    default_detail = "Invalid input"
