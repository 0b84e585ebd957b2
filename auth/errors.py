"""
auth/errors.py -- Typed failures raised by the session core.

Every failure the core can report to a caller is a ServiceError subclass
carrying a stable machine-readable code, an HTTP status for the api/ layer,
and a client-safe message. Internal detail (SQL errors, stack traces) is
logged where the failure happens and never attached to the message.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for all typed failures surfaced by the auth core."""

    code: str = "service_error"
    status_code: int = 400
    message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationFailed(ServiceError):
    code = "validation_error"
    status_code = 422
    message = "Request validation failed."


class DuplicateEmail(ServiceError):
    code = "duplicate_email"
    status_code = 409
    message = "Email already registered."


class InvalidCredentials(ServiceError):
    """Used for both unknown email and wrong password (no account enumeration)."""

    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password."


class AccountInactive(ServiceError):
    code = "account_inactive"
    status_code = 403
    message = "Account is inactive. Please contact support."


class PendingApproval(ServiceError):
    code = "pending_approval"
    status_code = 403
    message = "Your account is pending approval. Please wait for admin verification."


class Rejected(ServiceError):
    code = "account_rejected"
    status_code = 403
    message = "Your account has been rejected. Please contact support."


class Suspended(ServiceError):
    code = "account_suspended"
    status_code = 403
    message = "Your account has been suspended. Please contact support."


class InvalidRefreshToken(ServiceError):
    code = "invalid_refresh_token"
    status_code = 403
    message = "Invalid refresh token."


class RefreshTokenExpired(ServiceError):
    code = "refresh_token_expired"
    status_code = 403
    message = "Refresh token expired."


class NotFound(ServiceError):
    code = "not_found"
    status_code = 404
    message = "Profile not found."


class IntegrityViolation(ServiceError):
    """Unexpected store constraint violation (e.g. a second profile row)."""

    code = "integrity_error"
    status_code = 409
    message = "Conflicting record."


class StoreUnavailable(ServiceError):
    code = "store_unavailable"
    status_code = 503
    message = "Service temporarily unavailable."


class RegistrationFailed(ServiceError):
    code = "registration_failed"
    status_code = 500
    message = "Registration failed."
