"""
auth/errors.py -- Exception taxonomy for the auth core.

Every error carries a machine-readable `code` and the HTTP `status_code` the
boundary should answer with, so api/main.py can map the whole hierarchy with a
single exception handler.

AuthenticationError subclasses are deliberately uninformative: the message
never says which sub-check failed (unknown email vs wrong password, expired vs
revoked token). NotFoundError is surfaced as 401 for the same reason.

StoreError wraps any persistence failure. It is always fatal and is never
swallowed by the services -- a silently dropped write could leave a stale
session active or an upgraded hash unpersisted.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


# ---------------------------------------------------------------------------
# 400 / 409 -- recoverable input problems
# ---------------------------------------------------------------------------


class ValidationError(AuthError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input."

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class WeakPassword(ValidationError):
    code = "weak_password"
    default_message = "Password does not meet the security requirements."


class ConflictError(AuthError):
    code = "conflict"
    status_code = 409


class SamePassword(ConflictError):
    code = "same_password"
    default_message = "New password must differ from the current password."


class EmailTaken(ConflictError):
    code = "email_taken"
    default_message = "Email address is already registered."


# ---------------------------------------------------------------------------
# 401 -- authentication
# ---------------------------------------------------------------------------


class AuthenticationError(AuthError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class InvalidCredentials(AuthenticationError):
    code = "bad_credentials"
    default_message = "Invalid email or password."


class WrongCurrentPassword(AuthenticationError):
    code = "wrong_current_password"
    default_message = "Current password is incorrect."


class InvalidToken(AuthenticationError):
    code = "invalid_token"
    default_message = "Token is invalid or expired."


class NotFoundError(AuthenticationError):
    """Identity vanished between issuance and use. Fails closed as a 401."""

    code = "not_found"
    default_message = "Authentication required."


# ---------------------------------------------------------------------------
# 403 -- authorization
# ---------------------------------------------------------------------------


class AuthorizationError(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "Insufficient permissions."


class Forbidden(AuthorizationError):
    pass


# ---------------------------------------------------------------------------
# 500 -- persistence
# ---------------------------------------------------------------------------


class StoreError(AuthError):
    code = "store_error"
    status_code = 500
    default_message = "Persistent store failure."
