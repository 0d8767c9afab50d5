"""
auth/errors.py -- Error taxonomy for the credential flows.

Every failure a flow can report to a client is one of these. Each class
carries the HTTP status and the machine-readable code used in the
{"error": {"code", "message"}} envelope; api/main.py turns them into
responses with a single exception handler. Anything else that escapes a flow
is an unexpected server error (500, generic message, logged with context).

Anti-enumeration: InvalidCredentials, InvalidOrExpiredOtp and
InvalidOrExpiredToken each use one fixed default message no matter which
underlying check failed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for client-facing identity errors."""

    status_code: int = 400
    code: str = "bad_request"
    default_message: str = "Bad request."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class AccountExists(AuthError):
    status_code = 400
    code = "account_exists"
    default_message = "User already exists."


class Conflict(AuthError):
    status_code = 400
    code = "conflict"
    default_message = "The account was modified by a concurrent request. Please retry."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password."


class Unauthenticated(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "User not found."


class InvalidToken(AuthError):
    status_code = 400
    code = "invalid_token"
    default_message = "Invalid token."


class TokenExpired(InvalidToken):
    code = "token_expired"
    default_message = "Token has expired."


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    code = "invalid_or_expired_token"
    default_message = "Invalid or expired token."


class InvalidOrExpiredOtp(AuthError):
    status_code = 400
    code = "invalid_or_expired_otp"
    default_message = "Invalid or expired OTP."


class ServerError(AuthError):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred."
