"""Error taxonomy shared by the domain, security and API layers."""

from __future__ import annotations


class IdentityError(Exception):
    """Base class for recoverable identity errors mapped to HTTP responses."""

    status_code: int = 400
    code: str = "identity_error"
    default_message: str = "request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(IdentityError):
    status_code = 400
    code = "validation_error"
    default_message = "invalid request"


class Conflict(IdentityError):
    status_code = 409
    code = "conflict"
    default_message = "email already in use"


class InvalidCredentials(IdentityError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "invalid credentials"


class Unauthenticated(IdentityError):
    status_code = 401
    code = "unauthenticated"
    default_message = "not authenticated"


class InvalidToken(Unauthenticated):
    code = "invalid_token"
    default_message = "invalid or expired token"


class Forbidden(IdentityError):
    status_code = 403
    code = "forbidden"
    default_message = "access denied"


class NotFound(IdentityError):
    status_code = 404
    code = "not_found"
    default_message = "account not found"


class RateLimited(IdentityError):
    status_code = 429
    code = "rate_limited"
    default_message = "rate limited"
