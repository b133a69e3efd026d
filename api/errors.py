"""
api/errors.py -- AuthError -> HTTP status / client message.

One table covers the whole auth taxonomy. Lookup walks the exception's MRO,
so TokenMalformed and TokenUnparseable share TokenInvalid's entry (clients
must not learn which parser check failed) while TokenExpired keeps its own
message to prompt a fresh login.

_assert_exhaustive() runs at import: a new AuthError subclass without an
entry (direct or inherited) stops the app from starting instead of
surfacing later as a 500.

Client messages are fixed strings. The text an AuthError was raised with is
for server logs only and never reaches the response body.
"""

from __future__ import annotations

from auth.errors import (
    AuthError,
    EmailAlreadyExists,
    InvalidCredentials,
    InvalidOrExpiredToken,
    RateLimited,
    ResetEmailFailed,
    TokenExpired,
    TokenInvalid,
    TokenMissing,
)

# type -> (status, client message)
ERROR_TABLE: dict[type[AuthError], tuple[int, str]] = {
    EmailAlreadyExists: (409, "Email already registered. Please use another email."),
    InvalidCredentials: (401, "Invalid email or password."),
    RateLimited: (429, "A reset email was already sent. Try again in {minutes_left} minute(s)."),
    InvalidOrExpiredToken: (401, "Invalid or expired reset token."),
    ResetEmailFailed: (503, "Could not send the reset email. Please try again later."),
    TokenMissing: (401, "Authentication required."),
    TokenExpired: (401, "Your session has expired. Please log in again."),
    TokenInvalid: (401, "Invalid session token."),
}


def _all_subclasses(cls: type) -> list[type]:
    found = []
    for sub in cls.__subclasses__():
        found.append(sub)
        found.extend(_all_subclasses(sub))
    return found


def lookup(error_type: type[AuthError]) -> tuple[int, str] | None:
    for klass in error_type.__mro__:
        if klass in ERROR_TABLE:
            return ERROR_TABLE[klass]
    return None


def _assert_exhaustive() -> None:
    missing = [cls.__name__ for cls in _all_subclasses(AuthError) if lookup(cls) is None]
    if missing:
        raise RuntimeError(f"AuthError subclasses without an HTTP mapping: {missing}")


_assert_exhaustive()


def describe(exc: AuthError) -> tuple[int, str, dict[str, str]]:
    """Return (status, client message, extra headers) for an AuthError."""
    status, message = lookup(type(exc))  # exhaustive -- never None
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimited):
        message = message.format(minutes_left=exc.minutes_left)
        headers["Retry-After"] = str(exc.minutes_left * 60)
    if status == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return status, message, headers
