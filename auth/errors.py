"""
auth/errors.py -- Closed error taxonomy for the credential subsystem.

Every business-rule failure raised by auth/ is one of the classes below. The
transport boundary (api/errors.py) maps each leaf to a status code and a
client message through one exhaustive table, so handlers never compare error
strings.

Messages passed to these exceptions are for server logs. Clients only ever
see the fixed text from the mapping table.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all expected auth failures."""

    code = "auth_error"


class EmailAlreadyExists(AuthError):
    code = "email_already_exists"


class InvalidCredentials(AuthError):
    """Unknown email and wrong password both raise this -- never distinguish them."""

    code = "invalid_credentials"


class RateLimited(AuthError):
    """A reset token is still live for this account."""

    code = "rate_limited"

    def __init__(self, minutes_left: int) -> None:
        super().__init__(f"reset already pending, {minutes_left} minute(s) left")
        self.minutes_left = minutes_left


class InvalidOrExpiredToken(AuthError):
    """Reset token never existed, expired, or was already used."""

    code = "invalid_or_expired_token"


class ResetEmailFailed(AuthError):
    """The reset email could not be handed to the mail transport."""

    code = "reset_email_failed"


# ---------------------------------------------------------------------------
# Session token failures (SessionGate / SessionTokenCodec)
# ---------------------------------------------------------------------------


class TokenMissing(AuthError):
    code = "token_missing"


class TokenExpired(AuthError):
    """Signature valid, but the token is past its exp claim."""

    code = "token_expired"


class TokenInvalid(AuthError):
    """Token cannot be trusted. Clients get one message for both subclasses."""

    code = "token_invalid"


class TokenMalformed(TokenInvalid):
    """Bad signature, wrong algorithm, or claims of the wrong shape."""


class TokenUnparseable(TokenInvalid):
    """Not a JWT at all -- rejected before any signature check."""
