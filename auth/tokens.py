"""
auth/tokens.py -- Stateless session tokens (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the server secret and
       carry userId, email, iat and exp. Any instance holding the same secret
       can verify a token issued by any other -- there is no session table.

  Secret injection: the key is passed to SessionTokenCodec at construction
       (app lifespan) instead of being read from a module global. An empty
       key raises immediately, so a missing secret is a startup failure.

  Three verification failures:
       TokenUnparseable -- not three base64url segments or the header is not
                           JSON. Rejected before any signature work.
       TokenMalformed   -- signature mismatch, wrong algorithm (incl. "none"),
                           non-canonical base64url, or claims of the wrong
                           shape.
       TokenExpired     -- everything checks out but now > exp.
       The route layer merges the first two into one client message.

  Canonical encoding: base64url decoders ignore the spare low bits of a
       final partial character, so two different strings can decode to the
       same signature. Each segment must re-encode to exactly itself;
       otherwise flipping the last character of a valid token would still
       verify.

  Expiry is checked here against the injected clock (verify_exp is turned
       off in jose) so tests can move time forward without sleeping.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import TokenExpired, TokenMalformed, TokenUnparseable
from auth.models import SessionClaims

logger = logging.getLogger("storefront.auth.tokens")

_ALGORITHM = "HS256"
DEFAULT_LIFETIME = timedelta(days=1)

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_canonical_b64url(segment: str) -> bool:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        return False
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii") == segment


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class SessionTokenCodec:
    """Issue and verify signed session tokens.

    Usage:
        codec = SessionTokenCodec(settings.secret_key, lifetime=settings.token_lifetime)
        token = codec.issue(user.id, user.email)
        claims = codec.verify(token)  # raises TokenExpired / TokenInvalid
    """

    def __init__(
        self,
        secret_key: str,
        lifetime: timedelta = DEFAULT_LIFETIME,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("A signing secret is required to issue session tokens.")
        if lifetime.total_seconds() <= 0:
            raise ValueError("Session token lifetime must be positive.")
        self._secret_key = secret_key
        self.lifetime = lifetime
        self._clock = clock

    def issue(self, subject_id: str, subject_email: str) -> str:
        """Encode a signed JWT for the given identity, expiring after self.lifetime."""
        issued_at = int(self._clock().timestamp())
        payload = {
            "userId": subject_id,
            "email": subject_email,
            "iat": issued_at,
            "exp": issued_at + int(self.lifetime.total_seconds()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> SessionClaims:
        """Return the verified claims or raise a TokenUnparseable / TokenMalformed / TokenExpired."""
        segments = token.split(".") if isinstance(token, str) else []
        if len(segments) != 3 or not all(_SEGMENT_RE.match(s) for s in segments):
            raise TokenUnparseable("token is not three base64url segments")
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenUnparseable("token header is not valid JSON") from exc
        if not all(_is_canonical_b64url(s) for s in segments):
            raise TokenMalformed("non-canonical base64url encoding")

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenMalformed(f"signature or claims rejected: {exc}") from exc

        subject_id = payload.get("userId")
        subject_email = payload.get("email")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not (
            isinstance(subject_id, str)
            and subject_id
            and isinstance(subject_email, str)
            and _is_int(issued_at)
            and _is_int(expires_at)
        ):
            raise TokenMalformed("required claims missing or of the wrong type")

        if self._clock().timestamp() > expires_at:
            raise TokenExpired(f"token for {subject_id} expired at {expires_at}")

        return SessionClaims(
            subject_id=subject_id,
            subject_email=subject_email,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )
