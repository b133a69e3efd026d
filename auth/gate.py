"""
auth/gate.py -- Request-time session check.

States for one request:

    NoToken    --------------------------------------> TokenMissing (401)
    TokenPresent -> Verifying -> Authenticated (SessionClaims)
                              -> TokenExpired (401)
                              -> TokenInvalid (401)

Token sources are tried in a fixed order:
  1. "token" cookie -- browsers (httpOnly, samesite=strict).
  2. Authorization: Bearer <token> -- API clients and tests.

Each present token is verified on its own. The first one that verifies wins.
If none does, the failure of the first present token is raised, so a stale
cookie next to a valid bearer header still authenticates, and a client that
sent only a broken token learns why.

The verified claims are the identity. No database lookup follows; the token
is the source of truth for its lifetime.

authenticate_optional() is the soft variant for routes that behave
differently for signed-in users but do not require one: every failure
becomes None.

Layer rule: no imports from api/. Works on anything with Starlette-style
.cookies / .headers mappings.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from auth.cookies import CookieSessionTransport
from auth.errors import AuthError, TokenExpired, TokenInvalid, TokenMissing, TokenUnparseable
from auth.models import SessionClaims
from auth.tokens import SessionTokenCodec

logger = logging.getLogger("storefront.auth.gate")

_BEARER_RE = re.compile(r"^Bearer$", re.IGNORECASE)


class TokenSource(Protocol):
    name: str

    def extract(self, request) -> str | None:
        """Return the raw token, None if absent, or raise TokenUnparseable if present but garbled."""
        ...


class CookieTokenSource:
    name = "cookie"

    def __init__(self, transport: CookieSessionTransport) -> None:
        self._transport = transport

    def extract(self, request) -> str | None:
        return self._transport.read(request)


class BearerTokenSource:
    name = "bearer"

    def extract(self, request) -> str | None:
        header = request.headers.get("Authorization")
        if not header:
            return None
        parts = header.split(" ")
        if len(parts) != 2 or not parts[1] or not _BEARER_RE.match(parts[0]):
            raise TokenUnparseable("Authorization header is not 'Bearer <token>'")
        return parts[1]


class SessionGate:
    """Turn an inbound request into SessionClaims or a TokenMissing/TokenExpired/TokenInvalid."""

    def __init__(self, codec: SessionTokenCodec, sources: list[TokenSource]) -> None:
        self._codec = codec
        self._sources = list(sources)

    @classmethod
    def default(cls, codec: SessionTokenCodec, transport: CookieSessionTransport) -> "SessionGate":
        """Cookie first, then Bearer header."""
        return cls(codec, [CookieTokenSource(transport), BearerTokenSource()])

    def authenticate(self, request) -> SessionClaims:
        first_error: AuthError | None = None
        for source in self._sources:
            try:
                token = source.extract(request)
                if token is None:
                    continue
                claims = self._codec.verify(token)
            except (TokenExpired, TokenInvalid) as exc:
                logger.info("Session via %s rejected: %s (%s)", source.name, type(exc).__name__, exc)
                if first_error is None:
                    first_error = exc
                continue
            return claims

        if first_error is not None:
            raise first_error
        raise TokenMissing("no session token on request")

    def authenticate_optional(self, request) -> SessionClaims | None:
        try:
            return self.authenticate(request)
        except AuthError:
            return None
