"""
auth/cookies.py -- Session token <-> "token" cookie.

Cookie attributes:
  httponly=True      JS cannot read the cookie (XSS mitigation).
  samesite="strict"  never sent on cross-site requests (CSRF mitigation).
  secure             only over HTTPS; on when ENVIRONMENT=production.
  path="/"           the whole API.
  max_age            7 days by default.

clear() must send the same path / samesite / secure / httponly values as
attach(). Browsers treat a cookie with different attributes as a different
cookie and the original survives. Both methods therefore read one
attribute dict.

The cookie outlives the 1-day token on purpose: the token's own exp is
authoritative, SessionGate reports TokenExpired, and the 401 response clears
the stale cookie so the client is prompted to log in again.
"""

from __future__ import annotations

COOKIE_NAME = "token"
DEFAULT_MAX_AGE = 7 * 24 * 60 * 60


class CookieSessionTransport:
    """Write, clear and read the session cookie on Starlette responses/requests."""

    def __init__(self, secure: bool, max_age: int = DEFAULT_MAX_AGE, name: str = COOKIE_NAME) -> None:
        self.name = name
        self.secure = secure
        self.max_age = max_age

    def attributes(self) -> dict:
        """Attributes shared by attach() and clear()."""
        return {
            "path": "/",
            "secure": self.secure,
            "httponly": True,
            "samesite": "strict",
        }

    def attach(self, response, token: str) -> None:
        response.set_cookie(self.name, value=token, max_age=self.max_age, **self.attributes())

    def clear(self, response) -> None:
        response.delete_cookie(self.name, **self.attributes())

    def read(self, request) -> str | None:
        return request.cookies.get(self.name) or None
