"""
auth/recovery.py -- Forgot-password / reset-password flow.

Lifecycle of a reset token:
  request_password_reset(email)
      unknown email  -> fixed 100ms sleep, generic message, nothing stored
      live token     -> RateLimited(minutes_left)
      otherwise      -> token + expiry stored together, email dispatched,
                        generic message
  reset_password(token, new_password)
      no live match  -> InvalidOrExpiredToken ("never existed", "expired"
                        and "already used" are indistinguishable)
      otherwise      -> new hash stored and token cleared in one conditional
                        UPDATE; a concurrent request with the same token
                        loses and gets InvalidOrExpiredToken

Security:
  [E1] The not-found branch sleeps a constant NOT_FOUND_DELAY and returns the
       same message as the found branch. It is a plain sleep, not a budget.
  [E2] If the email cannot be sent, the freshly stored token is cleared
       again (only if it still matches) before ResetEmailFailed is raised.
       Otherwise the user would be rate-limited for 15 minutes by a token
       they never received.

Layer rule: no imports from api/. mail/ is used only through the
EmailDispatcher contract.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from datetime import datetime

from auth.errors import InvalidOrExpiredToken, RateLimited, ResetEmailFailed
from auth.models import normalize_email
from auth.passwords import PasswordHasher
from auth.reset_tokens import ResetTokenGenerator, utcnow
from auth.store import CredentialStore
from mail.dispatcher import EmailDeliveryError, EmailDispatcher

logger = logging.getLogger("storefront.auth.recovery")

NOT_FOUND_DELAY = 0.1  # seconds [E1]

RESET_REQUESTED_MESSAGE = "If the email exists, password reset instructions have been sent."
RESET_DONE_MESSAGE = "Password has been reset successfully."


def minutes_until(expiry: datetime, now: datetime) -> int:
    """ceil((expiry - now) / 60s) -- the wait reported with RateLimited."""
    return math.ceil((expiry - now).total_seconds() / 60)


class PasswordRecoveryService:
    """Issues and consumes single-use reset tokens."""

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        generator: ResetTokenGenerator,
        dispatcher: EmailDispatcher,
        frontend_url: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._generator = generator
        self._dispatcher = dispatcher
        self._frontend_url = frontend_url
        self._clock = clock

    async def request_password_reset(self, email: str) -> str:
        """Start a reset for email and return the generic message.

        Raises:
            RateLimited: a token issued earlier is still valid.
            ResetEmailFailed: the email transport failed; no token remains.
        """
        email = normalize_email(email)
        user = self._store.find_by_email(email)
        if user is None:
            await asyncio.sleep(NOT_FOUND_DELAY)  # [E1]
            logger.info("Reset requested for unknown email")
            return RESET_REQUESTED_MESSAGE

        now = self._clock()
        if user.reset_token_expiry is not None and user.reset_token_expiry > now:
            raise RateLimited(minutes_until(user.reset_token_expiry, now))

        token, expires_at = self._generator.generate()
        if not self._store.issue_reset_token(user.id, token, expires_at, now):
            # A concurrent request stored its token between our read and write.
            current = self._store.find_by_id(user.id)
            if current is not None and current.reset_token_expiry is not None and current.reset_token_expiry > now:
                raise RateLimited(minutes_until(current.reset_token_expiry, now))
            # Row vanished between read and write: answer as for an unknown email.
            logger.warning("Reset token for %s not stored; user no longer present", user.id)
            return RESET_REQUESTED_MESSAGE

        try:
            await self._dispatcher.send_password_reset_email(email, token, self._frontend_url)
        except EmailDeliveryError as exc:
            self._store.clear_reset_token(user.id, token)  # [E2]
            logger.error("Reset email for %s not sent; token rolled back", user.id)
            raise ResetEmailFailed(str(exc)) from exc

        logger.info("Reset token issued for %s, expires %s", user.id, expires_at.isoformat())
        return RESET_REQUESTED_MESSAGE

    async def reset_password(self, token: str, new_password: str) -> str:
        """Consume token and set new_password.

        Raises:
            InvalidOrExpiredToken: token unknown, expired or already consumed.
        """
        user = self._store.find_by_valid_reset_token(token, self._clock())
        if user is None:
            logger.info("Reset attempted with invalid or expired token")
            raise InvalidOrExpiredToken("no live reset token matched")

        password_hash = await asyncio.to_thread(self._hasher.hash, new_password)
        if not self._store.consume_reset_token(user.id, token, password_hash, self._clock()):
            # Lost to a concurrent reset, or the token expired meanwhile.
            logger.info("Reset for %s lost the race for its token", user.id)
            raise InvalidOrExpiredToken("reset token consumed concurrently")

        logger.info("Password reset completed for %s", user.id)
        return RESET_DONE_MESSAGE
