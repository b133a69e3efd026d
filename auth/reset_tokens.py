"""
auth/reset_tokens.py -- Single-use password reset tokens.

secrets.token_hex(32) gives 256 bits of entropy rendered as 64 hex chars --
guessing a live token within its 15 minute window is infeasible. The token is
stored as-is on the user row; it is never logged.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

RESET_TOKEN_BYTES = 32
RESET_TOKEN_TTL = timedelta(minutes=15)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResetTokenGenerator:
    """Produce (token, expires_at) pairs. The clock is injectable for tests."""

    def __init__(self, clock: Callable[[], datetime] = utcnow, ttl: timedelta = RESET_TOKEN_TTL) -> None:
        self._clock = clock
        self.ttl = ttl

    def generate(self) -> tuple[str, datetime]:
        return secrets.token_hex(RESET_TOKEN_BYTES), self._clock() + self.ttl
