"""
tests/test_reset_tokens.py -- Unit tests for auth/reset_tokens.py.
"""

from __future__ import annotations

import re
from datetime import timedelta

from auth.reset_tokens import RESET_TOKEN_TTL, ResetTokenGenerator


def test_token_is_64_lowercase_hex(clock) -> None:
    token, _ = ResetTokenGenerator(clock=clock).generate()
    assert re.fullmatch(r"[0-9a-f]{64}", token)


def test_expiry_is_fifteen_minutes_from_now(clock) -> None:
    _, expires_at = ResetTokenGenerator(clock=clock).generate()
    assert RESET_TOKEN_TTL == timedelta(minutes=15)
    assert expires_at == clock.now + timedelta(minutes=15)


def test_tokens_do_not_repeat(clock) -> None:
    generator = ResetTokenGenerator(clock=clock)
    tokens = {generator.generate()[0] for _ in range(200)}
    assert len(tokens) == 200


def test_custom_ttl(clock) -> None:
    _, expires_at = ResetTokenGenerator(clock=clock, ttl=timedelta(minutes=5)).generate()
    assert expires_at - clock.now == timedelta(minutes=5)
