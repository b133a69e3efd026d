"""
tests/test_config.py -- core/config.py settings and duration parsing.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from core.config import Settings, parse_duration


@pytest.mark.parametrize(
    "value, expected",
    [
        ("3600", timedelta(hours=1)),
        ("45s", timedelta(seconds=45)),
        ("15m", timedelta(minutes=15)),
        ("12h", timedelta(hours=12)),
        ("1d", timedelta(days=1)),
        ("2w", timedelta(weeks=2)),
        (" 1D ", timedelta(days=1)),
    ],
)
def test_parse_duration(value: str, expected: timedelta) -> None:
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "0", "-1d", "1y", "1.5h", "d"])
def test_parse_duration_rejects(value: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


def test_dev_mode_generates_secret(monkeypatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret(monkeypatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError):
        Settings(debug=False, secret_key="")


def test_short_secret_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(debug=True, secret_key="too-short")


def test_defaults(monkeypatch) -> None:
    for name in ("TOKEN_EXPIRES_IN", "COOKIE_MAX_AGE_SECONDS", "BCRYPT_ROUNDS", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(debug=True)
    assert settings.token_lifetime == timedelta(days=1)
    assert settings.cookie_max_age_seconds == 7 * 24 * 60 * 60
    assert settings.bcrypt_rounds == 12
    assert settings.is_production is False


def test_production_flag() -> None:
    assert Settings(debug=True, environment="Production").is_production is True


@pytest.mark.parametrize("field, value", [("bcrypt_rounds", 3), ("bcrypt_rounds", 32), ("token_expires_in", "soon")])
def test_invalid_values_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        Settings(debug=True, **{field: value})
