"""
auth/models.py -- Domain dataclasses for credential and session entities.

Pattern: Data class (pure data container, almost no logic). Stores and
services do the work; these classes own the domain shape.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def normalize_email(email: str) -> str:
    """Email is a case-insensitive identity key. Every lookup and write goes through here."""
    return email.strip().lower()


@dataclass
class UserProfile:
    """Non-credential fields captured at registration."""

    name: str | None = None
    postal_code: str | None = None
    phone: str | None = None


@dataclass
class PublicUser:
    """The view of a user that may leave the service layer.

    Deliberately has no password_hash / reset_token / reset_token_expiry
    fields, so a careless serializer cannot leak them.
    """

    id: str
    email: str
    name: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    created_at: str | None = None


@dataclass
class UserCredential:
    """A stored user record as seen by the auth core.

    reset_token and reset_token_expiry are both None or both set. The store
    enforces this with a CHECK constraint; nothing else writes them.
    """

    id: str
    email: str
    password_hash: str
    name: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    reset_token: str | None = None
    reset_token_expiry: datetime | None = None  # timezone-aware UTC
    created_at: str | None = None

    def public_view(self) -> PublicUser:
        return PublicUser(
            id=self.id,
            email=self.email,
            name=self.name,
            postal_code=self.postal_code,
            phone=self.phone,
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token -- the request's identity.

    Produced only by SessionTokenCodec.verify(); handlers that receive one can
    trust it without a database lookup for the token's lifetime.
    """

    subject_id: str
    subject_email: str
    issued_at: datetime
    expires_at: datetime


@dataclass
class AuthResult:
    """Return value of register_user() / login_user()."""

    user: PublicUser
    token: str
