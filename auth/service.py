"""
auth/service.py -- Registration, login and password change.

AuthService is called by route handlers with already-validated input. It
never touches the HTTP response; every failure leaves as an AuthError
subclass and the route layer maps it to a status code.

Security:
  [C1] login_user() runs one full bcrypt check whether or not the email
       exists, so response time does not reveal registered addresses. Unknown
       email and wrong password raise the same InvalidCredentials.
  [R1] The "email already taken" lookup in register_user() is an early exit,
       not the guarantee. UNIQUE(email) in the store decides concurrent
       registrations; DuplicateEmailError becomes EmailAlreadyExists.

bcrypt is CPU-bound, so hashing runs in a worker thread (asyncio.to_thread)
and other requests keep flowing while a hash is computed.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging

from auth.errors import EmailAlreadyExists, InvalidCredentials
from auth.models import AuthResult, PublicUser, UserProfile, normalize_email
from auth.passwords import PasswordHasher
from auth.store import CredentialStore, DuplicateEmailError
from auth.tokens import SessionTokenCodec

logger = logging.getLogger("storefront.auth")


class AuthService:
    """Orchestrates the store, the hasher and the session codec."""

    def __init__(self, store: CredentialStore, hasher: PasswordHasher, codec: SessionTokenCodec) -> None:
        self._store = store
        self._hasher = hasher
        self._codec = codec

    async def register_user(self, email: str, password: str, profile: UserProfile | None = None) -> AuthResult:
        """Create an account and return it with a fresh session token.

        Raises:
            EmailAlreadyExists: the email is taken (checked up front and again
                by the store's unique constraint).
        """
        email = normalize_email(email)
        if self._store.find_by_email(email) is not None:
            logger.info("Registration rejected, email already registered: %s", email)
            raise EmailAlreadyExists(email)

        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        try:
            user = self._store.create(email, password_hash, profile)
        except DuplicateEmailError as exc:
            # [R1] lost the race against a concurrent registration
            logger.info("Registration lost a race on %s", email)
            raise EmailAlreadyExists(email) from exc

        logger.info("Created user %s (%s)", user.id, email)
        return AuthResult(user=user.public_view(), token=self._codec.issue(user.id, user.email))

    async def login_user(self, email: str, password: str) -> AuthResult:
        """Check credentials and issue a session token.

        Raises:
            InvalidCredentials: unknown email or wrong password -- identical
                in both cases [C1].
        """
        email = normalize_email(email)
        user = self._store.find_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            await asyncio.to_thread(self._hasher.burn, password)
            logger.info("Login failed for %s", email)
            raise InvalidCredentials(email)

        if not await asyncio.to_thread(self._hasher.verify, password, user.password_hash):
            logger.info("Login failed for %s", email)
            raise InvalidCredentials(email)

        logger.info("User %s logged in", user.id)
        return AuthResult(user=user.public_view(), token=self._codec.issue(user.id, user.email))

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Replace the password of an authenticated user.

        The current password is required even though the caller holds a valid
        session, so a stolen cookie alone cannot take over the account. Any
        pending reset token is dropped along with the old password.
        """
        user = self._store.find_by_id(user_id)
        if user is None:
            await asyncio.to_thread(self._hasher.burn, current_password)
            raise InvalidCredentials(user_id)
        if not await asyncio.to_thread(self._hasher.verify, current_password, user.password_hash):
            logger.info("Password change rejected for %s: wrong current password", user_id)
            raise InvalidCredentials(user_id)

        password_hash = await asyncio.to_thread(self._hasher.hash, new_password)
        self._store.update_by_id(user_id, password_hash=password_hash, reset_token=None, reset_token_expiry=None)
        logger.info("Password changed for %s", user_id)

    def list_users(self) -> list[PublicUser]:
        return [u.public_view() for u in self._store.list_users()]
