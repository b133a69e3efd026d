"""
tests/test_store.py -- Unit tests for auth/store.py (UserStore).

Covers:
  - create / find with case-insensitive email identity
  - UNIQUE(email) surfaced as DuplicateEmailError
  - update_by_id / update_by_email patch rules (immutable fields, reset pair)
  - CHECK constraint on the reset token pair
  - conditional reset-token UPDATEs: issue, consume, clear
  - inclusive expiry in find_by_valid_reset_token
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import UserProfile
from auth.store import DuplicateEmailError, UserStore, _users


class TestCreateAndFind:
    def test_create_returns_stored_record(self, store: UserStore) -> None:
        user = store.create("A@X.com", "hash", UserProfile(name="Ana", postal_code="01001000", phone="11912345678"))
        assert len(user.id) == 32
        assert user.email == "a@x.com"
        assert user.reset_token is None and user.reset_token_expiry is None
        found = store.find_by_id(user.id)
        assert found == user

    def test_email_lookup_is_case_insensitive(self, store: UserStore) -> None:
        user = store.create("a@x.com", "hash")
        assert store.find_by_email("  A@X.COM ").id == user.id

    def test_unknown_lookups_return_none(self, store: UserStore) -> None:
        assert store.find_by_email("nobody@x.com") is None
        assert store.find_by_id("missing") is None

    def test_duplicate_email_any_case(self, store: UserStore) -> None:
        store.create("a@x.com", "hash")
        with pytest.raises(DuplicateEmailError):
            store.create("A@x.COM", "other")
        assert len(store.list_users()) == 1

    def test_list_users_ordered_by_email(self, store: UserStore) -> None:
        for email in ("c@x.com", "a@x.com", "b@x.com"):
            store.create(email, "hash")
        assert [u.email for u in store.list_users()] == ["a@x.com", "b@x.com", "c@x.com"]

    def test_public_view_has_no_secrets(self, store: UserStore) -> None:
        public = store.create("a@x.com", "hash").public_view()
        assert not hasattr(public, "password_hash")
        assert not hasattr(public, "reset_token")


class TestUpdates:
    def test_update_by_id(self, store: UserStore) -> None:
        user = store.create("a@x.com", "old")
        assert store.update_by_id(user.id, password_hash="new", name="Ana") is True
        assert store.find_by_id(user.id).password_hash == "new"

    def test_update_by_email(self, store: UserStore) -> None:
        store.create("a@x.com", "old")
        assert store.update_by_email("A@X.com", phone="11912345678") is True
        assert store.find_by_email("a@x.com").phone == "11912345678"

    def test_update_missing_user_returns_false(self, store: UserStore) -> None:
        assert store.update_by_id("missing", name="x") is False

    def test_immutable_fields_refused(self, store: UserStore) -> None:
        user = store.create("a@x.com", "hash")
        with pytest.raises(ValueError):
            store.update_by_id(user.id, email="b@x.com")

    def test_reset_pair_must_be_updated_together(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        with pytest.raises(ValueError):
            store.update_by_id(user.id, reset_token="t")
        with pytest.raises(ValueError):
            store.update_by_id(user.id, reset_token="t", reset_token_expiry=None)

    def test_naive_datetimes_refused(self, store: UserStore) -> None:
        user = store.create("a@x.com", "hash")
        with pytest.raises(ValueError):
            store.update_by_id(user.id, reset_token="t", reset_token_expiry=datetime(2024, 1, 1))

    def test_check_constraint_guards_raw_writes(self, store: UserStore) -> None:
        user = store.create("a@x.com", "hash")
        with pytest.raises(IntegrityError):
            with store.engine.connect() as conn:
                conn.execute(_users.update().where(_users.c.id == user.id).values(reset_token="t"))
                conn.commit()


class TestResetTokens:
    def test_issue_then_find(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        expires = clock.now + timedelta(minutes=15)
        assert store.issue_reset_token(user.id, "tok", expires, clock.now) is True
        found = store.find_by_valid_reset_token("tok", clock.now)
        assert found.id == user.id
        assert found.reset_token_expiry == expires

    def test_issue_refused_while_live_token_exists(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        store.issue_reset_token(user.id, "first", clock.now + timedelta(minutes=15), clock.now)
        assert store.issue_reset_token(user.id, "second", clock.now + timedelta(minutes=15), clock.now) is False
        assert store.find_by_id(user.id).reset_token == "first"

    def test_issue_replaces_expired_token(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        store.issue_reset_token(user.id, "first", clock.now + timedelta(minutes=15), clock.now)
        clock.advance(minutes=16)
        assert store.issue_reset_token(user.id, "second", clock.now + timedelta(minutes=15), clock.now) is True
        assert store.find_by_id(user.id).reset_token == "second"

    def test_issue_replaces_token_at_its_expiry_instant(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        store.issue_reset_token(user.id, "first", clock.now + timedelta(minutes=15), clock.now)
        clock.advance(minutes=15)
        assert store.issue_reset_token(user.id, "second", clock.now + timedelta(minutes=15), clock.now) is True
        assert store.find_by_id(user.id).reset_token == "second"

    def test_expiry_is_inclusive(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        expires = clock.now + timedelta(minutes=15)
        store.issue_reset_token(user.id, "tok", expires, clock.now)
        assert store.find_by_valid_reset_token("tok", expires) is not None
        assert store.find_by_valid_reset_token("tok", expires + timedelta(seconds=1)) is None

    def test_find_requires_exact_token(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        store.issue_reset_token(user.id, "tok", clock.now + timedelta(minutes=15), clock.now)
        assert store.find_by_valid_reset_token("TOK", clock.now) is None
        assert store.find_by_valid_reset_token("", clock.now) is None

    def test_consume_is_single_use(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "old")
        store.issue_reset_token(user.id, "tok", clock.now + timedelta(minutes=15), clock.now)
        assert store.consume_reset_token(user.id, "tok", "new", clock.now) is True
        assert store.consume_reset_token(user.id, "tok", "newer", clock.now) is False
        stored = store.find_by_id(user.id)
        assert stored.password_hash == "new"
        assert stored.reset_token is None and stored.reset_token_expiry is None

    def test_consume_refuses_expired_token(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "old")
        store.issue_reset_token(user.id, "tok", clock.now + timedelta(minutes=15), clock.now)
        clock.advance(minutes=15, seconds=1)
        assert store.consume_reset_token(user.id, "tok", "new", clock.now) is False
        assert store.find_by_id(user.id).password_hash == "old"

    def test_clear_only_matching_token(self, store: UserStore, clock) -> None:
        user = store.create("a@x.com", "hash")
        store.issue_reset_token(user.id, "tok", clock.now + timedelta(minutes=15), clock.now)
        assert store.clear_reset_token(user.id, "other") is False
        assert store.clear_reset_token(user.id, "tok") is True
        assert store.find_by_id(user.id).reset_token is None
