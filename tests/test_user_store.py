"""
tests/test_user_store.py -- Unit tests for auth/store.py (UserStore).

Covers:
  - create/read round trip, generated ids, timestamps
  - UNIQUE constraints as the race arbiter (email, google_id) while NULLs stay
    distinct
  - conditional consume operations (OTP, reset token, verification token)
  - update_user field whitelist
  - list_by_role ordering and delete
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User


def _in(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


class TestCreateAndRead:
    def test_create_returns_hex_id_and_stamps_timestamps(self, store):
        uid = store.create_user(User(name="Ada", email="ada@example.com"))
        assert len(uid) == 32
        user = store.get_by_id(uid)
        assert user.email == "ada@example.com"
        assert user.role == "user"
        assert user.is_verified is False
        assert user.password_hash is None
        assert user.created_at and user.updated_at

    def test_lookup_by_each_unique_key(self, store):
        uid = store.create_user(
            User(
                name="Ada",
                email="ada@example.com",
                google_id="g-123",
                verification_token="v" * 32,
                reset_token="r" * 32,
                reset_expires_at=_in(60),
            )
        )
        assert store.get_by_email("ada@example.com").id == uid
        assert store.get_by_google_id("g-123").id == uid
        assert store.get_by_verification_token("v" * 32).id == uid
        assert store.get_by_reset_token("r" * 32).id == uid

    def test_missing_lookups_return_none(self, store):
        assert store.get_by_id("nope") is None
        assert store.get_by_email("nobody@example.com") is None
        assert store.get_by_reset_token("x" * 32) is None

    def test_expiry_round_trips_as_aware_datetime(self, store):
        expires = _in(10)
        uid = store.create_user(User(name="A", email="a@example.com", otp_code="123456", otp_expires_at=expires))
        user = store.get_by_id(uid)
        assert user.otp_expires_at.tzinfo is not None
        assert abs((user.otp_expires_at - expires).total_seconds()) < 1

    def test_ping(self, store):
        assert store.ping() is True


class TestUniqueness:
    def test_duplicate_email_raises_integrity_error(self, store):
        store.create_user(User(name="A", email="dup@example.com"))
        with pytest.raises(IntegrityError):
            store.create_user(User(name="B", email="dup@example.com"))

    def test_duplicate_google_id_raises_integrity_error(self, store):
        store.create_user(User(name="A", email="a@example.com", google_id="g-1"))
        with pytest.raises(IntegrityError):
            store.create_user(User(name="B", email="b@example.com", google_id="g-1"))

    def test_many_accounts_without_google_link_or_tokens(self, store):
        for i in range(3):
            store.create_user(User(name=f"U{i}", email=f"u{i}@example.com"))
        assert len(store.list_by_role("user")) == 3

    def test_linking_a_taken_google_id_raises(self, store):
        store.create_user(User(name="A", email="a@example.com", google_id="g-1"))
        uid = store.create_user(User(name="B", email="b@example.com"))
        with pytest.raises(IntegrityError):
            store.update_user(uid, google_id="g-1")


class TestConsume:
    def test_consume_otp_clears_pair_and_verifies(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        store.set_otp(uid, "123456", _in(10))
        assert store.consume_otp(uid, "123456") is True
        user = store.get_by_id(uid)
        assert user.otp_code is None
        assert user.otp_expires_at is None
        assert user.is_verified is True

    def test_consume_otp_twice_only_first_succeeds(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        store.set_otp(uid, "123456", _in(10))
        assert store.consume_otp(uid, "123456") is True
        assert store.consume_otp(uid, "123456") is False

    def test_consume_replaced_otp_fails(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        store.set_otp(uid, "111111", _in(10))
        store.set_otp(uid, "222222", _in(10))
        assert store.consume_otp(uid, "111111") is False
        assert store.get_by_id(uid).otp_code == "222222"

    def test_consume_reset_token_sets_password_and_clears_pair(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        store.set_reset_token(uid, "t" * 32, _in(60))
        assert store.consume_reset_token(uid, "t" * 32, "new-hash") is True
        user = store.get_by_id(uid)
        assert user.password_hash == "new-hash"
        assert user.reset_token is None
        assert user.reset_expires_at is None
        assert user.is_verified is True
        assert store.consume_reset_token(uid, "t" * 32, "other-hash") is False

    def test_consume_verification_token(self, store):
        uid = store.create_user(User(name="A", email="a@example.com", verification_token="v" * 32))
        assert store.consume_verification_token(uid, "v" * 32) is True
        user = store.get_by_id(uid)
        assert user.is_verified is True
        assert user.verification_token is None
        assert store.consume_verification_token(uid, "v" * 32) is False


class TestUpdateAndDelete:
    def test_update_user_rejects_unknown_fields(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        with pytest.raises(ValueError, match="Unknown user fields"):
            store.update_user(uid, email="b@example.com")

    def test_update_user_missing_id_returns_false(self, store):
        assert store.update_user("missing", name="X") is False

    def test_update_email(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        assert store.update_email(uid, "new@example.com") is True
        assert store.get_by_email("new@example.com").id == uid

    def test_list_by_role_filters(self, store):
        store.create_user(User(name="U", email="u@example.com"))
        admin_id = store.create_user(User(name="Boss", email="boss@example.com", role="admin"))
        admins = store.list_by_role("admin")
        assert [a.id for a in admins] == [admin_id]

    def test_delete_user(self, store):
        uid = store.create_user(User(name="A", email="a@example.com"))
        assert store.delete_user(uid) is True
        assert store.get_by_id(uid) is None
        assert store.delete_user(uid) is False
