"""
tests/test_google_verifier.py -- Unit tests for auth/google.py.

Signs real RS256 ID tokens with a throwaway key and serves the matching JWKS
from a fake requests session, so the verifier runs its full decode/validate
path without network access.
"""

from __future__ import annotations

import time

import pytest
from authlib.jose import JsonWebKey, jwt

from auth.google import GoogleIdentityVerifier

CLIENT_ID = "listing-web.apps.googleusercontent.com"


class _Response:
    def __init__(self, payload: dict) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        pass

    def json(self) -> dict:
        return self._payload


class _CertsSession:
    """Serves a fixed JWKS and counts fetches."""

    def __init__(self, jwks: dict) -> None:
        self.jwks = jwks
        self.fetches = 0

    def get(self, url, timeout=None):
        self.fetches += 1
        return _Response(self.jwks)


@pytest.fixture(scope="module")
def signing_key():
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "test-kid"})


@pytest.fixture
def session(signing_key):
    return _CertsSession({"keys": [signing_key.as_dict(is_private=False)]})


@pytest.fixture
def verifier(session):
    return GoogleIdentityVerifier(CLIENT_ID, session=session)


def _id_token(key, kid="test-kid", **overrides) -> str:
    now = int(time.time())
    claims = {
        "iss": "https://accounts.google.com",
        "aud": CLIENT_ID,
        "sub": "1234567890",
        "email": "g@example.com",
        "email_verified": True,
        "name": "Gee",
        "picture": "https://img.example/p.png",
        "iat": now,
        "exp": now + 600,
    }
    claims.update(overrides)
    return jwt.encode({"alg": "RS256", "kid": kid}, claims, key).decode()


def test_valid_token_yields_profile(verifier, signing_key):
    profile = verifier.verify(_id_token(signing_key))
    assert profile.email == "g@example.com"
    assert profile.subject == "1234567890"
    assert profile.name == "Gee"
    assert profile.picture == "https://img.example/p.png"


def test_keys_are_cached(verifier, session, signing_key):
    verifier.verify(_id_token(signing_key))
    verifier.verify(_id_token(signing_key))
    assert session.fetches == 1


def test_unverified_email_rejected(verifier, signing_key):
    with pytest.raises(ValueError, match="not verified"):
        verifier.verify(_id_token(signing_key, email_verified=False))


def test_wrong_audience_rejected(verifier, signing_key):
    with pytest.raises(ValueError):
        verifier.verify(_id_token(signing_key, aud="someone-else.apps.googleusercontent.com"))


def test_wrong_issuer_rejected(verifier, signing_key):
    with pytest.raises(ValueError):
        verifier.verify(_id_token(signing_key, iss="https://evil.example"))


def test_expired_token_rejected(verifier, signing_key):
    past = int(time.time()) - 3600
    with pytest.raises(ValueError):
        verifier.verify(_id_token(signing_key, iat=past - 600, exp=past))


def test_token_from_unknown_key_rejected_after_one_refetch(verifier, session):
    other = JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "unknown-kid"})
    with pytest.raises(ValueError):
        verifier.verify(_id_token(other, kid="unknown-kid"))
    assert session.fetches == 2


def test_rotated_key_accepted_after_refetch(verifier, session, signing_key):
    verifier.verify(_id_token(signing_key))
    rotated = JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "rotated-kid"})
    session.jwks = {"keys": [signing_key.as_dict(is_private=False), rotated.as_dict(is_private=False)]}

    profile = verifier.verify(_id_token(rotated, kid="rotated-kid"))
    assert profile.subject == "1234567890"
    assert session.fetches == 2


def test_known_kid_failures_do_not_refetch(verifier, session, signing_key):
    """Expired, forged and malformed tokens are rejected from the cached keys."""
    verifier.verify(_id_token(signing_key))
    past = int(time.time()) - 3600
    forged_key = JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "test-kid"})
    rejected = [
        _id_token(signing_key, iat=past - 600, exp=past),
        _id_token(signing_key, aud="someone-else.apps.googleusercontent.com"),
        _id_token(forged_key),
        "not-a-jwt",
    ]
    for token in rejected * 3:
        with pytest.raises(ValueError):
            verifier.verify(token)
    assert session.fetches == 1


def test_unconfigured_verifier_rejects_everything(session, signing_key):
    verifier = GoogleIdentityVerifier("", session=session)
    assert verifier.is_configured is False
    with pytest.raises(ValueError, match="not configured"):
        verifier.verify(_id_token(signing_key))
    assert session.fetches == 0


def test_garbage_rejected_without_fetching_keys(verifier, session):
    with pytest.raises(ValueError):
        verifier.verify("not-a-jwt")
    assert session.fetches == 0
