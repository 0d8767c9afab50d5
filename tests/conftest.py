"""
tests/conftest.py -- Shared test fixtures for the identity service.

This module provides:
  - RecordingMailer / FakeGoogleVerifier: in-process stand-ins for the mail
    transport and Google's token verification
  - store / flows: a UserStore on a private in-memory DB and CredentialFlows
    wired to the fakes, for unit tests of the flows
  - api: TestClient on the real app with a patched lifespan, for integration
    tests of the HTTP surface
  - make_user / bearer: factories that seed accounts and build auth headers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Every fixture instance gets its own DB name so no test sees
another test's accounts.

DEBUG, BCRYPT_ROUNDS and UPLOAD_DIR must be set before any auth/core/api
import: settings are read once at module load.
"""

from __future__ import annotations

import os
import re
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

# CRITICAL: Set these before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="listing-uploads-"))
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.flows import CredentialFlows
from auth.models import GoogleProfile, User
from auth.storage import LocalBlobStorage
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import get_settings

_TOKEN_RE = re.compile(r"token=([A-Za-z0-9]+)")
_OTP_RE = re.compile(r">(\d{6})<")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class SentMail:
    to: str
    subject: str
    html: str

    @property
    def link_token(self) -> str:
        """The token query parameter of the first link in the message."""
        match = _TOKEN_RE.search(self.html)
        assert match, f"no token link in {self.subject!r}"
        return match.group(1)

    @property
    def otp(self) -> str:
        match = _OTP_RE.search(self.html)
        assert match, f"no code in {self.subject!r}"
        return match.group(1)


@dataclass
class RecordingMailer:
    """Collects messages instead of sending them. Delivery is synchronous."""

    sent: list[SentMail] = field(default_factory=list)
    is_configured: bool = False

    def send_in_background(self, to: str, subject: str, html_body: str) -> None:
        self.sent.append(SentMail(to, subject, html_body))

    def close(self) -> None:
        pass

    def last_to(self, email: str) -> SentMail:
        matches = [m for m in self.sent if m.to == email]
        assert matches, f"no mail sent to {email}"
        return matches[-1]


class FakeGoogleVerifier:
    """Accepts exactly the credentials registered in `profiles`."""

    is_configured = True

    def __init__(self) -> None:
        self.profiles: dict[str, GoogleProfile] = {}

    def verify(self, credential: str) -> GoogleProfile:
        try:
            return self.profiles[credential]
        except KeyError:
            raise ValueError("Google ID token rejected: unknown credential") from None


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _build_flows(store: UserStore, upload_root: Path) -> CredentialFlows:
    return CredentialFlows(
        store=store,
        mailer=RecordingMailer(),
        google=FakeGoogleVerifier(),
        storage=LocalBlobStorage(upload_root, "http://testserver/uploads"),
        settings=get_settings(),
    )


def _patch_lifespan(store: UserStore, flows: CredentialFlows):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and the fake-backed flows into app.state so routes
    never touch the production database, SMTP or Google.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.flows = flows
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore(_shared_memory_url("test_store"))
    yield s
    s.close()


@pytest.fixture
def flows(store, tmp_path) -> CredentialFlows:
    return _build_flows(store, tmp_path / "uploads")


@pytest.fixture
def make_user(store):
    """Factory: insert a user and return the stored record.

    Accounts default to verified with password "correct-horse-1".
    """

    def _make(email: str = "ada@example.com", password: str | None = "correct-horse-1", **fields) -> User:
        fields.setdefault("is_verified", True)
        user = User(
            name=fields.pop("name", email.split("@")[0]),
            email=email,
            password_hash=hash_password(password) if password else None,
            **fields,
        )
        return store.get_by_id(store.create_user(user))

    return _make


@pytest.fixture
def bearer():
    """Factory: Authorization headers carrying a fresh session token for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


# ---------------------------------------------------------------------------
# Integration fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    flows: CredentialFlows

    @property
    def store(self) -> UserStore:
        return self.flows.store

    @property
    def mailer(self) -> RecordingMailer:
        return self.flows.mailer

    @property
    def google(self) -> FakeGoogleVerifier:
        return self.flows.google


@pytest.fixture
def api(store, flows) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness around the real app.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers but use the
    isolated store and the fakes from the unit fixtures.
    """
    app.router.lifespan_context = _patch_lifespan(store, flows)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield ApiHarness(client=client, flows=flows)
