"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). The store maps rows to
these; flows and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An account in the listing application.

    password_hash is None for accounts created by Google or OTP login -- they
    have no local password until a reset sets one.

    The three transient secrets come in co-present pairs (otp_code/otp_expires_at,
    reset_token/reset_expires_at) plus the single verification_token. Each is
    cleared by the store the moment the flow that consumes it succeeds.
    """

    name: str
    email: str
    id: str | None = None
    password_hash: str | None = None
    google_id: str | None = None  # Google "sub" claim, unique when present
    role: str = "user"  # "user" or "admin"
    otp_code: str | None = None
    otp_expires_at: datetime | None = None
    is_verified: bool = False
    verification_token: str | None = None
    reset_token: str | None = None
    reset_expires_at: datetime | None = None
    image: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class Principal:
    """Minimal identity attached to an authenticated request."""

    id: str
    email: str
    role: str
    name: str

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, email=user.email, role=user.role, name=user.name)


@dataclass(frozen=True)
class GoogleProfile:
    """Identity fields resolved from a Google assertion or a client-side exchange."""

    email: str
    name: str
    subject: str
    picture: str | None = None
