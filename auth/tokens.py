"""
auth/tokens.py -- Session JWTs, password hashing, and random secrets.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the user id ("id" claim) and
       an expiry one day after issuance (Settings.token_expire_seconds).
       verify_access_token() raises TokenExpired / InvalidToken -- the session
       dependency collapses both into a 401.

  Passwords: bcrypt, used directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in authenticate_user() so response
       time does not reveal whether an email is registered [C1].

  Random secrets: verification and reset tokens are 32 alphanumeric characters
       from secrets.choice (~190 bits). OTP codes are 6 decimal digits from
       secrets.randbelow; their short lifetime (10 minutes) bounds guessing.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidToken, TokenExpired
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("listing.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

_TOKEN_ALPHABET = string.ascii_letters + string.digits

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only reads the first 72 bytes. The API layer caps passwords at 128
    characters, and anything past 72 bytes is simply ignored by the hash.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("listing_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: str) -> str:
    """Encode a signed session JWT carrying the user id.

    Lifetime is Settings.token_expire_seconds (one day by default).
    """
    expire = datetime.now(timezone.utc) + timedelta(seconds=_settings.token_expire_seconds)
    payload = {"id": user_id, "exp": expire}
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def verify_access_token(token: str) -> str:
    """Verify a session JWT and return the user id it carries.

    Raises:
        TokenExpired: the signature is valid but the exp claim is in the past.
        InvalidToken: bad signature, malformed token, a payload without an exp
            claim, or one without a string "id" claim.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM], options={"require_exp": True})
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise InvalidToken() from exc
    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise InvalidToken()
    return user_id


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists or has a password:
    - Unknown email or Google/OTP-only account: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on a password match, None otherwise. Verification status
    is NOT checked here -- the login flow decides what an unverified match means.
    """
    user = store.get_by_email(email)
    if user is None or user.password_hash is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# Random secrets
# ---------------------------------------------------------------------------


def generate_opaque_token(length: int = 32) -> str:
    """Return a random alphanumeric string for verification and reset links."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def generate_otp_code() -> str:
    """Return a 6-digit numeric one-time passcode (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))
