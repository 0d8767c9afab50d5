"""
auth/google.py -- Google ID token verification for federated login.

The front end runs Google Identity Services and posts the resulting ID token
("credential") to POST /auth/google. GoogleIdentityVerifier checks it locally
with authlib's JOSE implementation against Google's published signing keys.

Security notes:
  [H1] Email verification is mandatory. verify() raises ValueError if the token
       does not carry email_verified=true. An unverified address could belong
       to someone who typed a victim's email into their Google account.

  Audience: the aud claim must equal Settings.google_client_id. A token minted
       for some other site's client id is rejected even though Google signed it.

  Keys: the JWKS document is fetched with requests and cached for
       _JWKS_TTL_SECONDS. Only a kid missing from the cached set forces a
       refetch (Google rotates keys). Malformed, expired, badly signed or
       wrong-audience tokens are rejected against the cache with no request
       to Google.

Network failures fetching the JWKS propagate as requests.RequestException --
the route layer reports those as a 500, not as a bad credential.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
import time

import requests
from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebKey, jwt
from authlib.jose.errors import JoseError

from auth.models import GoogleProfile

logger = logging.getLogger("listing.auth.google")

GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ["accounts.google.com", "https://accounts.google.com"]

_JWKS_TTL_SECONDS = 3600


class GoogleIdentityVerifier:
    """Verifies Google ID tokens and resolves them to a GoogleProfile.

    Constructed once at startup (api/main.py lifespan) and shared by every
    request; the key cache is guarded by a lock because FastAPI runs sync
    handlers in a thread pool.
    """

    def __init__(
        self,
        client_id: str,
        certs_url: str = GOOGLE_CERTS_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id
        self.certs_url = certs_url
        self._session = session or requests.Session()
        self._session.max_redirects = 3
        self._lock = threading.Lock()
        self._keys = None
        self._keys_fetched_at = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)

    def verify(self, credential: str) -> GoogleProfile:
        """Verify an ID token and return the identity it asserts.

        Raises:
            ValueError: the token is malformed, badly signed, expired, issued
                for another audience, or does not carry a verified email.
        """
        if not self.is_configured:
            raise ValueError("Google login is not configured (GOOGLE_CLIENT_ID is empty)")

        kid = _header_kid(credential)
        keys = self._get_keys(force_refresh=False)
        if kid is not None and kid not in _key_ids(keys):
            # Google rotated its keys since the last fetch.
            keys = self._get_keys(force_refresh=True)

        try:
            claims = self._decode(credential, keys)
        except (JoseError, ValueError) as exc:
            raise ValueError(f"Google ID token rejected: {exc}") from exc

        if not claims.get("email_verified", False):
            raise ValueError(
                "Google ID token: email is not verified. "
                "The provider must confirm email ownership before login is allowed."
            )

        email = claims.get("email")
        subject = claims.get("sub")
        if not email or not subject:
            raise ValueError("Google ID token: missing email or sub claim")

        return GoogleProfile(
            email=email,
            name=claims.get("name") or email.split("@")[0],
            subject=str(subject),
            picture=claims.get("picture"),
        )

    def _decode(self, credential: str, keys):
        claims = jwt.decode(
            credential,
            keys,
            claims_options={
                "iss": {"essential": True, "values": GOOGLE_ISSUERS},
                "aud": {"essential": True, "value": self.client_id},
                "sub": {"essential": True},
            },
        )
        claims.validate()
        return claims

    def _get_keys(self, force_refresh: bool):
        with self._lock:
            stale = time.monotonic() - self._keys_fetched_at > _JWKS_TTL_SECONDS
            if self._keys is None or stale or force_refresh:
                resp = self._session.get(self.certs_url, timeout=10)
                resp.raise_for_status()
                self._keys = JsonWebKey.import_key_set(resp.json())
                self._keys_fetched_at = time.monotonic()
                logger.info("Google signing keys refreshed")
            return self._keys


def _header_kid(credential: str) -> str | None:
    """Return the kid from a compact JWS header without verifying anything.

    Raises ValueError if the header segment is not base64url-encoded JSON.
    """
    segment = credential.split(".", 1)[0]
    try:
        header = json_loads(urlsafe_b64decode(to_bytes(segment)))
    except (TypeError, ValueError) as exc:
        raise ValueError("Google ID token: malformed header") from exc
    if not isinstance(header, dict):
        raise ValueError("Google ID token: malformed header")
    kid = header.get("kid")
    return kid if isinstance(kid, str) else None


def _key_ids(keys) -> set[str]:
    return {key.kid for key in keys.keys if key.kid}
