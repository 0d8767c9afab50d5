"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_principal() is the session gate: it reads
"Authorization: Bearer <token>", verifies the JWT, and re-loads the user from
the store on every request. The lookup makes account deletion and role
changes take effect immediately even though tokens themselves are stateless.

require_admin() wraps get_current_principal() and rejects non-admins.

Both raise auth.errors exceptions (Unauthenticated -> 401, Forbidden -> 403);
api/main.py renders them. Signature and expiry failures are reported
the same way.

auth/dependencies.py may import from fastapi (for Depends/Request) because this
module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from auth.errors import Forbidden, InvalidToken, Unauthenticated
from auth.flows import CredentialFlows
from auth.models import Principal
from auth.store import UserStore
from auth.tokens import verify_access_token

logger = logging.getLogger("listing.auth")


def get_flows(request: Request) -> CredentialFlows:
    """Return the process-wide CredentialFlows built in the lifespan."""
    return request.app.state.flows


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_principal(request: Request) -> Principal:
    """Require a valid bearer token for an existing user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise Unauthenticated("No token provided.")

    try:
        user_id = verify_access_token(token)
    except InvalidToken as exc:
        # TokenExpired is an InvalidToken; the caller is not told which.
        logger.debug("Rejected bearer token: %s", exc.code)
        raise Unauthenticated("Invalid or expired token.") from exc

    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise Unauthenticated("User not found.")

    principal = Principal.from_user(user)
    request.state.principal = principal
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require admin role. 401 if unauthenticated, 403 if not admin.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(principal: Principal = Depends(require_admin)): ...
    """
    if principal.role != "admin":
        raise Forbidden("Access denied. Admin privileges required.")
    return principal
