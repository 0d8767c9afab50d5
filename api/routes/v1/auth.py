"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/signup               -- create unverified account; 201
  GET  /api/v1/auth/verify-email         -- consume verification token
  POST /api/v1/auth/login                -- password login; returns token
  POST /api/v1/auth/google               -- Google login / link; returns token
  POST /api/v1/auth/request-otp          -- email a 6-digit code
  POST /api/v1/auth/verify-otp           -- exchange code for token
  POST /api/v1/auth/forgot-password      -- email reset link (generic reply)
  GET  /api/v1/auth/verify-reset-token   -- check a reset/invitation link
  POST /api/v1/auth/reset-password       -- set password from link; returns token
  POST /api/v1/auth/change-password      -- requires auth
  POST /api/v1/auth/profile-image        -- requires auth; multipart "image"
  GET  /api/v1/auth/me                   -- requires auth

Handlers are plain `def` so FastAPI runs them in its thread pool: bcrypt and
store I/O never block the event loop.

Every failure is an auth.errors.AuthError raised by the flow or the session
dependency; api/main.py renders it. Handlers contain no error mapping.

Security:
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile

from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    GoogleLoginRequest,
    LoginRequest,
    MessageResponse,
    OtpRequest,
    OtpVerifyRequest,
    ProfileResponse,
    PublicUser,
    ResetPasswordRequest,
    ResetTokenStatus,
    SignupRequest,
)
from auth.dependencies import get_current_principal, get_flows
from auth.flows import AuthResult, CredentialFlows
from auth.models import Principal

# Auth policy:
# - everything except change-password, profile-image and me is public
# - change-password, profile-image, me: get_current_principal
router = APIRouter()


def _auth_response(response: Response, result: AuthResult, message: str) -> AuthResponse:
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthResponse(message=message, token=result.token, user=PublicUser.from_user(result.user))


# ---------------------------------------------------------------------------
# Signup and verification
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=MessageResponse, status_code=201)
def signup(body: SignupRequest, flows: CredentialFlows = Depends(get_flows)) -> MessageResponse:
    """Create an account and email a verification link. No token is issued."""
    return MessageResponse(message=flows.signup(body.name, body.email, body.password))


@router.get("/auth/verify-email", response_model=MessageResponse)
def verify_email(
    token: str = Query(default="", max_length=128),
    flows: CredentialFlows = Depends(get_flows),
) -> MessageResponse:
    return MessageResponse(message=flows.verify_email(token))


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, response: Response, flows: CredentialFlows = Depends(get_flows)) -> AuthResponse:
    """Password login. 401 for any bad email/password pair, 403 while unverified."""
    return _auth_response(response, flows.login(body.email, body.password), "Login successful.")


@router.post("/auth/google", response_model=AuthResponse)
def google_login(
    body: GoogleLoginRequest,
    response: Response,
    flows: CredentialFlows = Depends(get_flows),
) -> AuthResponse:
    result = flows.google_login(
        credential=body.credential,
        email=body.email,
        name=body.name,
        google_id=body.google_id,
        image=body.image,
    )
    return _auth_response(response, result, "Google login successful.")


@router.post("/auth/request-otp", response_model=MessageResponse)
def request_otp(body: OtpRequest, flows: CredentialFlows = Depends(get_flows)) -> MessageResponse:
    """Email a login code. The reply is identical for new and existing accounts."""
    return MessageResponse(message=flows.request_otp(body.email))


@router.post("/auth/verify-otp", response_model=AuthResponse)
def verify_otp(body: OtpVerifyRequest, response: Response, flows: CredentialFlows = Depends(get_flows)) -> AuthResponse:
    return _auth_response(response, flows.verify_otp(body.email, body.otp), "OTP verified successfully.")


# ---------------------------------------------------------------------------
# Password recovery
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(body: ForgotPasswordRequest, flows: CredentialFlows = Depends(get_flows)) -> MessageResponse:
    """Always answers with the same message whether or not the email is registered."""
    return MessageResponse(message=flows.forgot_password(body.email))


@router.get("/auth/verify-reset-token", response_model=ResetTokenStatus)
def verify_reset_token(
    token: str = Query(default="", max_length=128),
    flows: CredentialFlows = Depends(get_flows),
) -> ResetTokenStatus:
    user = flows.verify_reset_token(token)
    return ResetTokenStatus(valid=True, email=user.email)


@router.post("/auth/reset-password", response_model=AuthResponse)
def reset_password(
    body: ResetPasswordRequest,
    response: Response,
    flows: CredentialFlows = Depends(get_flows),
) -> AuthResponse:
    result = flows.reset_password(body.token, body.password)
    return _auth_response(response, result, "Password has been reset successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    flows: CredentialFlows = Depends(get_flows),
) -> MessageResponse:
    return MessageResponse(message=flows.change_password(principal.id, body.current_password, body.new_password))


@router.post("/auth/profile-image", response_model=ProfileResponse)
def update_profile_image(
    image: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    flows: CredentialFlows = Depends(get_flows),
) -> ProfileResponse:
    # Never buffer more than one byte past the limit; the flow rejects anything that long.
    data = image.file.read(flows.settings.max_upload_bytes + 1)
    user = flows.update_profile_image(principal.id, data, image.filename or "upload", image.content_type)
    return ProfileResponse(message="Profile image updated successfully.", user=PublicUser.from_user(user))


@router.get("/auth/me", response_model=PublicUser)
def me(
    principal: Principal = Depends(get_current_principal),
    flows: CredentialFlows = Depends(get_flows),
) -> PublicUser:
    """Return the public profile of the authenticated user."""
    return PublicUser.from_user(flows.get_profile(principal.id))
