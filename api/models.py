"""
API request and response models for the identity service REST endpoints.

These Pydantic v2 models define the HTTP transport contract. Each flow gets an
explicit request model, validated before any store access. They are separate
from the dataclasses in auth/models.py, which own the internal representation;
route handlers map between the two.

Multi-word request fields accept both snake_case and the camelCase names the
front end sends (googleId, currentPassword, newPassword).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.models import User

# ---------------------------------------------------------------------------
# Request models -- public auth flows
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=191)
    email: EmailStr = Field(max_length=191)
    password: str = Field(min_length=6, max_length=128)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: EmailStr = Field(max_length=191)
    password: str = Field(min_length=1, max_length=128)


class GoogleLoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/google.

    Either `credential` (a Google ID token) or the profile fields from a
    client-side exchange. Which combination is acceptable is decided by the
    flow, which reports a missing path as a validation error.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    credential: Optional[str] = Field(default=None, max_length=4096)
    email: Optional[EmailStr] = Field(default=None, max_length=191)
    name: Optional[str] = Field(default=None, max_length=191)
    google_id: Optional[str] = Field(default=None, alias="googleId", max_length=191)
    image: Optional[str] = Field(default=None, max_length=2048)


class OtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/request-otp."""

    email: EmailStr = Field(max_length=191)


class OtpVerifyRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-otp."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr = Field(max_length=191)
    otp: str = Field(pattern=r"^\d{6}$")


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgot-password."""

    email: EmailStr = Field(max_length=191)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password.

    Password length is enforced by the flow so the client gets the flow's
    message, not a schema dump.
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(min_length=1, max_length=128)
    password: str = Field(alias="newPassword", max_length=128)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/change-password."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", min_length=1, max_length=128)
    new_password: str = Field(alias="newPassword", max_length=128)


# ---------------------------------------------------------------------------
# Request models -- admin
# ---------------------------------------------------------------------------


class AdminUserCreate(BaseModel):
    """Request body for POST /api/v1/admin/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=191)
    email: EmailStr = Field(max_length=191)


class AdminUserPatch(BaseModel):
    """Request body for PATCH /api/v1/admin/users/{id}. All fields optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=191)
    email: Optional[EmailStr] = Field(default=None, max_length=191)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PublicUser(BaseModel):
    """The user fields safe to return to a client. Never the hash or secrets."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: str
    image: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role, image=user.image)


class AuthResponse(BaseModel):
    """Response for every flow that signs the user in."""

    model_config = ConfigDict(frozen=True)

    message: str = "Login successful."
    token: str
    token_type: str = "bearer"  # noqa: S105 -- OAuth token type, not a password
    user: PublicUser


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ResetTokenStatus(BaseModel):
    """Response for GET /api/v1/auth/verify-reset-token."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    email: str


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: PublicUser


class AdminUserResponse(BaseModel):
    """One account in the admin user tables.

    status is "Pending" until the owner has proven the address, and for an
    invited admin until the invitation has been used to set a password.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: str
    image: Optional[str] = None
    is_verified: bool
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "AdminUserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            image=user.image,
            is_verified=user.is_verified,
            status="Pending" if not user.is_verified or (user.is_admin and user.password_hash is None) else "Active",
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class AdminUserEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: Optional[str] = None
    user: AdminUserResponse


class AdminUserList(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[AdminUserResponse]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
