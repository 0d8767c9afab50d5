"""
auth/flows.py -- The credential use-cases: signup, verification, login
(password / OTP / Google), password recovery, profile image, admin invites.

CredentialFlows is constructed once at startup with its collaborators passed
in (store, mailer, Google verifier, blob storage, settings) and shared by all
requests. It holds no per-request state.

Error contract: every method either returns a result or raises an
auth.errors.AuthError subclass. Anything else escaping is an unexpected
failure (the API layer logs it and answers 500).

Race policy: the store's UNIQUE constraints are the arbiter. Check-then-create
sequences catch sqlalchemy.exc.IntegrityError and turn it into AccountExists
or Conflict, or re-read the winning row where the flow can continue with it
(Google login, OTP request). Transient secrets are consumed with conditional
UPDATEs so a secret cannot be used twice.

Anti-enumeration: login, OTP verify and reset use one error per flow whatever
the underlying cause; OTP request and forgot-password return the same message
whether or not the email is registered.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError

from auth import mail
from auth.errors import (
    AccountExists,
    Conflict,
    Forbidden,
    InvalidCredentials,
    InvalidOrExpiredOtp,
    InvalidOrExpiredToken,
    InvalidToken,
    NotFound,
    ValidationError,
)
from auth.google import GoogleIdentityVerifier
from auth.mail import MailDispatcher, redact_email
from auth.models import GoogleProfile, User
from auth.storage import LocalBlobStorage
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    generate_opaque_token,
    generate_otp_code,
    hash_password,
    verify_password,
)
from core.config import Settings

logger = logging.getLogger("listing.auth.flows")

MIN_PASSWORD_LENGTH = 8

OTP_TTL = timedelta(minutes=10)
RESET_TTL = timedelta(hours=1)
INVITATION_TTL = timedelta(days=7)

SIGNUP_MESSAGE = "User created successfully. Please check your email to verify your account."
VERIFIED_MESSAGE = "Email verified successfully. You can now log in."
OTP_SENT_MESSAGE = "If the email address is valid, a login code has been sent to it."
FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."
PASSWORD_CHANGED_MESSAGE = "Password changed successfully."
INVITATION_SENT_MESSAGE = "Admin user created successfully. An invitation email has been sent."
INVITATION_RESENT_MESSAGE = "Invitation email has been resent."


@dataclass(frozen=True)
class AuthResult:
    """A freshly issued session token and the account it belongs to."""

    token: str
    user: User


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_future(moment: datetime | None) -> bool:
    return moment is not None and moment > _now()


def _check_new_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class CredentialFlows:
    """Credential lifecycle operations over an injected UserStore and collaborators."""

    def __init__(
        self,
        store: UserStore,
        mailer: MailDispatcher,
        google: GoogleIdentityVerifier,
        storage: LocalBlobStorage,
        settings: Settings,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.google = google
        self.storage = storage
        self.settings = settings

    # ------------------------------------------------------------------
    # Signup and email verification
    # ------------------------------------------------------------------

    def signup(self, name: str, email: str, password: str) -> str:
        """Create an unverified account and email it a verification link.

        No session token is issued -- login is refused until the link is used.
        """
        if self.store.get_by_email(email) is not None:
            raise AccountExists()

        token = generate_opaque_token()
        try:
            user_id = self.store.create_user(
                User(
                    name=name,
                    email=email,
                    password_hash=hash_password(password),
                    verification_token=token,
                )
            )
        except IntegrityError as exc:
            # A concurrent signup for the same email won the insert.
            raise AccountExists() from exc
        logger.info("User created: id=%s email=%s", user_id, redact_email(email))

        subject, body = mail.verification_email(name, self._link("/verify-email", token))
        self.mailer.send_in_background(email, subject, body)
        return SIGNUP_MESSAGE

    def verify_email(self, token: str) -> str:
        user = self.store.get_by_verification_token(token) if token else None
        if user is None or not self.store.consume_verification_token(user.id, token):
            raise InvalidToken("Invalid verification token.")
        logger.info("Email verified: id=%s", user.id)
        return VERIFIED_MESSAGE

    # ------------------------------------------------------------------
    # Password login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        """Password login.

        Unknown email, passwordless account and wrong password all raise the
        same InvalidCredentials. Only a correct password on an unverified
        account reaches the Forbidden branch.
        """
        user = authenticate_user(self.store, email, password)
        if user is None:
            raise InvalidCredentials()
        if not user.is_verified:
            raise Forbidden("Please verify your email before logging in.")
        return self._issue(user)

    # ------------------------------------------------------------------
    # Google login
    # ------------------------------------------------------------------

    def google_login(
        self,
        credential: str | None = None,
        email: str | None = None,
        name: str | None = None,
        google_id: str | None = None,
        image: str | None = None,
    ) -> AuthResult:
        """Federated login with a Google ID token or pre-verified profile fields.

        A credential, when present, is the path taken. Otherwise email and
        google_id must both be supplied.

        An account holds at most one Google subject: a login whose subject
        differs from the one already linked raises Conflict.
        """
        if credential:
            try:
                profile = self.google.verify(credential)
            except ValueError as exc:
                logger.warning("Google credential rejected: %s", exc)
                raise InvalidToken("Invalid Google credential.") from exc
        elif email and google_id:
            profile = GoogleProfile(email=email, name=name or email.split("@")[0], subject=google_id, picture=image)
        else:
            raise ValidationError("A Google credential or profile (email and googleId) is required.")

        user = self._resolve_google_user(profile, retry=True)
        return self._issue(user)

    def _resolve_google_user(self, profile: GoogleProfile, retry: bool) -> User:
        user = self.store.get_by_email(profile.email)

        if user is None:
            try:
                user_id = self.store.create_user(
                    User(
                        name=profile.name,
                        email=profile.email,
                        google_id=profile.subject,
                        is_verified=True,
                        image=profile.picture,
                    )
                )
            except IntegrityError as exc:
                if retry:
                    # Lost a creation race; continue against the winner's row.
                    return self._resolve_google_user(profile, retry=False)
                raise Conflict("An account for this Google identity already exists.") from exc
            logger.info("Google account created: id=%s email=%s", user_id, redact_email(profile.email))
            return self._require(user_id)

        if user.google_id is None:
            owner = self.store.get_by_google_id(profile.subject)
            if owner is not None:
                raise Conflict("This Google account is already linked to another user.")
            fields: dict = {"google_id": profile.subject, "is_verified": True}
            # An existing image is kept; only an empty one is filled.
            if not user.image and profile.picture:
                fields["image"] = profile.picture
            try:
                self.store.update_user(user.id, **fields)
            except IntegrityError as exc:
                raise Conflict("This Google account is already linked to another user.") from exc
            logger.info("Google identity linked: id=%s", user.id)
            return self._require(user.id)

        if user.google_id != profile.subject:
            logger.warning("Google subject mismatch for linked account: id=%s", user.id)
            raise Conflict("This email is linked to a different Google account.")
        return user

    # ------------------------------------------------------------------
    # One-time passcodes
    # ------------------------------------------------------------------

    def request_otp(self, email: str) -> str:
        """Email a fresh 6-digit code, provisioning the account if it is new.

        Any previous unconsumed code for the account is replaced. The return
        value does not depend on whether the account already existed.
        """
        code = generate_otp_code()
        expires_at = _now() + OTP_TTL

        user = self.store.get_by_email(email)
        if user is None:
            try:
                user_id = self.store.create_user(
                    User(name=email.split("@")[0], email=email, otp_code=code, otp_expires_at=expires_at)
                )
                logger.info("Account provisioned by OTP request: id=%s", user_id)
            except IntegrityError:
                user = self.store.get_by_email(email)
                if user is None:
                    raise
                self.store.set_otp(user.id, code, expires_at)
        else:
            self.store.set_otp(user.id, code, expires_at)

        subject, body = mail.otp_email(code, int(OTP_TTL.total_seconds() // 60))
        self.mailer.send_in_background(email, subject, body)
        return OTP_SENT_MESSAGE

    def verify_otp(self, email: str, code: str) -> AuthResult:
        user = self.store.get_by_email(email)
        if (
            user is None
            or user.otp_code is None
            or not _is_future(user.otp_expires_at)
            or not hmac.compare_digest(user.otp_code.encode(), code.encode())
        ):
            raise InvalidOrExpiredOtp()
        if not self.store.consume_otp(user.id, user.otp_code):
            # Consumed or replaced by a concurrent request.
            raise InvalidOrExpiredOtp()
        return self._issue(self._require(user.id))

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> str:
        user = self.store.get_by_email(email)
        if user is not None:
            token = generate_opaque_token()
            self.store.set_reset_token(user.id, token, _now() + RESET_TTL)
            subject, body = mail.password_reset_email(user.name, self._link("/reset-password", token))
            self.mailer.send_in_background(user.email, subject, body)
            logger.info("Password reset requested: id=%s", user.id)
        return FORGOT_PASSWORD_MESSAGE

    def verify_reset_token(self, token: str) -> User:
        """Return the account a reset link belongs to, if the link is still usable."""
        return self._valid_reset_user(token)

    def reset_password(self, token: str, new_password: str) -> AuthResult:
        """Set a password from a reset or invitation link and sign the user in.

        Also marks the account verified: an invited admin proves ownership of
        the address by following the link.
        """
        _check_new_password(new_password)
        user = self._valid_reset_user(token)
        if not self.store.consume_reset_token(user.id, token, hash_password(new_password)):
            raise InvalidOrExpiredToken()
        logger.info("Password reset completed: id=%s", user.id)
        return self._issue(self._require(user.id))

    def _valid_reset_user(self, token: str) -> User:
        user = self.store.get_by_reset_token(token) if token else None
        if user is None or not _is_future(user.reset_expires_at):
            raise InvalidOrExpiredToken()
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> str:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        _check_new_password(new_password)
        if user.password_hash is None or not verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect.")
        self.store.update_user(user.id, password_hash=hash_password(new_password))
        logger.info("Password changed: id=%s", user.id)
        return PASSWORD_CHANGED_MESSAGE

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    def update_profile_image(self, user_id: str, data: bytes, filename: str, content_type: str | None) -> User:
        if not data:
            raise ValidationError("An image file is required.")
        if not content_type or not content_type.startswith("image/"):
            raise ValidationError("Only image uploads are allowed.")
        if len(data) > self.settings.max_upload_bytes:
            raise ValidationError("Image is too large.")
        if self.store.get_by_id(user_id) is None:
            raise NotFound()

        url = self.storage.upload(data, filename, content_type)
        self.store.update_user(user_id, image=url)
        return self._require(user_id)

    # ------------------------------------------------------------------
    # Admin accounts
    # ------------------------------------------------------------------

    def create_admin(self, name: str, email: str) -> User:
        """Create a pre-verified, passwordless admin and email an invitation.

        The invitation link ends in the same reset-password flow used for
        self-service recovery, with a 7-day token instead of 1 hour.
        """
        if self.store.get_by_email(email) is not None:
            raise AccountExists("A user with this email already exists.")

        token = generate_opaque_token()
        try:
            user_id = self.store.create_user(
                User(
                    name=name,
                    email=email,
                    role="admin",
                    is_verified=True,
                    reset_token=token,
                    reset_expires_at=_now() + INVITATION_TTL,
                )
            )
        except IntegrityError as exc:
            raise AccountExists("A user with this email already exists.") from exc
        logger.info("Admin invited: id=%s email=%s", user_id, redact_email(email))

        subject, body = mail.admin_invitation_email(name, self._link("/reset-password", token))
        self.mailer.send_in_background(email, subject, body)
        return self._require(user_id)

    def resend_invitation(self, user_id: str) -> str:
        user = self.get_admin(user_id)
        token = generate_opaque_token()
        self.store.set_reset_token(user.id, token, _now() + INVITATION_TTL)
        subject, body = mail.admin_invitation_email(user.name, self._link("/reset-password", token), resent=True)
        self.mailer.send_in_background(user.email, subject, body)
        return INVITATION_RESENT_MESSAGE

    def list_users(self, role: str) -> list[User]:
        return self.store.list_by_role(role)

    def get_admin(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None or not user.is_admin:
            raise NotFound("Admin user not found.")
        return user

    def update_admin(self, user_id: str, name: str | None = None, email: str | None = None) -> User:
        user = self.get_admin(user_id)
        if email and email != user.email:
            if self.store.get_by_email(email) is not None:
                raise AccountExists("Email is already in use.")
            try:
                self.store.update_email(user.id, email)
            except IntegrityError as exc:
                raise AccountExists("Email is already in use.") from exc
        if name:
            self.store.update_user(user.id, name=name)
        return self._require(user.id)

    def delete_admin(self, actor_id: str, user_id: str) -> None:
        if actor_id == user_id:
            raise ValidationError("You cannot delete your own account.")
        user = self.get_admin(user_id)
        self.store.delete_user(user.id)
        logger.info("Admin deleted: id=%s by=%s", user.id, actor_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: User) -> AuthResult:
        return AuthResult(token=create_access_token(user.id), user=user)

    def _require(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            # Deleted between our write and this read.
            raise NotFound()
        return user

    def _link(self, path: str, token: str) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}{path}?{urlencode({'token': token})}"
