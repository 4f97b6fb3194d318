"""Signed, time-limited tokens for invitations, confirmation and sessions."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import UUID

import jwt

from src.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

EXPIRED_INVITATION_MESSAGE = "Invitation token has expired"
INVALID_INVITATION_MESSAGE = "Invalid invitation token"


class TokenPurpose(str, Enum):
    """Value of the ``purpose`` claim; a token is only accepted for its own purpose."""

    INVITATION = "taxuser_invitation"
    ACCOUNT_CONFIRMATION = "account_confirmation"
    PASSWORD_RESET = "password_reset"
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFailureReason(str, Enum):
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED = "malformed"
    WRONG_PURPOSE = "wrong_purpose"
    INVALID_CLAIMS = "invalid_claims"


class TokenError(Exception):
    """Raised internally when a token fails verification."""

    def __init__(self, reason: TokenFailureReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(detail or reason.value)


@dataclass
class InvitationTokenValidation:
    """Outcome of validating an invitation token. Never raised, always returned."""

    is_valid: bool
    invitation_id: UUID | None = None
    company_id: UUID | None = None
    email: str | None = None
    role_ids: list[UUID] = field(default_factory=list)
    expires_at: datetime | None = None
    reason: TokenFailureReason | None = None
    error: str | None = None


@dataclass
class UserTokenValidation:
    """Outcome of validating a confirmation or password-reset token."""

    is_valid: bool
    user_id: UUID | None = None
    email: str | None = None
    reason: TokenFailureReason | None = None
    error: str | None = None


class TokenService:
    """Issues and verifies HS256 tokens signed with the service secret.

    Verification failures are classified into a :class:`TokenFailureReason`
    that is logged; callers only ever surface a generic message.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    # Encoding

    def _encode(self, claims: dict[str, Any], lifetime: timedelta) -> tuple[str, datetime]:
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + lifetime
        payload = {
            **claims,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)
        return token, datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

    def decode(self, token: str, purpose: TokenPurpose) -> dict[str, Any]:
        """Verify signature, expiry and purpose of a token.

        Args:
            token: Encoded JWT.
            purpose: Purpose the caller expects.

        Returns:
            dict: Verified claims.

        Raises:
            TokenError: With the classified failure reason.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iat": True,
                    "require": ["exp", "iat", "sub"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenError(TokenFailureReason.EXPIRED, str(e)) from e
        except jwt.InvalidSignatureError as e:
            raise TokenError(TokenFailureReason.INVALID_SIGNATURE, str(e)) from e
        except jwt.DecodeError as e:
            raise TokenError(TokenFailureReason.MALFORMED, str(e)) from e
        except jwt.InvalidTokenError as e:
            raise TokenError(TokenFailureReason.INVALID_CLAIMS, str(e)) from e

        if payload.get("purpose") != purpose.value:
            raise TokenError(
                TokenFailureReason.WRONG_PURPOSE,
                f"expected {purpose.value}, got {payload.get('purpose')}",
            )
        return payload

    # Invitation tokens

    def generate_invitation(
        self,
        invitation_id: UUID,
        company_id: UUID,
        email: str,
        role_ids: list[UUID] | None = None,
        expires_in: timedelta | None = None,
    ) -> tuple[str, datetime]:
        """Create the signed capability referencing a persisted invitation.

        Args:
            invitation_id: Id of the invitation row the token refers to.
            company_id: Inviting company.
            email: Invited email (lower-cased).
            role_ids: Roles granted on registration.
            expires_in: Lifetime override, defaults to the configured days.

        Returns:
            tuple: (token, expires_at)
        """
        lifetime = expires_in if expires_in is not None else timedelta(days=self.settings.invitation_expiry_days)
        claims = {
            "sub": str(invitation_id),
            "company_id": str(company_id),
            "email": email.lower(),
            "roles": [str(role_id) for role_id in role_ids or []],
            "purpose": TokenPurpose.INVITATION.value,
        }
        return self._encode(claims, lifetime)

    def validate_invitation(self, token: str) -> InvitationTokenValidation:
        """Validate an invitation token without raising.

        Returns:
            InvitationTokenValidation: Claims on success, reason and a
            generic error message on failure.
        """
        try:
            payload = self.decode(token, TokenPurpose.INVITATION)
            return InvitationTokenValidation(
                is_valid=True,
                invitation_id=UUID(payload["sub"]),
                company_id=UUID(payload["company_id"]),
                email=str(payload["email"]).lower(),
                role_ids=[UUID(role_id) for role_id in payload.get("roles", [])],
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except TokenError as e:
            return self._invitation_failure(e.reason, e.detail)
        except (KeyError, TypeError, ValueError) as e:
            return self._invitation_failure(TokenFailureReason.INVALID_CLAIMS, str(e))

    def expired_invitation_id(self, token: str) -> UUID | None:
        """Return the invitation id of an authentic but expired token.

        The signature and purpose are still verified; only the expiry check
        is skipped. Returns None for any other token.
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                options={"verify_exp": False, "require": ["exp", "sub"]},
            )
            if payload.get("purpose") != TokenPurpose.INVITATION.value:
                return None
            if payload["exp"] > datetime.now(timezone.utc).timestamp():
                return None
            return UUID(payload["sub"])
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
            return None

    def _invitation_failure(self, reason: TokenFailureReason, detail: str) -> InvitationTokenValidation:
        logger.warning("Invitation token rejected: %s (%s)", reason.value, detail)
        message = EXPIRED_INVITATION_MESSAGE if reason == TokenFailureReason.EXPIRED else INVALID_INVITATION_MESSAGE
        return InvitationTokenValidation(is_valid=False, reason=reason, error=message)

    # Confirmation and password reset tokens

    def generate_confirmation(self, user_id: UUID, email: str) -> tuple[str, datetime]:
        return self._encode(
            {"sub": str(user_id), "email": email.lower(), "purpose": TokenPurpose.ACCOUNT_CONFIRMATION.value},
            timedelta(hours=self.settings.confirmation_token_expiry_hours),
        )

    def validate_confirmation(self, token: str) -> UserTokenValidation:
        return self._validate_user_token(token, TokenPurpose.ACCOUNT_CONFIRMATION, "Invalid confirmation token")

    def generate_password_reset(self, user_id: UUID, email: str) -> tuple[str, datetime]:
        return self._encode(
            {"sub": str(user_id), "email": email.lower(), "purpose": TokenPurpose.PASSWORD_RESET.value},
            timedelta(minutes=self.settings.password_reset_token_expiry_minutes),
        )

    def validate_password_reset(self, token: str) -> UserTokenValidation:
        return self._validate_user_token(token, TokenPurpose.PASSWORD_RESET, "Invalid password reset token")

    def _validate_user_token(self, token: str, purpose: TokenPurpose, invalid_message: str) -> UserTokenValidation:
        try:
            payload = self.decode(token, purpose)
            return UserTokenValidation(
                is_valid=True,
                user_id=UUID(payload["sub"]),
                email=str(payload.get("email", "")).lower(),
            )
        except TokenError as e:
            reason, detail = e.reason, e.detail
        except (KeyError, TypeError, ValueError) as e:
            reason, detail = TokenFailureReason.INVALID_CLAIMS, str(e)

        logger.warning("%s token rejected: %s (%s)", purpose.value, reason.value, detail)
        message = "Token has expired" if reason == TokenFailureReason.EXPIRED else invalid_message
        return UserTokenValidation(is_valid=False, reason=reason, error=message)

    # Session tokens

    def _session_claims(
        self,
        user: dict[str, Any],
        session_id: UUID,
        role: str | None,
        purpose: TokenPurpose,
    ) -> dict[str, Any]:
        return {
            "sub": str(user["id"]),
            "sid": str(session_id),
            "email": user["email"],
            "company_id": str(user["company_id"]),
            "is_owner": bool(user.get("is_owner")),
            "role": role,
            "purpose": purpose.value,
        }

    def generate_access_token(self, user: dict[str, Any], session_id: UUID, role: str | None) -> tuple[str, datetime]:
        """Issue an access token bound to a session.

        Args:
            user: tax_users row.
            session_id: Session the token belongs to.
            role: Primary role name for display.

        Returns:
            tuple: (token, expires_at)
        """
        return self._encode(
            self._session_claims(user, session_id, role, TokenPurpose.ACCESS),
            timedelta(minutes=self.settings.access_token_expiry_minutes),
        )

    def generate_refresh_token(self, user: dict[str, Any], session_id: UUID, role: str | None) -> tuple[str, datetime]:
        return self._encode(
            self._session_claims(user, session_id, role, TokenPurpose.REFRESH),
            timedelta(minutes=self.settings.refresh_token_expiry_minutes),
        )
