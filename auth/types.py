"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class UserRole(str, Enum):
    """Closed set of account roles."""

    INDIVIDUAL = "individual"
    BUSINESS = "business"
    ADMIN = "admin"


class BusinessType(str, Enum):
    """Legal form of a business account."""

    SOLE_PROPRIETORSHIP = "sole_proprietorship"
    PARTNERSHIP = "partnership"
    LIMITED_COMPANY = "limited_company"
    CORPORATION = "corporation"
    NON_PROFIT = "non_profit"
    OTHER = "other"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenPurpose(str, Enum):
    """What a single-use token unlocks."""

    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


# Profile fields a user may change about themselves
EDITABLE_PROFILE_FIELDS = frozenset(
    {"first_name", "last_name", "business_name", "phone_number", "business_type"}
)


class UserProfile(BaseModel):
    """A user as seen outside the identity core (no password material)."""

    id: UUID
    email: str
    role: UserRole = UserRole.INDIVIDUAL
    verified: bool = False
    first_name: str | None = None
    last_name: str | None = None
    business_name: str | None = None
    tin_number: str | None = None
    business_type: BusinessType | None = None
    phone_number: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.strip().lower()


class UserRecord(UserProfile):
    """A stored user, including the salted password hash."""

    password_hash: str = Field(..., repr=False, description="salt:digest")

    def to_profile(self) -> UserProfile:
        """Sanitized copy with the password hash stripped."""
        return UserProfile.model_validate(self.model_dump(exclude={"password_hash"}))


class TokenClaims(BaseModel):
    """Claims embedded in an access or refresh token."""

    user_id: UUID
    email: str
    role: UserRole
    exp: int = Field(..., description="Absolute expiry, seconds since epoch")
    kind: TokenKind
    jti: str


class TokenPair(BaseModel):
    """Tokens minted for a login or registration."""

    access_token: str
    refresh_token: str
    access_expires_at: datetime


class Session(BaseModel):
    """The single active identity context."""

    user: UserProfile
    access_token: str = Field(..., description="Access token (opaque string)")
    refresh_token: str | None = None
    expires_at: datetime


class AuthResult(BaseModel):
    """User info and tokens returned after register, login or refresh."""

    user: UserProfile
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "AuthResult":
        return cls(
            user=session.user,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_at=session.expires_at,
        )


class SingleUseToken(BaseModel):
    """A reset or verification token awaiting consumption."""

    user_id: UUID
    token: str = Field(..., description="URL-safe token")
    purpose: TokenPurpose
    expires_at: datetime


class RegisterRequest(BaseModel):
    """Registration payload. Rules are checked by auth.validators."""

    email: str
    password: str
    confirm_password: str
    role: UserRole | None = None
    first_name: str | None = None
    last_name: str | None = None
    business_name: str | None = None
    tin_number: str | None = None
    business_type: BusinessType | None = None
    phone_number: str | None = None


class LoginRequest(BaseModel):
    """Login payload."""

    email: str
    password: str
    remember_me: bool = False


class PasswordResetRequest(BaseModel):
    """Request a password reset link."""

    email: str


class PasswordResetPayload(BaseModel):
    """Complete a password reset."""

    token: str
    new_password: str
    confirm_password: str
