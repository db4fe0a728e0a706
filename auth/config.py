"""Authentication configuration."""

import os
import secrets
from datetime import timedelta
from typing import Mapping

from pydantic import BaseModel, Field, model_validator


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    hours or days for longer ones) to make configuration intuitive.
    """

    # Token lifetimes
    access_token_expiry_minutes: int = Field(
        default=60,
        description="Access token lifetime",
        ge=1,
        le=1440,
    )
    refresh_token_expiry_days: int = Field(
        default=7,
        description="Refresh token lifetime for standard sessions",
        ge=1,
        le=90,
    )
    remember_me_expiry_days: int = Field(
        default=30,
        description="Refresh token lifetime when 'remember me' is requested",
        ge=1,
        le=365,
    )
    token_secret: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Key for the token integrity stamp (random per process by default)",
        min_length=16,
    )

    # Brute-force protection
    rate_limit_attempts: int = Field(
        default=5,
        description="Failed logins per identity before lockout",
        ge=1,
        le=20,
    )
    lockout_window_minutes: int = Field(
        default=15,
        description="Lockout window after the last failed attempt",
        ge=1,
        le=1440,
    )

    # Single-use tokens
    password_reset_expiry_hours: int = Field(
        default=24,
        description="How long password reset tokens remain valid",
        ge=1,
        le=168,
    )
    email_verification_expiry_hours: int = Field(
        default=48,
        description="How long email verification tokens remain valid",
        ge=1,
        le=336,
    )

    # Background expiry check
    expiry_check_interval_seconds: int = Field(
        default=60,
        description="How often the background check inspects the session",
        ge=1,
        le=3600,
    )
    refresh_horizon_minutes: int = Field(
        default=5,
        description="Refresh proactively when the access token expires within this horizon",
        ge=0,
        le=60,
    )

    # Passwords
    min_password_length: int = Field(
        default=8,
        description="Minimum password length",
        ge=8,
        le=128,
    )
    password_hash_algorithm: str = Field(
        default="sha256",
        description="hashlib algorithm used by the salted password hasher",
    )
    password_hash_iterations: int = Field(
        default=1,
        description="PBKDF2 iterations; 1 means a single salted digest",
        ge=1,
        le=10_000_000,
    )

    @model_validator(mode="after")
    def _check_lifetime_ordering(self) -> "AuthConfig":
        if not self.access_token_lifetime < self.refresh_token_lifetime < self.remember_me_lifetime:
            raise ValueError(
                "Token lifetimes must satisfy access < refresh < remember_me"
            )
        return self

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.access_token_expiry_minutes)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(days=self.refresh_token_expiry_days)

    @property
    def remember_me_lifetime(self) -> timedelta:
        return timedelta(days=self.remember_me_expiry_days)

    @property
    def lockout_window(self) -> timedelta:
        return timedelta(minutes=self.lockout_window_minutes)

    @property
    def refresh_horizon(self) -> timedelta:
        return timedelta(minutes=self.refresh_horizon_minutes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AuthConfig":
        """
        Build config from AUTH_* environment variables.

        AUTH_ACCESS_TOKEN_EXPIRY_MINUTES maps to access_token_expiry_minutes,
        and so on for every field. Unset variables keep their defaults.

        Set AUTH_TOKEN_SECRET wherever sessions are persisted (ValkeySessionStore
        or a restarted process). Without it each process stamps tokens with a
        fresh random secret, and restored sessions fail the integrity check.

        Raises:
            pydantic.ValidationError: If a value is out of bounds or malformed.
        """
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = env.get(f"AUTH_{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)
