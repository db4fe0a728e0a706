"""Opaque access and refresh tokens.

Format: ``base64url(header).base64url(claims).base64url(stamp)`` where the
stamp is HMAC-SHA256 over the first two segments, keyed with the
process-local token secret. Tokens are only ever validated inside this
process; nothing outside should parse them.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from auth.config import AuthConfig
from auth.types import TokenClaims, TokenKind, TokenPair, UserRole
from utils.timezone import from_epoch_seconds, now_utc, to_epoch_seconds

logger = logging.getLogger(__name__)

_HEADER = {"alg": "HS256", "typ": "opaque"}


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class TokenIssuer:
    """Mints and decodes session tokens."""

    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = now_utc):
        self._config = config
        self._clock = clock
        self._secret = config.token_secret.encode("utf-8")

    def _stamp(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode("utf-8"), hashlib.sha256).digest()
        return _encode_segment(digest)

    def _encode(self, claims: TokenClaims) -> str:
        header_enc = _encode_segment(json.dumps(_HEADER, separators=(",", ":")).encode())
        payload_enc = _encode_segment(
            json.dumps(claims.model_dump(mode="json"), separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._stamp(signing_input)}"

    def _claims(
        self,
        user_id: UUID,
        email: str,
        role: UserRole,
        kind: TokenKind,
        expires_at: datetime,
    ) -> TokenClaims:
        return TokenClaims(
            user_id=user_id,
            email=email,
            role=role,
            exp=to_epoch_seconds(expires_at),
            kind=kind,
            jti=secrets.token_urlsafe(12),
        )

    def issue(
        self,
        user_id: UUID,
        email: str,
        role: UserRole,
        extended: bool = False,
    ) -> TokenPair:
        """
        Mint an access token and a refresh token.

        ``extended`` selects the "remember me" refresh lifetime.
        """
        now = self._clock()
        access_expires_at = now + self._config.access_token_lifetime
        refresh_lifetime = (
            self._config.remember_me_lifetime if extended else self._config.refresh_token_lifetime
        )

        access = self._claims(user_id, email, role, TokenKind.ACCESS, access_expires_at)
        refresh = self._claims(user_id, email, role, TokenKind.REFRESH, now + refresh_lifetime)

        return TokenPair(
            access_token=self._encode(access),
            refresh_token=self._encode(refresh),
            access_expires_at=access_expires_at,
        )

    def issue_access_token(self, user_id: UUID, email: str, role: UserRole) -> tuple[str, datetime]:
        """Mint an access token alone. Returns (token, expires_at)."""
        expires_at = self._clock() + self._config.access_token_lifetime
        claims = self._claims(user_id, email, role, TokenKind.ACCESS, expires_at)
        return self._encode(claims), expires_at

    def decode(self, token: str) -> TokenClaims | None:
        """
        Decode a token minted by this issuer.

        Returns None for anything malformed or tampered with; never raises.
        Expiry is NOT checked here, use is_valid(claims.exp).
        """
        if not isinstance(token, str):
            return None
        try:
            header_b64, payload_b64, stamp_b64 = token.split(".")
        except ValueError:
            return None

        expected = self._stamp(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected.encode("utf-8"), stamp_b64.encode("utf-8")):
            logger.warning("Token integrity check failed")
            return None

        try:
            header = json.loads(_decode_segment(header_b64))
            if header != _HEADER:
                return None
            payload: Any = json.loads(_decode_segment(payload_b64))
            return TokenClaims.model_validate(payload)
        except (ValueError, PydanticValidationError):
            # json.JSONDecodeError and binascii.Error are both ValueErrors
            return None

    def is_valid(self, expiry: int | float | datetime) -> bool:
        """True while ``expiry`` (epoch seconds or aware datetime) is in the future."""
        if not isinstance(expiry, datetime):
            expiry = from_epoch_seconds(expiry)
        return self._clock() < expiry
