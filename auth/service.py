"""Session manager - orchestrates registration, login and the session lifecycle."""

import logging
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterator, Mapping
from uuid import UUID, uuid4

from pydantic import ValidationError as PydanticValidationError

from auth.config import AuthConfig
from auth.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
)
from auth.password import PasswordHasher, SaltedPasswordHasher
from auth.rate_limiter import RateLimiter
from auth.repository import UserRepository
from auth.scheduler import ExpiryCheckScheduler
from auth.session import MemorySessionStore, SessionStore
from auth.token_store import MemoryTokenStore, SingleUseTokenStore
from auth.tokens import TokenIssuer
from auth.types import (
    EDITABLE_PROFILE_FIELDS,
    AuthResult,
    LoginRequest,
    PasswordResetPayload,
    PasswordResetRequest,
    RegisterRequest,
    Session,
    TokenKind,
    TokenPurpose,
    UserProfile,
    UserRecord,
    UserRole,
)
from auth.validators import validate_new_password, validate_registration
from clients.email_client import EmailGatewayClient, EmailGatewayError
from core.audit import AuditAction, AuditSink, compute_changes
from core.event_bus import EventNotifier
from core.events import AuthEvent, AuthEventType
from utils.timezone import from_epoch_seconds, now_utc

logger = logging.getLogger(__name__)

INVALID_RESET_TOKEN = "Invalid or expired reset token"


class AuthState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class SessionManager:
    """Owns the single live session and every flow that changes it.

    Handles:
    - Registration and login (with brute-force protection)
    - Logout and access token refresh (single-flight)
    - Password reset and email verification via single-use tokens
    - Profile updates by the session's own user
    - Background refresh ahead of access token expiry

    One manager tracks at most one session; a second login replaces the first.
    """

    def __init__(
        self,
        config: AuthConfig,
        users: UserRepository,
        events: EventNotifier,
        audit: AuditSink,
        password_hasher: PasswordHasher | None = None,
        token_issuer: TokenIssuer | None = None,
        rate_limiter: RateLimiter | None = None,
        token_store: SingleUseTokenStore | None = None,
        session_store: SessionStore | None = None,
        email_client: EmailGatewayClient | None = None,
        clock: Callable[[], datetime] = now_utc,
        restore: bool = True,
    ):
        self._config = config
        self._users = users
        self._events = events
        self._audit = audit
        self._clock = clock
        self._hasher = password_hasher or SaltedPasswordHasher(
            config.password_hash_algorithm, config.password_hash_iterations
        )
        self._tokens = token_issuer or TokenIssuer(config, clock)
        self._rate_limiter = rate_limiter or RateLimiter(config, clock)
        self._token_store = token_store or MemoryTokenStore(clock)
        self._session_store = session_store or MemorySessionStore()
        self._email_client = email_client

        self._session: Session | None = None
        self._refreshing = False
        self._state_lock = threading.RLock()
        self._refresh_lock = threading.Lock()
        self._user_locks: dict[UUID, threading.Lock] = {}
        self._user_locks_guard = threading.Lock()
        self._scheduler: ExpiryCheckScheduler | None = None
        # Verified against on unknown emails so both failure paths do the same work
        self._decoy_hash = self._hasher.hash(secrets.token_urlsafe(16))

        if restore:
            self.restore_session()

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def current_session(self) -> Session | None:
        """The live session, or None if absent or its access token has expired."""
        with self._state_lock:
            session = self._session
        if session is None or not self._tokens.is_valid(session.expires_at):
            return None
        return session

    @property
    def current_user(self) -> UserProfile | None:
        session = self.current_session
        return session.user if session else None

    @property
    def state(self) -> AuthState:
        with self._state_lock:
            if self._refreshing:
                return AuthState.REFRESHING
        if self.current_session is not None:
            return AuthState.AUTHENTICATED
        return AuthState.UNAUTHENTICATED

    def is_authenticated(self) -> bool:
        return self.current_session is not None

    def has_role(self, role: UserRole) -> bool:
        user = self.current_user
        return user is not None and user.role == role

    # =========================================================================
    # REGISTRATION AND LOGIN
    # =========================================================================

    def register(self, payload: RegisterRequest) -> AuthResult:
        """Create an account and sign it in.

        Raises:
            ValidationError: If a field breaks a registration rule.
            ConflictError: If the email is already registered.
        """
        try:
            validate_registration(payload, self._config.min_password_length)
            email = payload.email.strip().lower()

            if self._users.find_by_email(email) is not None:
                raise ConflictError("Email is already registered")

            now = self._clock()
            record = UserRecord(
                id=uuid4(),
                email=email,
                password_hash=self._hasher.hash(payload.password),
                role=payload.role or UserRole.INDIVIDUAL,
                verified=False,
                first_name=payload.first_name,
                last_name=payload.last_name,
                business_name=payload.business_name,
                tin_number=payload.tin_number,
                business_type=payload.business_type,
                phone_number=payload.phone_number,
                created_at=now,
                updated_at=now,
            )
            # create() re-checks the email atomically in case of a concurrent signup
            record = self._users.create(record)
        except Exception as e:
            self._publish(AuthEventType.REGISTRATION_FAILED, error=str(e))
            raise

        result = self._start_session(record, extended=False)

        self._audit.log_action(
            record.id,
            AuditAction.SIGNUP,
            {"email": record.email, "business_name": record.business_name},
        )
        self._publish(AuthEventType.USER_REGISTERED, user_id=record.id, email=record.email)

        self._send_verification(record)
        return result

    def login(self, payload: LoginRequest) -> AuthResult:
        """Authenticate with email and password.

        The attempt is recorded before the lockout check, and counts even
        when the email has no account.

        Raises:
            RateLimitedError: If this email is locked out.
            InvalidCredentialsError: If email or password is wrong.
        """
        email = payload.email.strip().lower()
        try:
            self._rate_limiter.check_rate_limit(email)

            user = self._users.find_by_email(email)
            if user is None:
                self._hasher.verify(payload.password, self._decoy_hash)
                raise InvalidCredentialsError()
            if not self._hasher.verify(payload.password, user.password_hash):
                raise InvalidCredentialsError()
        except Exception as e:
            self._publish(AuthEventType.LOGIN_FAILED, email=email, error=str(e))
            raise

        self._rate_limiter.reset(email)
        result = self._start_session(user, extended=payload.remember_me)

        self._audit.log_action(user.id, AuditAction.LOGIN, {"email": user.email})
        self._publish(AuthEventType.USER_LOGGED_IN, user_id=user.id, email=user.email)
        return result

    def logout(self) -> None:
        """End the session. No-op without one; safe to call repeatedly."""
        self._end_session()

    def _end_session(self, only: Session | None = None) -> None:
        """Clear the live and persisted session.

        With ``only``, nothing happens unless that exact session is still live.
        The store is cleared first; if that fails the session stays live.
        """
        with self._state_lock:
            session = self._session
            if session is None or (only is not None and session is not only):
                return
            self._session_store.clear()
            self._session = None

        user = session.user
        logger.info("Session ended for user %s", user.id)
        self._audit.log_action(user.id, AuditAction.LOGOUT, {"email": user.email})
        self._publish(AuthEventType.USER_LOGGED_OUT, user_id=user.id, email=user.email)

    # =========================================================================
    # TOKEN REFRESH
    # =========================================================================

    def refresh_access_token(self) -> AuthResult | None:
        """Mint a new access token from the refresh token.

        Returns None without a session or refresh token. An undecodable or
        expired refresh token ends the session (fail closed). Only one
        refresh runs at a time; a caller that waited on another caller's
        refresh gets that result instead of refreshing again.
        """
        with self._state_lock:
            observed = self._session.access_token if self._session else None

        with self._refresh_lock:
            with self._state_lock:
                session = self._session
            if session is None or not session.refresh_token:
                return None
            if session.access_token != observed:
                return AuthResult.from_session(session)

            with self._state_lock:
                self._refreshing = True
            try:
                refreshed = self._refresh(session)
            except Exception as e:
                logger.exception("Token refresh failed for user %s", session.user.id)
                self._publish(AuthEventType.TOKEN_REFRESH_FAILED, error=str(e))
                refreshed = None
            finally:
                with self._state_lock:
                    self._refreshing = False

        if refreshed is None:
            # A login may have replaced the session while this refresh ran
            self._end_session(only=session)
            return None

        user = refreshed.user
        self._audit.log_action(
            user.id,
            AuditAction.LOGIN,
            {"action": "token_refresh", "email": user.email},
        )
        self._publish(AuthEventType.TOKEN_REFRESHED, user_id=user.id)
        return AuthResult.from_session(refreshed)

    def _refresh(self, session: Session) -> Session | None:
        """Validate the refresh token and install a new access token. Caller holds the refresh lock."""
        claims = self._tokens.decode(session.refresh_token)
        if claims is None or claims.kind is not TokenKind.REFRESH or claims.user_id != session.user.id:
            error = "Invalid refresh token"
        elif not self._tokens.is_valid(claims.exp):
            error = "Refresh token expired"
        else:
            error = None

        if error is not None:
            logger.warning("%s for user %s; ending session", error, session.user.id)
            self._publish(AuthEventType.TOKEN_REFRESH_FAILED, error=error)
            return None

        access_token, expires_at = self._tokens.issue_access_token(
            session.user.id, session.user.email, session.user.role
        )
        refreshed = session.model_copy(
            update={"access_token": access_token, "expires_at": expires_at}
        )
        self._install(refreshed)
        logger.info("Access token refreshed for user %s", session.user.id)
        return refreshed

    def check_token_expiration(self) -> bool:
        """Refresh if the access token expires within the refresh horizon.

        Returns True if a refresh happened.
        """
        with self._state_lock:
            session = self._session
        if session is None:
            return False
        if session.expires_at - self._clock() > self._config.refresh_horizon:
            return False
        return self.refresh_access_token() is not None

    def start_expiry_checks(self) -> None:
        """Run check_token_expiration on a background thread. Idempotent."""
        if self._scheduler is None:
            self._scheduler = ExpiryCheckScheduler(
                self.check_token_expiration,
                interval_seconds=self._config.expiry_check_interval_seconds,
            )
        self._scheduler.start()

    def stop_expiry_checks(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()

    # =========================================================================
    # PASSWORD RESET
    # =========================================================================

    def request_password_reset(self, request: PasswordResetRequest | str) -> bool:
        """Send a reset link if the email has an account.

        Always returns True so callers cannot tell whether the email exists.
        """
        email = request.email if isinstance(request, PasswordResetRequest) else request
        email = email.strip().lower()
        try:
            user = self._users.find_by_email(email)
        except Exception as e:
            self._publish(AuthEventType.PASSWORD_RESET_REQUEST_FAILED, error=str(e))
            raise

        if user is None:
            logger.info("Password reset requested for an unknown email")
            return True

        token = self._token_store.issue(
            user.id,
            TokenPurpose.PASSWORD_RESET,
            timedelta(hours=self._config.password_reset_expiry_hours),
        )
        if self._email_client is None:
            logger.info("Password reset token issued for user %s (no email client)", user.id)
        else:
            try:
                self._email_client.send_password_reset_email(user.email, token.token)
            except EmailGatewayError as e:
                logger.exception("Password reset email to user %s failed", user.id)
                self._publish(AuthEventType.PASSWORD_RESET_REQUEST_FAILED, error=str(e))

        self._audit.log_action(
            user.id,
            AuditAction.FORM_SUBMISSION,
            {"action": "password_reset_request", "email": user.email},
        )
        self._publish(AuthEventType.PASSWORD_RESET_REQUESTED, user_id=user.id, email=user.email)
        return True

    def reset_password(self, payload: PasswordResetPayload) -> bool:
        """Set a new password using a reset token. The token is consumed.

        Raises:
            ValidationError: If the passwords differ or are too weak.
            InvalidTokenError: If the token is unknown, used or expired.
        """
        try:
            validate_new_password(
                payload.new_password,
                payload.confirm_password,
                self._config.min_password_length,
            )

            user_id = self._token_store.find_user(TokenPurpose.PASSWORD_RESET, payload.token)
            if user_id is None:
                raise InvalidTokenError(INVALID_RESET_TOKEN)

            with self._user_lock(user_id):
                user = self._users.find_by_id(user_id)
                if user is None:
                    raise InvalidTokenError(INVALID_RESET_TOKEN)
                new_hash = self._hasher.hash(payload.new_password)
                # Consume first so two concurrent resets can't both succeed
                if not self._token_store.consume(user_id, TokenPurpose.PASSWORD_RESET, payload.token):
                    raise InvalidTokenError(INVALID_RESET_TOKEN)
                user = self._users.update(
                    user.model_copy(update={"password_hash": new_hash, "updated_at": self._clock()})
                )
        except Exception as e:
            self._publish(AuthEventType.PASSWORD_RESET_FAILED, error=str(e))
            raise

        self._audit.log_action(user.id, AuditAction.PROFILE_UPDATE, {"action": "password_reset"})
        self._publish(AuthEventType.PASSWORD_RESET_COMPLETED, user_id=user.id, email=user.email)
        return True

    # =========================================================================
    # EMAIL VERIFICATION
    # =========================================================================

    def verify_email(self, user_id: UUID | str, token: str) -> bool:
        """Mark the user's email verified if the token matches.

        Never raises: any mismatch, expiry or unknown user returns False.
        """
        try:
            user_id = user_id if isinstance(user_id, UUID) else UUID(str(user_id))
            with self._user_lock(user_id):
                if not self._token_store.matches(user_id, TokenPurpose.EMAIL_VERIFICATION, token):
                    raise InvalidTokenError("Invalid or expired verification token")
                user = self._users.find_by_id(user_id)
                if user is None:
                    raise InvalidTokenError("Invalid or expired verification token")
                if not self._token_store.consume(user_id, TokenPurpose.EMAIL_VERIFICATION, token):
                    raise InvalidTokenError("Invalid or expired verification token")
                user = self._users.update(
                    user.model_copy(update={"verified": True, "updated_at": self._clock()})
                )
        except Exception as e:
            logger.warning("Email verification failed: %s", e)
            self._publish(AuthEventType.EMAIL_VERIFICATION_FAILED, error="Email verification failed")
            return False

        self._replace_session_user(user)
        self._audit.log_action(
            user.id,
            AuditAction.PROFILE_UPDATE,
            {"action": "email_verification", "verified": True},
        )
        self._publish(AuthEventType.EMAIL_VERIFIED, user_id=user.id, email=user.email)
        return True

    def resend_verification_email(self) -> bool:
        """Issue a fresh verification token for the signed-in, unverified user."""
        session = self.current_session
        if session is None or session.user.verified:
            return False
        user = self._users.find_by_id(session.user.id)
        if user is None or user.verified:
            return False
        self._send_verification(user)
        return True

    def _send_verification(self, user: UserRecord) -> None:
        """Issue a verification token and hand it to the email gateway, best effort."""
        token = self._token_store.issue(
            user.id,
            TokenPurpose.EMAIL_VERIFICATION,
            timedelta(hours=self._config.email_verification_expiry_hours),
        )
        if self._email_client is None:
            logger.info("Verification token issued for user %s (no email client)", user.id)
            return
        try:
            self._email_client.send_verification_email(user.email, token.token, user.id)
        except EmailGatewayError:
            logger.exception("Verification email to user %s failed", user.id)

    # =========================================================================
    # PROFILE
    # =========================================================================

    def update_profile(self, user_id: UUID | str, updates: Mapping[str, Any]) -> UserProfile:
        """Change the editable profile fields of the signed-in user.

        Only first/last name, business name, phone number and business type
        can change here; other keys are ignored.

        Raises:
            UnauthorizedError: If the live session belongs to someone else.
            UserNotFoundError: If the user record is gone.
            ValidationError: If a value has the wrong type.
        """
        try:
            try:
                user_id = user_id if isinstance(user_id, UUID) else UUID(str(user_id))
            except ValueError:
                raise UnauthorizedError("Unauthorized") from None
            session = self.current_session
            if session is None or session.user.id != user_id:
                raise UnauthorizedError("Unauthorized")

            allowed = {k: v for k, v in updates.items() if k in EDITABLE_PROFILE_FIELDS}
            ignored = sorted(set(updates) - EDITABLE_PROFILE_FIELDS)
            if ignored:
                logger.warning("Ignoring non-editable profile fields for %s: %s", user_id, ignored)

            with self._user_lock(user_id):
                before = self._users.find_by_id(user_id)
                if before is None:
                    raise UserNotFoundError(f"User {user_id} not found")
                try:
                    after = UserRecord.model_validate(
                        {**before.model_dump(), **allowed, "updated_at": self._clock()}
                    )
                except PydanticValidationError as e:
                    raise ValidationError("profile_fields", str(e)) from e
                after = self._users.update(after)
        except Exception as e:
            self._publish(AuthEventType.PROFILE_UPDATE_FAILED, error=str(e))
            raise

        profile = after.to_profile()
        self._replace_session_user(after)
        self._audit.log_action(
            user_id,
            AuditAction.PROFILE_UPDATE,
            {
                "updated_fields": sorted(allowed),
                "changes": compute_changes(
                    before.to_profile().model_dump(mode="json"),
                    profile.model_dump(mode="json"),
                ),
            },
        )
        self._publish(AuthEventType.PROFILE_UPDATED, user_id=user_id, email=after.email)
        return profile

    # =========================================================================
    # SESSION STATE
    # =========================================================================

    def restore_session(self) -> AuthState:
        """Hydrate from the session store.

        An expired access token is refreshed when a refresh token exists;
        otherwise the stale session is logged out.
        """
        stored = self._session_store.load()
        if stored is None:
            return AuthState.UNAUTHENTICATED

        with self._state_lock:
            self._session = stored

        if self._tokens.is_valid(stored.expires_at):
            logger.info("Restored session for user %s", stored.user.id)
        elif stored.refresh_token:
            self.refresh_access_token()
        else:
            self.logout()
        return self.state

    def _start_session(self, user: UserRecord, extended: bool) -> AuthResult:
        pair = self._tokens.issue(user.id, user.email, user.role, extended=extended)
        session = Session(
            user=user.to_profile(),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_at=pair.access_expires_at,
        )
        self._install(session)
        logger.info("Session started for user %s (extended=%s)", user.id, extended)
        return AuthResult.from_session(session)

    def _install(self, session: Session) -> None:
        """Make session the live one and persist it for as long as it can be refreshed."""
        expires_at = session.expires_at
        if session.refresh_token:
            claims = self._tokens.decode(session.refresh_token)
            if claims is not None:
                expires_at = max(expires_at, from_epoch_seconds(claims.exp))
        with self._state_lock:
            self._session = session
            self._session_store.save(session, expires_at - self._clock())

    def _replace_session_user(self, user: UserRecord) -> None:
        """Swap in fresh user data if user owns the live session."""
        with self._state_lock:
            session = self._session
            if session is None or session.user.id != user.id:
                return
            self._install(session.model_copy(update={"user": user.to_profile()}))

    @contextmanager
    def _user_lock(self, user_id: UUID) -> Iterator[None]:
        with self._user_locks_guard:
            lock = self._user_locks.setdefault(user_id, threading.Lock())
        with lock:
            yield

    def _publish(self, event_type: AuthEventType, **payload: Any) -> None:
        self._events.publish(AuthEvent.create(event_type, **payload))
