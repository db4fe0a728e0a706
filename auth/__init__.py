"""Identity and session management modules."""

from auth.exceptions import (
    AuthError,
    ValidationError,
    ConflictError,
    InvalidCredentialsError,
    RateLimitedError,
    InvalidTokenError,
    UnauthorizedError,
    UserNotFoundError,
)
from auth.types import (
    UserRole,
    BusinessType,
    UserProfile,
    UserRecord,
    Session,
    AuthResult,
    RegisterRequest,
    LoginRequest,
    PasswordResetRequest,
    PasswordResetPayload,
)
from auth.config import AuthConfig
from auth.password import PasswordHasher, SaltedPasswordHasher
from auth.tokens import TokenIssuer
from auth.rate_limiter import RateLimiter
from auth.repository import UserRepository, InMemoryUserRepository, JsonFileUserRepository
from auth.database import PostgresUserRepository
from auth.token_store import SingleUseTokenStore, MemoryTokenStore, ValkeyTokenStore
from auth.session import SessionStore, MemorySessionStore, ValkeySessionStore
from auth.security_logger import SecurityLogger
from auth.scheduler import ExpiryCheckScheduler
from auth.service import SessionManager, AuthState
