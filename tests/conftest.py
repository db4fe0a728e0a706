"""Shared test fixtures for the identity test suite."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from auth.config import AuthConfig
from auth.rate_limiter import RateLimiter
from auth.repository import InMemoryUserRepository
from auth.service import SessionManager
from auth.session import MemorySessionStore
from auth.types import LoginRequest, RegisterRequest
from clients.email_client import EmailGatewayClient
from clients.valkey_client import ValkeyClient
from core.audit import InMemoryAuditLog
from core.event_bus import EventBus


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

TEST_EMAIL = "a@x.com"
TEST_PASSWORD = "Abcd123!"
OTHER_EMAIL = "b@x.com"


class FakeClock:
    """Manually advanced clock. Call it like utils.timezone.now_utc."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> AuthConfig:
    """Defaults, with a fixed token secret."""
    return AuthConfig(token_secret="test-secret-0123456789abcdef")


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published(bus) -> list:
    """Every event published on the bus, in order."""
    events = []
    bus.subscribe_all(events.append)
    return events


@pytest.fixture
def repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def audit(clock) -> InMemoryAuditLog:
    return InMemoryAuditLog(clock)


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def fake_valkey():
    """ValkeyClient double backed by a dict. TTLs are accepted but not enforced."""
    data = {}

    def set_json(key, value, expire_seconds):
        if expire_seconds < 1:
            raise ValueError("expire_seconds must be positive")
        data[key] = json.dumps(value)

    def get_json(key):
        raw = data.get(key)
        return None if raw is None else json.loads(raw)

    valkey = Mock(spec=ValkeyClient)
    valkey.set_json.side_effect = set_json
    valkey.get_json.side_effect = get_json
    valkey.delete.side_effect = lambda key: data.pop(key, None) is not None
    return valkey


@pytest.fixture
def mock_email_client():
    """Mock email client - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send_verification_email.return_value = None
    mock.send_password_reset_email.return_value = None
    return mock


@pytest.fixture
def rate_limiter(config, clock) -> RateLimiter:
    return RateLimiter(config, clock)


@pytest.fixture
def manager(config, repo, bus, audit, rate_limiter, session_store, mock_email_client, clock) -> SessionManager:
    """SessionManager with in-memory collaborators and a fake clock."""
    return SessionManager(
        config=config,
        users=repo,
        events=bus,
        audit=audit,
        rate_limiter=rate_limiter,
        session_store=session_store,
        email_client=mock_email_client,
        clock=clock,
    )


@pytest.fixture
def register_request():
    def _make(email: str = TEST_EMAIL, password: str = TEST_PASSWORD, **fields) -> RegisterRequest:
        return RegisterRequest(email=email, password=password, confirm_password=password, **fields)
    return _make


@pytest.fixture
def login_request():
    def _make(email: str = TEST_EMAIL, password: str = TEST_PASSWORD, **fields) -> LoginRequest:
        return LoginRequest(email=email, password=password, **fields)
    return _make
