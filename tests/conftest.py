"""Shared fixtures: in-memory database, clock, event bus and services.

Database tests run against SQLite (aiosqlite) with a single shared
connection (StaticPool) so every session in a test sees the same schema.
Foreign keys are switched on per connection to exercise ON DELETE CASCADE.
"""

from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from turnstile.core.config import settings
from turnstile.core.passwords import BcryptPasswordHasher
from turnstile.events import AccountEvent, EventBus
from turnstile.models.account import Account
from turnstile.models.base import Base
from turnstile.schemas.account import AccountCreate
from turnstile.services.account_service import AccountService
from turnstile.services.authentication_service import AuthenticationService
from turnstile.services.token_service import TokenService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Low cost factor for fast tests
TEST_BCRYPT_ROUNDS = 4

# Fixed reference time for clock-driven tests
TEST_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Deterministic clock for services that take a ``clock`` callable."""

    def __init__(self, now: datetime = TEST_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class RecordingEventBus(EventBus):
    """EventBus that also keeps every published event in order."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[AccountEvent] = []

    def publish(self, event: AccountEvent) -> None:
        self.published.append(event)
        super().publish(event)

    def of_type(self, event_type: type[AccountEvent]) -> list[AccountEvent]:
        return [e for e in self.published if isinstance(e, event_type)]


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create an in-memory test database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at TEST_NOW."""
    return FrozenClock()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    """Event bus that records published events."""
    return RecordingEventBus()


@pytest.fixture
def password_hasher() -> BcryptPasswordHasher:
    """bcrypt hasher with a low cost factor."""
    return BcryptPasswordHasher(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def token_service(db_session: AsyncSession, clock: FrozenClock) -> TokenService:
    """TokenService on the test session with a frozen clock."""
    return TokenService(db_session, clock=clock)


@pytest.fixture
def account_service(
    db_session: AsyncSession,
    event_bus: RecordingEventBus,
    password_hasher: BcryptPasswordHasher,
    token_service: TokenService,
    clock: FrozenClock,
) -> AccountService:
    """AccountService wired to the test session, bus and clock."""
    return AccountService(
        db_session,
        event_bus=event_bus,
        password_hasher=password_hasher,
        token_service=token_service,
        clock=clock,
    )


@pytest.fixture
def auth_secret() -> Iterator[str]:
    """Install a test signing secret for session JWTs."""
    original = settings.auth_secret
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    yield TEST_AUTH_SECRET
    settings.auth_secret = original


@pytest.fixture
def authentication_service(
    db_session: AsyncSession,
    account_service: AccountService,
    event_bus: RecordingEventBus,
    password_hasher: BcryptPasswordHasher,
    auth_secret: str,  # noqa: ARG001 - ensures a signing secret is set
) -> AuthenticationService:
    """AuthenticationService sharing the test account service."""
    return AuthenticationService(
        db_session,
        account_service=account_service,
        event_bus=event_bus,
        password_hasher=password_hasher,
    )


@pytest_asyncio.fixture
async def test_account(
    account_service: AccountService, event_bus: RecordingEventBus
) -> Account:
    """First (privileged) account, password 'password123'.

    The registration event is cleared so tests only see their own events.
    """
    account = await account_service.create(
        AccountCreate(email="owner@example.com", password="password123")
    )
    event_bus.published.clear()
    return account


@pytest_asyncio.fixture
async def other_account(
    account_service: AccountService,
    event_bus: RecordingEventBus,
    test_account: Account,  # noqa: ARG001 - created first so this one is not privileged
) -> Account:
    """Second account, password 'password456'."""
    account = await account_service.create(
        AccountCreate(email="other@example.com", password="password456")
    )
    event_bus.published.clear()
    return account
