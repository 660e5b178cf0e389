import socket
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import CalculationRates, LinkPolicy, settings
from app.models.base import Base
from app.services.access_validator import AccessValidator
from app.services.case_generation import CaseGenerator
from app.services.link_issuance import LinkIssuer
from app.stores import InMemoryCaseStore, InMemoryLinkStore

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Security: test-only values. Production reads these from the environment.
TEST_PEPPER = "test-pepper-that-is-at-least-32-characters-long"  # nosec B105
TEST_OPERATOR_KEY = "test-operator-key"  # nosec B105
TEST_WEBHOOK_SECRET = "test-webhook-secret"  # nosec B105

FROZEN_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Controllable clock for lifecycle tests."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Service fixtures (no database)
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at FROZEN_NOW."""
    return FrozenClock()


@pytest.fixture
def policy() -> LinkPolicy:
    """Default link policy with the test pepper."""
    return LinkPolicy(pepper=TEST_PEPPER)


@pytest.fixture
def rates() -> CalculationRates:
    """Default per-W-2 multipliers."""
    return CalculationRates(
        rate_total=Decimal("3356"),
        rate_er=Decimal("1186"),
        rate_ee=Decimal("2170"),
    )


@pytest.fixture
def link_store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def case_store() -> InMemoryCaseStore:
    return InMemoryCaseStore()


@pytest.fixture
def issuer(link_store, policy, clock) -> LinkIssuer:
    return LinkIssuer(link_store, policy, clock)


@pytest.fixture
def validator(link_store, case_store, policy, clock) -> AccessValidator:
    return AccessValidator(link_store, case_store, policy, clock)


@pytest.fixture
def generator(case_store, issuer, rates, policy, clock) -> CaseGenerator:
    return CaseGenerator(case_store, issuer, rates, policy, clock)


# =============================================================================
# API fixtures
# =============================================================================


@pytest.fixture
def configured_settings() -> Iterator[None]:
    """Set operator key, webhook secret and Pipedrive field keys.

    Outbound tokens stay empty so notifications are skipped.
    """
    originals = {
        name: getattr(settings, name)
        for name in (
            "operator_api_key",
            "pipedrive_webhook_secret",
            "pipedrive_field_generate_proposal",
            "pipedrive_option_generate_yes",
            "pipedrive_field_industry",
            "pipedrive_field_w2_count",
            "pipedrive_field_case_page_url",
            "pipedrive_api_token",
            "slack_bot_token",
            "slack_default_channel",
            "app_base_url",
        )
    }
    settings.operator_api_key = SecretStr(TEST_OPERATOR_KEY)
    settings.pipedrive_webhook_secret = SecretStr(TEST_WEBHOOK_SECRET)
    settings.pipedrive_field_generate_proposal = "gen_field"
    settings.pipedrive_option_generate_yes = "42"
    settings.pipedrive_field_industry = "industry_field"
    settings.pipedrive_field_w2_count = "w2_field"
    settings.pipedrive_field_case_page_url = "url_field"
    settings.pipedrive_api_token = SecretStr("")
    settings.slack_bot_token = SecretStr("")
    settings.slack_default_channel = ""
    settings.app_base_url = "https://cases.example.com"

    yield

    for name, value in originals.items():
        setattr(settings, name, value)


@pytest_asyncio.fixture
async def client(
    link_store,
    case_store,
    policy,
    rates,
    clock,
    configured_settings,  # noqa: ARG001 - ensures operator/webhook secrets
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to in-memory stores.

    Sets up:
    - In-memory link/case stores, frozen clock and test policy via overrides
    - A mocked database session (commit is a no-op)
    - Rate limiting disabled

    Yields:
        Configured AsyncClient.
    """
    from app.api import deps
    from app.core.database import get_db
    from app.core.rate_limiting import limiter
    from app.main import app

    async def override_get_db() -> AsyncGenerator[AsyncMock, None]:
        yield AsyncMock(spec=AsyncSession)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_link_store] = lambda: link_store
    app.dependency_overrides[deps.get_case_store] = lambda: case_store
    app.dependency_overrides[deps.get_link_policy] = lambda: policy
    app.dependency_overrides[deps.get_calculation_rates] = lambda: rates
    app.dependency_overrides[deps.get_clock] = lambda: clock

    original_enabled = limiter.enabled
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    limiter.enabled = original_enabled
    app.dependency_overrides.clear()
