"""Async database engine and session management.

Configures the SQLAlchemy async engine with connection pooling and provides
dependency injection for database sessions.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.errors import StoreUnavailableError

engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def commit_or_raise(db: AsyncSession) -> None:
    """Commit the session, converting database failures to 503.

    Endpoints that report link state commit explicitly before responding,
    so a state is only returned once its counters are durable.

    Raises:
        StoreUnavailableError: If the commit fails.
    """
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreUnavailableError() from exc
