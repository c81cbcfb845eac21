from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from stream_alerts.core.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create a SQLAlchemy async engine from settings."""

    return create_async_engine(database_url or settings.database_url, echo=False, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit so snapshots can be built from them."""

    return async_sessionmaker(bind=engine, expire_on_commit=False)
