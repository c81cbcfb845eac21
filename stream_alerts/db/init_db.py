import asyncio
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine

from stream_alerts.core.config import settings
from stream_alerts.db.models import Base
from stream_alerts.db.session import create_engine


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


async def init_models(db_engine: AsyncEngine) -> None:
    """Create database tables."""

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _main() -> None:
    ensure_sqlite_directory(settings.database_url)
    engine = create_engine()
    try:
        await init_models(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(_main())
