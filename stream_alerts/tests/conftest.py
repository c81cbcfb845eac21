"""Shared fixtures: an in-memory streamer store."""

from __future__ import annotations

import uuid

import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from stream_alerts.db.init_db import init_models
from stream_alerts.db.session import create_sessionmaker
from stream_alerts.services.streamer_store import StreamerStore


def _memory_db_url() -> str:
    return f"sqlite+aiosqlite:///file:streamers_{uuid.uuid4().hex}?mode=memory&cache=shared"


@pytest_asyncio.fixture
async def store() -> StreamerStore:
    engine = create_async_engine(_memory_db_url(), future=True, connect_args={"uri": True})
    await init_models(engine)
    yield StreamerStore(create_sessionmaker(engine))
    await engine.dispose()
