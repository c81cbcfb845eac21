"""FastAPI app entry point."""

from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stream_alerts.core.config import Settings, get_settings
from stream_alerts.core.dependencies import build_services
from stream_alerts.db.init_db import ensure_sqlite_directory, init_models
from stream_alerts.routers import streamers, webhooks, youtube
from stream_alerts.services.channel_resolver import ChannelResolver
from stream_alerts.services.streamer_store import StreamerStore
from stream_alerts.services.video_lookup import VideoLookup

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    store: StreamerStore | None = None,
    video_lookup: VideoLookup | None = None,
    channel_resolver: ChannelResolver | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build FastAPI application."""

    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    services = build_services(
        settings,
        store=store,
        video_lookup=video_lookup,
        channel_resolver=channel_resolver,
        http_client=http_client,
    )

    app = FastAPI(title="Stream Alerts", version="0.1.0")
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.dashboard_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(webhooks.build_router(settings.callback_path))
    app.include_router(youtube.router)
    app.include_router(streamers.router)

    @app.on_event("startup")
    async def _startup() -> None:
        if services.engine is not None:
            ensure_sqlite_directory(settings.database_url)
            await init_models(services.engine)
        if settings.lease_monitor_enabled:
            services.monitor.start()
            logger.info(
                "Lease monitor started",
                extra={"interval": settings.lease_check_interval_seconds},
            )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await services.aclose()

    @app.get("/healthz", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
