"""Service container shared by the routers and background tasks."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from stream_alerts.core.config import Settings
from stream_alerts.db.session import create_engine, create_sessionmaker
from stream_alerts.services.channel_resolver import ChannelResolver, build_channel_resolver
from stream_alerts.services.expectations import ExpectationRegistry
from stream_alerts.services.lease_monitor import LeaseMonitor, LeaseMonitorConfig
from stream_alerts.services.signatures import NotificationAuthenticator
from stream_alerts.services.streamer_store import StreamerStore
from stream_alerts.services.subscription_service import SubscriptionManager, SubscriptionProxy
from stream_alerts.services.verification import ChallengeVerifier
from stream_alerts.services.video_lookup import VideoLookup, build_video_lookup
from stream_alerts.services.websub import MODE_SUBSCRIBE, MODE_UNSUBSCRIBE, HubClient, HubDefaults
from stream_alerts.services.youtube_notifications import NotificationProcessor


@dataclass(slots=True)
class AlertServices:
    settings: Settings
    http_client: httpx.AsyncClient
    registry: ExpectationRegistry
    store: StreamerStore
    resolver: ChannelResolver
    hub_client: HubClient
    subscribe_proxy: SubscriptionProxy
    unsubscribe_proxy: SubscriptionProxy
    manager: SubscriptionManager
    verifier: ChallengeVerifier
    notifications: NotificationProcessor
    authenticator: NotificationAuthenticator
    monitor: LeaseMonitor
    engine: AsyncEngine | None = None
    owns_http_client: bool = False

    async def aclose(self) -> None:
        await self.monitor.stop()
        if self.owns_http_client:
            await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    settings: Settings,
    *,
    store: StreamerStore | None = None,
    video_lookup: VideoLookup | None = None,
    channel_resolver: ChannelResolver | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AlertServices:
    """Wire every service for one application instance."""

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(follow_redirects=True)

    engine = None
    if store is None:
        engine = create_engine(settings.database_url)
        store = StreamerStore(create_sessionmaker(engine))

    registry = ExpectationRegistry()
    resolver = channel_resolver or build_channel_resolver(settings, http_client)
    hub_client = HubClient(registry, http_client, HubDefaults.from_settings(settings))
    manager = SubscriptionManager(hub_client, resolver)
    monitor = LeaseMonitor(
        store,
        LeaseMonitorConfig(
            renew=manager.subscribe_record,
            interval=settings.lease_check_interval_seconds,
            renew_window=settings.lease_renew_window,
            default_lease_seconds=settings.lease_seconds,
            renew_timeout=settings.lease_renew_timeout_seconds,
            retry_after=settings.lease_retry_seconds,
        ),
    )

    return AlertServices(
        settings=settings,
        http_client=http_client,
        registry=registry,
        store=store,
        resolver=resolver,
        hub_client=hub_client,
        subscribe_proxy=SubscriptionProxy(MODE_SUBSCRIBE, hub_client),
        unsubscribe_proxy=SubscriptionProxy(MODE_UNSUBSCRIBE, hub_client),
        manager=manager,
        verifier=ChallengeVerifier(registry, store, callback_path=settings.callback_path),
        notifications=NotificationProcessor(
            store,
            video_lookup or build_video_lookup(settings, http_client),
            body_limit=settings.notification_body_limit,
        ),
        authenticator=NotificationAuthenticator(
            store,
            default_secret=settings.webhook_secret,
            default_callback=settings.callback_url,
            body_limit=settings.notification_body_limit,
        ),
        monitor=monitor,
        engine=engine,
        owns_http_client=owns_http_client,
    )


def get_services(request: Request) -> AlertServices:
    """FastAPI dependency returning the container stored on the application."""

    return request.app.state.services
