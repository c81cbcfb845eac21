"""Persistence for streamer records and their YouTube subscription state."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stream_alerts.db.models import Streamer, YouTubeSubscription
from stream_alerts.services.errors import NotFoundError, StreamerNotFoundError, ValidationError

logger = logging.getLogger(__name__)


class DuplicateStreamerError(ValidationError):
    """Raised when a streamer alias is already taken."""


@dataclass(slots=True, frozen=True)
class YouTubePlatform:
    """Subscription details stored for a streamer's YouTube channel."""

    handle: str = ""
    channel_id: str = ""
    hub_secret: str = ""
    hub_lease_date: datetime | None = None
    lease_seconds: int = 0
    callback_url: str = ""
    hub_url: str = ""
    verify_mode: str = ""
    topic: str = ""


@dataclass(slots=True, frozen=True)
class YouTubeLiveStatus:
    live: bool
    video_id: str = ""
    started_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class StreamerRecord:
    """Read-only snapshot of a stored streamer."""

    id: str
    alias: str
    description: str | None
    live: bool
    created_at: datetime
    updated_at: datetime
    youtube: YouTubePlatform | None = None
    youtube_status: YouTubeLiveStatus | None = None


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _snapshot(streamer: Streamer) -> StreamerRecord:
    youtube = None
    youtube_status = None
    sub = streamer.youtube
    if sub is not None:
        youtube = YouTubePlatform(
            handle=sub.handle or "",
            channel_id=sub.channel_id or "",
            hub_secret=sub.hub_secret or "",
            hub_lease_date=_as_utc(sub.hub_lease_date),
            lease_seconds=sub.lease_seconds or 0,
            callback_url=sub.callback_url or "",
            hub_url=sub.hub_url or "",
            verify_mode=sub.verify_mode or "",
            topic=sub.topic or "",
        )
        youtube_status = YouTubeLiveStatus(
            live=sub.live,
            video_id=sub.live_video_id or "",
            started_at=_as_utc(sub.live_started_at),
        )
    return StreamerRecord(
        id=streamer.id,
        alias=streamer.alias,
        description=streamer.description,
        live=streamer.live,
        created_at=_as_utc(streamer.created_at),
        updated_at=_as_utc(streamer.updated_at),
        youtube=youtube,
        youtube_status=youtube_status,
    )


class StreamerStore:
    """Async store over the streamers tables.

    Every call opens its own session and commits before returning, so callers
    always re-read current state and never hold ORM objects between operations.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def list(self) -> list[StreamerRecord]:
        async with self._sessionmaker() as session:
            result = await session.scalars(select(Streamer).order_by(Streamer.created_at, Streamer.id))
            return [_snapshot(streamer) for streamer in result]

    async def get(self, streamer_id: str) -> StreamerRecord:
        async with self._sessionmaker() as session:
            streamer = await session.get(Streamer, streamer_id)
            if streamer is None:
                raise StreamerNotFoundError(f"streamer {streamer_id} not found")
            return _snapshot(streamer)

    async def create(
        self,
        *,
        alias: str,
        description: str | None = None,
        streamer_id: str | None = None,
    ) -> StreamerRecord:
        alias = alias.strip()
        if not alias:
            raise ValidationError("alias is required")

        async with self._sessionmaker() as session:
            existing = await session.scalar(select(Streamer).where(func.lower(Streamer.alias) == alias.lower()))
            if existing is not None:
                raise DuplicateStreamerError(f"streamer alias {alias} already exists")

            now = datetime.now(timezone.utc)
            streamer = Streamer(
                id=streamer_id or uuid.uuid4().hex,
                alias=alias,
                description=description,
                live=False,
                created_at=now,
                updated_at=now,
                youtube=None,
            )
            session.add(streamer)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateStreamerError(f"streamer {alias} already exists") from exc
            return _snapshot(streamer)

    async def delete(self, streamer_id: str) -> StreamerRecord:
        async with self._sessionmaker() as session:
            streamer = await session.get(Streamer, streamer_id)
            if streamer is None:
                raise StreamerNotFoundError(f"streamer {streamer_id} not found")
            snapshot = _snapshot(streamer)
            await session.delete(streamer)
            await session.commit()
            return snapshot

    async def set_youtube_platform(self, streamer_id: str, platform: YouTubePlatform) -> StreamerRecord:
        async with self._sessionmaker() as session:
            streamer = await session.get(Streamer, streamer_id)
            if streamer is None:
                raise StreamerNotFoundError(f"streamer {streamer_id} not found")

            sub = streamer.youtube
            if sub is None:
                sub = YouTubeSubscription(
                    streamer_id=streamer.id,
                    live=False,
                    live_video_id=None,
                    live_started_at=None,
                )
                streamer.youtube = sub
            sub.handle = platform.handle or None
            sub.channel_id = platform.channel_id or None
            sub.hub_secret = platform.hub_secret or None
            sub.hub_lease_date = _as_utc(platform.hub_lease_date)
            sub.lease_seconds = platform.lease_seconds or None
            sub.callback_url = platform.callback_url or None
            sub.hub_url = platform.hub_url or None
            sub.verify_mode = platform.verify_mode or None
            sub.topic = platform.topic or None
            streamer.updated_at = datetime.now(timezone.utc)

            await session.commit()
            return _snapshot(streamer)

    async def _subscription_for_channel(self, session: AsyncSession, channel_id: str) -> YouTubeSubscription:
        channel_id = channel_id.strip()
        if not channel_id:
            raise ValidationError("channel id is required")
        sub = await session.scalar(
            select(YouTubeSubscription)
            .where(func.lower(YouTubeSubscription.channel_id) == channel_id.lower())
            .limit(1)
        )
        if sub is None:
            raise StreamerNotFoundError(f"channel id {channel_id} not found")
        return sub

    async def find_by_channel(self, channel_id: str) -> StreamerRecord | None:
        """Return the streamer subscribed to ``channel_id``, or ``None``."""

        if not channel_id.strip():
            return None
        async with self._sessionmaker() as session:
            try:
                sub = await self._subscription_for_channel(session, channel_id)
            except NotFoundError:
                return None
            streamer = await session.get(Streamer, sub.streamer_id)
            return _snapshot(streamer) if streamer is not None else None

    async def update_youtube_live_status(self, channel_id: str, status: YouTubeLiveStatus) -> StreamerRecord:
        """Set the live flag, video and start time for the streamer owning ``channel_id``."""

        async with self._sessionmaker() as session:
            sub = await self._subscription_for_channel(session, channel_id)
            streamer = await session.get(Streamer, sub.streamer_id)
            if streamer is None:
                raise StreamerNotFoundError(f"streamer for channel id {channel_id} not found")

            sub.live = status.live
            if status.live:
                sub.live_video_id = status.video_id or None
                sub.live_started_at = _as_utc(status.started_at)
            else:
                sub.live_video_id = None
                sub.live_started_at = None
            streamer.live = status.live
            streamer.updated_at = datetime.now(timezone.utc)

            await session.commit()
            logger.info(
                "Updated YouTube live status for %s",
                streamer.alias,
                extra={"channel_id": channel_id, "live": status.live, "video_id": status.video_id},
            )
            return _snapshot(streamer)

    async def record_lease(self, channel_id: str, verified_at: datetime) -> None:
        """Store the time the hub confirmed a subscription lease for ``channel_id``."""

        async with self._sessionmaker() as session:
            sub = await self._subscription_for_channel(session, channel_id)
            streamer = await session.get(Streamer, sub.streamer_id)
            sub.hub_lease_date = _as_utc(verified_at)
            if streamer is not None:
                streamer.updated_at = datetime.now(timezone.utc)
            await session.commit()
