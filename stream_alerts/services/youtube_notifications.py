"""Turn YouTube WebSub notifications into live-status updates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from xml.etree import ElementTree as ET

from stream_alerts.services.errors import UpstreamError, ValidationError
from stream_alerts.services.streamer_store import StreamerRecord, YouTubeLiveStatus
from stream_alerts.services.video_lookup import MetadataLookupError, VideoLookup

logger = logging.getLogger(__name__)


ATOM_NS = "http://www.w3.org/2005/Atom"
YT_NS = "http://www.youtube.com/xml/schemas/2015"
TOMBSTONE_NS = "http://purl.org/atompub/tombstones/1.0"

MAX_FEED_BYTES = 1 << 20


class InvalidFeedError(ValidationError):
    """Raised when a WebSub payload cannot be decoded."""


class LookupFailedError(UpstreamError):
    """Raised when video metadata could not be fetched for a notification."""

    def __init__(self, message: str, video_ids: list[str]) -> None:
        super().__init__(message)
        self.video_ids = video_ids


class LiveStatusStore(Protocol):
    async def update_youtube_live_status(self, channel_id: str, status: YouTubeLiveStatus) -> StreamerRecord:
        ...


@dataclass(slots=True)
class FeedEntry:
    video_id: str
    channel_id: str
    title: str = ""
    updated: datetime | None = None


@dataclass(slots=True)
class LiveUpdate:
    channel_id: str
    video_id: str
    title: str
    started_at: datetime | None


@dataclass(slots=True)
class SkippedVideo:
    video_id: str
    channel_id: str
    reason: str


@dataclass(slots=True)
class NotificationResult:
    """Summary of one processed notification."""

    entries: int = 0
    video_ids: list[str] = field(default_factory=list)
    live_updates: list[LiveUpdate] = field(default_factory=list)
    skipped: list[SkippedVideo] = field(default_factory=list)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    value = value.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Failed to parse datetime", extra={"value": value})
        return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_feed(payload: bytes, *, limit: int = MAX_FEED_BYTES) -> list[FeedEntry]:
    """Parse an Atom payload into feed entries; only the first ``limit`` bytes are read."""

    try:
        root = ET.fromstring(payload[:limit])
    except ET.ParseError as exc:
        raise InvalidFeedError("Invalid XML payload") from exc

    for deleted in root.iter(f"{{{TOMBSTONE_NS}}}deleted-entry"):
        logger.info("Ignoring deleted-entry notification", extra={"ref": deleted.get("ref")})

    entries: list[FeedEntry] = []
    for element in root:
        if _local_name(element.tag) != "entry":
            continue
        entries.append(
            FeedEntry(
                video_id=(element.findtext(f"{{{YT_NS}}}videoId") or "").strip(),
                channel_id=(element.findtext(f"{{{YT_NS}}}channelId") or "").strip(),
                title=(element.findtext(f"{{{ATOM_NS}}}title") or "").strip(),
                updated=_parse_datetime(element.findtext(f"{{{ATOM_NS}}}updated")),
            )
        )
    return entries


def _unique_video_ids(entries: list[FeedEntry]) -> list[str]:
    seen: set[str] = set()
    video_ids: list[str] = []
    for entry in entries:
        if entry.video_id and entry.video_id not in seen:
            seen.add(entry.video_id)
            video_ids.append(entry.video_id)
    return video_ids


class NotificationProcessor:
    """Looks up the videos named in a feed and marks live ones on the store."""

    def __init__(self, store: LiveStatusStore, lookup: VideoLookup, *, body_limit: int = MAX_FEED_BYTES) -> None:
        self.store = store
        self.lookup = lookup
        self.body_limit = body_limit

    async def process(self, payload: bytes) -> NotificationResult:
        entries = parse_feed(payload, limit=self.body_limit)
        result = NotificationResult(entries=len(entries))
        if not entries:
            return result

        result.video_ids = _unique_video_ids(entries)
        if not result.video_ids:
            return result

        try:
            metadata = await self.lookup.fetch(result.video_ids)
        except MetadataLookupError as exc:
            raise LookupFailedError(f"video lookup failed: {exc}", list(result.video_ids)) from exc

        for entry in entries:
            if not entry.video_id or not entry.channel_id:
                continue

            info = metadata.get(entry.video_id)
            if info is None:
                result.skipped.append(SkippedVideo(entry.video_id, entry.channel_id, "metadata missing"))
                continue
            if not info.is_live:
                result.skipped.append(SkippedVideo(entry.video_id, entry.channel_id, "not live"))
                continue

            started_at = info.actual_start_time or entry.updated
            status = YouTubeLiveStatus(live=True, video_id=entry.video_id, started_at=started_at)
            try:
                await self.store.update_youtube_live_status(entry.channel_id, status)
            except Exception as exc:  # noqa: BLE001 - one bad entry must not drop the rest
                logger.warning(
                    "Failed to update live status",
                    extra={"channel_id": entry.channel_id, "video_id": entry.video_id},
                    exc_info=True,
                )
                result.skipped.append(SkippedVideo(entry.video_id, entry.channel_id, str(exc)))
                continue

            result.live_updates.append(
                LiveUpdate(
                    channel_id=entry.channel_id,
                    video_id=entry.video_id,
                    title=info.title or entry.title,
                    started_at=started_at,
                )
            )

        return result
