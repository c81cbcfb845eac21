"""Pydantic models for streamer management API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from stream_alerts.services.streamer_store import StreamerRecord


class StreamerCreateRequest(BaseModel):
    """Inbound payload to register a streamer."""

    model_config = ConfigDict(populate_by_name=True)

    alias: str = Field(..., min_length=1)
    description: str | None = None
    youtube: str | None = Field(None, description="YouTube channel handle, URL, or UC id")


class YouTubeDetails(BaseModel):
    handle: str
    channel_id: str
    topic: str
    lease_started_at: datetime | None
    lease_seconds: int
    live: bool
    live_video_id: str | None
    live_started_at: datetime | None


class StreamerResponse(BaseModel):
    """Representation of a stored streamer."""

    id: str
    alias: str
    description: str | None
    live: bool
    created_at: datetime
    updated_at: datetime
    youtube: YouTubeDetails | None = None

    @classmethod
    def from_record(cls, record: StreamerRecord) -> "StreamerResponse":
        youtube = None
        if record.youtube is not None:
            status = record.youtube_status
            youtube = YouTubeDetails(
                handle=record.youtube.handle,
                channel_id=record.youtube.channel_id,
                topic=record.youtube.topic,
                lease_started_at=record.youtube.hub_lease_date,
                lease_seconds=record.youtube.lease_seconds,
                live=bool(status and status.live),
                live_video_id=(status.video_id or None) if status else None,
                live_started_at=status.started_at if status else None,
            )
        return cls(
            id=record.id,
            alias=record.alias,
            description=record.description,
            live=record.live,
            created_at=record.created_at,
            updated_at=record.updated_at,
            youtube=youtube,
        )


class StreamerListResponse(BaseModel):
    """Wrapper containing stored streamers."""

    streamers: list[StreamerResponse]
