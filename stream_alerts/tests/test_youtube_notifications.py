"""Unit tests for YouTube WebSub notification processing."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

import pytest

from stream_alerts.services.streamer_store import YouTubeLiveStatus
from stream_alerts.services.video_lookup import MetadataLookupError, VideoInfo
from stream_alerts.services.youtube_notifications import (
    InvalidFeedError,
    LookupFailedError,
    NotificationProcessor,
    parse_feed,
)

pytest_plugins = ("pytest_asyncio",)


def _feed(*entries: tuple[str, str]) -> bytes:
    body = "".join(
        f"""
          <entry>
            <id>yt:video:{video_id}</id>
            <yt:videoId>{video_id}</yt:videoId>
            <yt:channelId>{channel_id}</yt:channelId>
            <title>Stream {video_id}</title>
            <updated>2024-07-16T12:05:00Z</updated>
          </entry>
        """
        for video_id, channel_id in entries
    )
    return (
        '<feed xmlns="http://www.w3.org/2005/Atom" xmlns:yt="http://www.youtube.com/xml/schemas/2015">'
        f"{body}</feed>"
    ).encode()


class FakeLookup:
    def __init__(self, infos: dict[str, VideoInfo] | None = None, error: Exception | None = None) -> None:
        self.infos = infos or {}
        self.error = error
        self.calls: list[list[str]] = []

    async def fetch(self, video_ids: Sequence[str]) -> dict[str, VideoInfo]:
        self.calls.append(list(video_ids))
        if self.error is not None:
            raise self.error
        return {video_id: self.infos[video_id] for video_id in video_ids if video_id in self.infos}


class FakeStore:
    def __init__(self, fail_for: str = "") -> None:
        self.updates: list[tuple[str, YouTubeLiveStatus]] = []
        self.fail_for = fail_for

    async def update_youtube_live_status(self, channel_id: str, status: YouTubeLiveStatus):
        if channel_id == self.fail_for:
            raise LookupError(f"channel id {channel_id} not found")
        self.updates.append((channel_id, status))


def test_parse_feed_extracts_entry() -> None:
    entries = parse_feed(_feed(("abc123", "UC123")))

    assert len(entries) == 1
    entry = entries[0]
    assert entry.video_id == "abc123"
    assert entry.channel_id == "UC123"
    assert entry.title == "Stream abc123"
    assert entry.updated.isoformat() == "2024-07-16T12:05:00+00:00"


def test_parse_feed_invalid_xml() -> None:
    with pytest.raises(InvalidFeedError):
        parse_feed(b"not xml")


def test_parse_feed_reads_only_up_to_limit() -> None:
    with pytest.raises(InvalidFeedError):
        parse_feed(_feed(("abc123", "UC123")), limit=40)


@pytest.mark.asyncio
async def test_live_entry_updates_store() -> None:
    started = datetime(2024, 7, 16, 11, 59, tzinfo=timezone.utc)
    lookup = FakeLookup({"abc123": VideoInfo(id="abc123", live_broadcast_content="live", actual_start_time=started)})
    store = FakeStore()

    result = await NotificationProcessor(store, lookup).process(_feed(("abc123", "UC123")))

    assert result.entries == 1
    assert result.video_ids == ["abc123"]
    assert store.updates == [("UC123", YouTubeLiveStatus(live=True, video_id="abc123", started_at=started))]
    assert [(u.channel_id, u.video_id) for u in result.live_updates] == [("UC123", "abc123")]
    assert result.skipped == []


@pytest.mark.asyncio
async def test_missing_start_time_falls_back_to_updated() -> None:
    lookup = FakeLookup({"abc123": VideoInfo(id="abc123", live_broadcast_content="LIVE")})
    store = FakeStore()

    result = await NotificationProcessor(store, lookup).process(_feed(("abc123", "UC123")))

    assert result.live_updates[0].started_at == datetime(2024, 7, 16, 12, 5, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_not_live_entry_is_skipped() -> None:
    lookup = FakeLookup({"abc123": VideoInfo(id="abc123", live_broadcast_content="none")})
    store = FakeStore()

    result = await NotificationProcessor(store, lookup).process(_feed(("abc123", "UC123")))

    assert store.updates == []
    assert [(s.video_id, s.reason) for s in result.skipped] == [("abc123", "not live")]


@pytest.mark.asyncio
async def test_missing_metadata_is_skipped() -> None:
    store = FakeStore()
    result = await NotificationProcessor(store, FakeLookup()).process(_feed(("abc123", "UC123")))

    assert store.updates == []
    assert result.skipped[0].reason == "metadata missing"


@pytest.mark.asyncio
async def test_invalid_feed_does_not_touch_store() -> None:
    lookup = FakeLookup()
    store = FakeStore()

    with pytest.raises(InvalidFeedError):
        await NotificationProcessor(store, lookup).process(b"not xml")

    assert lookup.calls == []
    assert store.updates == []


@pytest.mark.asyncio
async def test_empty_feed_is_a_no_op() -> None:
    lookup = FakeLookup()
    result = await NotificationProcessor(FakeStore(), lookup).process(_feed())

    assert result.entries == 0
    assert lookup.calls == []


@pytest.mark.asyncio
async def test_video_ids_are_deduplicated_in_one_lookup() -> None:
    lookup = FakeLookup(
        {
            "v1": VideoInfo(id="v1", live_broadcast_content="live"),
            "v2": VideoInfo(id="v2", live_broadcast_content="live"),
        }
    )
    store = FakeStore()

    result = await NotificationProcessor(store, lookup).process(
        _feed(("v1", "UCa"), ("v2", "UCb"), ("v1", "UCa"))
    )

    assert lookup.calls == [["v1", "v2"]]
    assert result.video_ids == ["v1", "v2"]
    assert result.entries == 3


@pytest.mark.asyncio
async def test_lookup_failure_carries_video_ids() -> None:
    lookup = FakeLookup(error=MetadataLookupError("quota exceeded"))

    with pytest.raises(LookupFailedError) as excinfo:
        await NotificationProcessor(FakeStore(), lookup).process(_feed(("abc123", "UC123")))

    assert excinfo.value.video_ids == ["abc123"]


@pytest.mark.asyncio
async def test_store_failure_is_recorded_as_skip() -> None:
    lookup = FakeLookup(
        {
            "v1": VideoInfo(id="v1", live_broadcast_content="live"),
            "v2": VideoInfo(id="v2", live_broadcast_content="live"),
        }
    )
    store = FakeStore(fail_for="UCa")

    result = await NotificationProcessor(store, lookup).process(_feed(("v1", "UCa"), ("v2", "UCb")))

    assert [u.video_id for u in result.live_updates] == ["v2"]
    assert result.skipped[0].video_id == "v1"
    assert "not found" in result.skipped[0].reason
