"""Look up live-broadcast metadata for YouTube videos."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence

import httpx

from stream_alerts.core.config import Settings
from stream_alerts.services.channel_resolver import YOUTUBE_DATA_API_BASE, YOUTUBE_WEB_BASE
from stream_alerts.services.errors import UpstreamError

logger = logging.getLogger(__name__)

_PLAYER_RESPONSE = re.compile(r"ytInitialPlayerResponse\s*=\s*(\{.+?\})\s*;\s*(?:var\s|</script>)", re.DOTALL)
_WATCH_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; StreamAlerts/1.0)",
    "Accept-Language": "en",
}


class MetadataLookupError(UpstreamError):
    """Raised when video metadata cannot be retrieved."""


@dataclass(slots=True)
class VideoInfo:
    id: str
    channel_id: str = ""
    title: str = ""
    live_broadcast_content: str = ""
    actual_start_time: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.live_broadcast_content.strip().lower() == "live"


class VideoLookup(Protocol):
    async def fetch(self, video_ids: Sequence[str]) -> dict[str, VideoInfo]:
        ...


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Failed to parse timestamp", extra={"value": value})
        return None


class DataApiVideoLookup:
    """Batch lookup through the YouTube Data API ``videos.list`` call."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        base_url: str = YOUTUBE_DATA_API_BASE,
        timeout: float = 5,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch(self, video_ids: Sequence[str]) -> dict[str, VideoInfo]:
        ids = [video_id for video_id in video_ids if video_id]
        if not ids:
            return {}

        params = {
            "part": "snippet,liveStreamingDetails",
            "id": ",".join(ids),
            "key": self._api_key,
        }
        try:
            response = await self._client.get(f"{self._base_url}/videos", params=params, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise MetadataLookupError("Unable to contact YouTube Data API") from exc
        except ValueError as exc:
            raise MetadataLookupError("Invalid response from YouTube Data API") from exc

        results: dict[str, VideoInfo] = {}
        for item in payload.get("items", []):
            video_id = item.get("id")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            details = item.get("liveStreamingDetails") or {}
            results[video_id] = VideoInfo(
                id=video_id,
                channel_id=snippet.get("channelId", ""),
                title=snippet.get("title", ""),
                live_broadcast_content=snippet.get("liveBroadcastContent", ""),
                actual_start_time=_parse_timestamp(details.get("actualStartTime")),
            )
        return results


class WatchPageVideoLookup:
    """Read ``ytInitialPlayerResponse`` from each video's watch page."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = YOUTUBE_WEB_BASE,
        timeout: float = 5,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch(self, video_ids: Sequence[str]) -> dict[str, VideoInfo]:
        results: dict[str, VideoInfo] = {}
        failures: list[str] = []
        for video_id in video_ids:
            if not video_id:
                continue
            try:
                results[video_id] = await self._fetch_one(video_id)
            except MetadataLookupError:
                logger.warning("Watch page lookup failed", extra={"video_id": video_id}, exc_info=True)
                failures.append(video_id)

        if failures and not results:
            raise MetadataLookupError(f"unable to fetch metadata for {', '.join(failures)}")
        return results

    async def _fetch_one(self, video_id: str) -> VideoInfo:
        try:
            response = await self._client.get(
                f"{self._base_url}/watch",
                params={"v": video_id},
                headers=_WATCH_HEADERS,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MetadataLookupError(f"Unable to fetch watch page for {video_id}") from exc

        match = _PLAYER_RESPONSE.search(response.text)
        if match is None:
            raise MetadataLookupError(f"player response not found for {video_id}")
        try:
            player = json.loads(match.group(1))
        except ValueError as exc:
            raise MetadataLookupError(f"invalid player response for {video_id}") from exc

        details = player.get("videoDetails") or {}
        microformat = (player.get("microformat") or {}).get("playerMicroformatRenderer") or {}
        broadcast = microformat.get("liveBroadcastDetails") or {}

        if details.get("isLive") or broadcast.get("isLiveNow"):
            content = "live"
        elif details.get("isUpcoming"):
            content = "upcoming"
        else:
            content = "none"

        return VideoInfo(
            id=details.get("videoId") or video_id,
            channel_id=details.get("channelId", ""),
            title=details.get("title", ""),
            live_broadcast_content=content,
            actual_start_time=_parse_timestamp(broadcast.get("startTimestamp")),
        )


def build_video_lookup(settings: Settings, client: httpx.AsyncClient) -> VideoLookup:
    if settings.youtube_api_key:
        return DataApiVideoLookup(client, settings.youtube_api_key, timeout=settings.lookup_timeout_seconds)
    return WatchPageVideoLookup(client, timeout=settings.lookup_timeout_seconds)
