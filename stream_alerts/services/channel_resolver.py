"""Utilities for normalising YouTube channel identifiers."""

from __future__ import annotations

import logging
import re
from typing import Protocol
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from stream_alerts.core.config import Settings
from stream_alerts.services.errors import ValidationError

logger = logging.getLogger(__name__)

CHANNEL_ID_REGEX = re.compile(r"^UC[\w-]{22}$")
YOUTUBE_WEB_BASE = "https://www.youtube.com"
YOUTUBE_DATA_API_BASE = "https://www.googleapis.com/youtube/v3"
YOUTUBE_FEED_BASE = "https://www.youtube.com/xml/feeds/videos.xml"

_EMBEDDED_CHANNEL_ID = re.compile(r'"channelId":"(UC[\w-]{22})"')
_BARE_CHANNEL_ID = re.compile(r"(UC[\w-]{22})(?![\w-])")
_MAX_PAGE_BYTES = 2 << 20
_SCRAPE_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; StreamAlerts/1.0)",
    "Accept-Language": "en",
}


class ChannelResolutionError(ValidationError):
    """Raised when a channel identifier cannot be normalised."""


class ChannelResolver(Protocol):
    async def resolve(self, handle: str) -> str:
        ...


def normalise_handle(handle: str) -> str:
    handle = handle.strip()
    if not handle or handle == "@":
        raise ChannelResolutionError("handle is required")
    if not handle.startswith("@"):
        handle = "@" + handle
    return handle


class HandlePageResolver:
    """Resolve ``@handle`` by scraping the public channel about page (no API key)."""

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

    async def resolve(self, handle: str) -> str:
        handle = normalise_handle(handle)
        url = f"{self._base_url}/{handle}/about"

        try:
            async with self._client.stream(
                "GET", url, headers=_SCRAPE_HEADERS, timeout=self._timeout
            ) as response:
                if response.status_code != httpx.codes.OK:
                    raise ChannelResolutionError(
                        f"unexpected status {response.status_code} when resolving handle {handle}"
                    )
                body = await _read_bounded(response, _MAX_PAGE_BYTES)
        except httpx.HTTPError as exc:
            raise ChannelResolutionError(f"Unable to fetch handle page for {handle}") from exc

        text = body.decode("utf-8", errors="replace")
        match = _EMBEDDED_CHANNEL_ID.search(text) or _BARE_CHANNEL_ID.search(text)
        if match is None:
            raise ChannelResolutionError(f"channel ID not found in handle page for {handle}")
        logger.debug("Resolved handle %s to %s", handle, match.group(1))
        return match.group(1)


class DataApiHandleResolver:
    """Resolve ``@handle`` through the YouTube Data API ``channels.list`` call."""

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

    async def resolve(self, handle: str) -> str:
        handle = normalise_handle(handle)
        params = {
            "part": "id",
            "forHandle": handle.lstrip("@"),
            "key": self._api_key,
        }

        try:
            response = await self._client.get(f"{self._base_url}/channels", params=params, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChannelResolutionError("Unable to contact YouTube Data API") from exc

        try:
            payload = response.json()
        except ValueError as exc:  # pragma: no cover - invalid JSON
            raise ChannelResolutionError("Invalid response from YouTube Data API") from exc

        for item in payload.get("items", []):
            channel_id = item.get("id")
            if channel_id and CHANNEL_ID_REGEX.match(channel_id):
                return channel_id

        raise ChannelResolutionError("Channel handle not found")


def build_channel_resolver(settings: Settings, client: httpx.AsyncClient) -> ChannelResolver:
    """Prefer the Data API when a key is configured, otherwise scrape the handle page."""

    if settings.youtube_api_key:
        return DataApiHandleResolver(client, settings.youtube_api_key, timeout=settings.lookup_timeout_seconds)
    return HandlePageResolver(client, timeout=settings.lookup_timeout_seconds)


async def _read_bounded(response: httpx.Response, limit: int) -> bytes:
    chunks: list[bytes] = []
    size = 0
    async for chunk in response.aiter_bytes():
        remaining = limit - size
        if remaining <= 0:
            break
        chunks.append(chunk[:remaining])
        size += min(len(chunk), remaining)
    return b"".join(chunks)


def channel_feed_url(channel_id: str) -> str:
    """Return the YouTube WebSub topic URL for a canonical channel id."""

    identifier = channel_id.strip()
    if not CHANNEL_ID_REGEX.match(identifier):
        raise ChannelResolutionError("channel_feed_url expects a canonical channel id")
    params = urlencode({"channel_id": identifier})
    return f"{YOUTUBE_FEED_BASE}?{params}"


def split_channel_identifier(raw: str) -> tuple[str, str]:
    """Return ``(handle, channel_id)`` parsed from user input without any network call.

    Supports:
      * Raw channel IDs (starting with UC)
      * YouTube feed URLs containing `channel_id`
      * Standard channel URLs (`/channel/UC...`)
      * Handle URLs (`/@name`) and bare handles (`@name`)

    """

    identifier = raw.strip()
    if not identifier:
        raise ChannelResolutionError("Empty channel identifier")

    if CHANNEL_ID_REGEX.match(identifier):
        return "", identifier

    if identifier.startswith("@"):
        return identifier, ""

    if identifier.startswith("http://") or identifier.startswith("https://"):
        parsed = urlparse(identifier)
        handle = ""
        parts = [part for part in parsed.path.split("/") if part]
        for part in parts:
            if part.startswith("@"):
                handle = part
                break

        # Check query param first (feed URLs)
        channel_ids = parse_qs(parsed.query).get("channel_id")
        if channel_ids and CHANNEL_ID_REGEX.match(channel_ids[-1]):
            return handle, channel_ids[-1]

        # Fallback: /channel/UC...
        for index, part in enumerate(parts[:-1]):
            if part.lower() == "channel" and CHANNEL_ID_REGEX.match(parts[index + 1]):
                return handle, parts[index + 1]

        if handle:
            return handle, ""
        raise ChannelResolutionError("Unsupported YouTube URL format")

    raise ChannelResolutionError("Unsupported channel identifier format")


async def normalise_channel_identifier(raw: str, resolver: ChannelResolver) -> tuple[str, str]:
    """Return ``(handle, channel_id)``, resolving handles through ``resolver`` when needed."""

    handle, channel_id = split_channel_identifier(raw)
    if not channel_id:
        channel_id = await resolver.resolve(handle)
    return handle, channel_id
