"""Subscribe and unsubscribe streamer channels at the WebSub hub."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stream_alerts.services.channel_resolver import ChannelResolver, channel_feed_url
from stream_alerts.services.errors import AlertError, ValidationError
from stream_alerts.services.streamer_store import StreamerRecord
from stream_alerts.services.websub import (
    MODE_SUBSCRIBE,
    MODE_UNSUBSCRIBE,
    HubClient,
    HubRequestError,
    HubResult,
    HubValidationError,
    SubscriptionRequest,
)

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """Issues hub requests for stored streamer records."""

    def __init__(self, hub_client: HubClient, resolver: ChannelResolver) -> None:
        self.hub_client = hub_client
        self.resolver = resolver

    async def build_request(self, record: StreamerRecord, mode: str) -> SubscriptionRequest:
        """Build a hub request from the record, resolving the channel id from its handle if needed."""

        yt = record.youtube
        if yt is None:
            raise ValidationError("record has no YouTube platform configured")

        channel_id = yt.channel_id.strip()
        handle = yt.handle.strip()
        if not channel_id and handle:
            channel_id = await self.resolver.resolve(handle)
        if not channel_id:
            raise ValidationError(f"youtube channel ID missing; cannot {mode}")

        return SubscriptionRequest(
            topic=yt.topic.strip() or channel_feed_url(channel_id),
            mode=mode,
            hub_url=yt.hub_url,
            callback=yt.callback_url,
            verify=yt.verify_mode,
            secret=yt.hub_secret or None,
            lease_seconds=yt.lease_seconds if mode == MODE_SUBSCRIBE else 0,
            channel_id=channel_id,
        )

    async def manage(self, record: StreamerRecord, mode: str) -> HubResult | None:
        """Send ``mode`` for the record's channel; a record without YouTube details is a no-op."""

        if record.youtube is None:
            return None

        request = await self.build_request(record, mode)
        result = await self.hub_client.send(request)
        self.hub_client.registry.record_result(
            result.request.verify_token,
            alias=record.alias,
            topic=result.request.topic,
            status=result.status,
            body=result.body.decode("utf-8", errors="replace"),
        )
        logger.info(
            "Hub accepted %s for %s",
            mode,
            record.alias,
            extra={"channel_id": result.request.channel_id, "status": result.status},
        )
        return result

    async def subscribe_record(self, record: StreamerRecord) -> HubResult | None:
        return await self.manage(record, MODE_SUBSCRIBE)

    async def unsubscribe_record(self, record: StreamerRecord) -> HubResult | None:
        return await self.manage(record, MODE_UNSUBSCRIBE)


class ProxyError(AlertError):
    """A hub request failed before the hub produced a response worth mirroring."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class ProxyResult:
    """The hub's reply as it should be relayed to the operator."""

    status_code: int
    content_type: str
    body: bytes
    verify_token: str = ""


class SubscriptionProxy:
    """Forwards operator-triggered subscribe/unsubscribe calls and mirrors the hub reply."""

    def __init__(self, mode: str, hub_client: HubClient) -> None:
        if mode not in (MODE_SUBSCRIBE, MODE_UNSUBSCRIBE):
            raise ValueError(f"unsupported mode {mode}")
        self.mode = mode
        self.hub_client = hub_client

    async def process(self, request: SubscriptionRequest) -> ProxyResult:
        request.mode = self.mode
        try:
            result = await self.hub_client.send(request)
        except HubValidationError as exc:
            raise ProxyError(400, str(exc)) from exc
        except HubRequestError as exc:
            logger.warning("%s hub response: %s", self.mode, exc)
            if exc.response is None:
                raise ProxyError(502, "hub request failed") from exc
            return ProxyResult(
                status_code=exc.response.status_code,
                content_type=exc.response.headers.get("content-type", ""),
                body=exc.body,
                verify_token=exc.request.verify_token,
            )

        self.hub_client.registry.record_result(
            result.request.verify_token,
            topic=result.request.topic,
            status=result.status,
            body=result.body.decode("utf-8", errors="replace"),
        )
        body = result.body or result.status.encode()
        return ProxyResult(
            status_code=result.response.status_code,
            content_type=result.response.headers.get("content-type", ""),
            body=body,
            verify_token=result.request.verify_token,
        )
