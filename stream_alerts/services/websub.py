"""Helpers to interact with YouTube's WebSub (PubSubHubbub) hub."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from urllib.parse import urlparse

import httpx

from stream_alerts.core.config import Settings
from stream_alerts.services.errors import UpstreamError, ValidationError
from stream_alerts.services.expectations import (
    Expectation,
    ExpectationRegistry,
    extract_channel_id,
    generate_verify_token,
)

logger = logging.getLogger(__name__)

YOUTUBE_HUB_URL = "https://pubsubhubbub.appspot.com/subscribe"
MAX_LEASE_SECONDS = 864000
MODE_SUBSCRIBE = "subscribe"
MODE_UNSUBSCRIBE = "unsubscribe"
USER_AGENT = "stream-alerts-client/1.0"


class HubValidationError(ValidationError):
    """Raised before any network call when a subscription request is incomplete."""


class HubRequestError(UpstreamError):
    """Raised when the hub could not be reached or answered outside 2xx.

    ``response`` is ``None`` for transport failures; otherwise it carries the
    hub's reply so callers can mirror it.
    """

    def __init__(
        self,
        message: str,
        *,
        request: "SubscriptionRequest",
        response: httpx.Response | None = None,
        body: bytes = b"",
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response
        self.body = body


@dataclass(slots=True)
class SubscriptionRequest:
    """Represents a WebSub subscription request."""

    topic: str
    mode: str = MODE_SUBSCRIBE
    hub_url: str = ""
    callback: str = ""
    verify: str = ""
    verify_token: str = ""
    secret: str | None = None
    lease_seconds: int = 0
    channel_id: str = ""

    def to_form(self) -> dict[str, str]:
        """Convert the subscription details into form payload."""

        payload: dict[str, str] = {
            "hub.mode": self.mode,
            "hub.topic": self.topic,
            "hub.callback": self.callback,
            "hub.verify": self.verify,
            "hub.verify_token": self.verify_token,
        }
        if self.mode == MODE_SUBSCRIBE and self.lease_seconds > 0:
            payload["hub.lease_seconds"] = str(self.lease_seconds)
        secret = signing_secret(self.secret, self.callback)
        if secret:
            payload["hub.secret"] = secret
        return payload


@dataclass(slots=True, frozen=True)
class HubDefaults:
    """Operator defaults applied to requests that leave fields blank."""

    hub_url: str = YOUTUBE_HUB_URL
    callback_url: str = ""
    verify: str = "async"
    lease_seconds: int = MAX_LEASE_SECONDS
    secret: str | None = None
    timeout: float = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "HubDefaults":
        return cls(
            hub_url=settings.hub_url,
            callback_url=settings.callback_url,
            verify=settings.verify_mode,
            lease_seconds=settings.lease_seconds,
            secret=settings.webhook_secret,
            timeout=settings.subscribe_timeout_seconds,
        )


@dataclass(slots=True)
class HubResult:
    """A 2xx hub reply together with the request that produced it."""

    response: httpx.Response
    body: bytes
    request: SubscriptionRequest

    @property
    def status(self) -> str:
        return f"{self.response.status_code} {self.response.reason_phrase}".strip()


def _is_https(url: str) -> bool:
    try:
        return urlparse(url).scheme.lower() == "https"
    except ValueError:
        return False


def signing_secret(secret: str | None, callback: str) -> str | None:
    """Return the secret the hub receives for ``callback``; it is only sent over https."""

    if secret and _is_https(callback):
        return secret
    return None


class HubClient:
    """Sends subscribe/unsubscribe requests and keeps the expectation registry in step."""

    def __init__(
        self,
        registry: ExpectationRegistry,
        client: httpx.AsyncClient,
        defaults: HubDefaults | None = None,
    ) -> None:
        self.registry = registry
        self._client = client
        self.defaults = defaults or HubDefaults()

    def prepare(self, request: SubscriptionRequest, *, hub_url: str | None = None) -> SubscriptionRequest:
        """Apply defaults and validate; raises ``HubValidationError`` without touching the network."""

        mode = request.mode.strip()
        prepared = replace(
            request,
            hub_url=(hub_url or request.hub_url).strip() or self.defaults.hub_url.strip(),
            topic=request.topic.strip(),
            callback=request.callback.strip() or self.defaults.callback_url.strip(),
            mode=mode,
            verify=request.verify.strip() or self.defaults.verify.strip(),
            verify_token=request.verify_token.strip(),
            secret=request.secret or self.defaults.secret,
            channel_id=request.channel_id.strip(),
        )

        for field_name, label in (
            ("hub_url", "hubURL"),
            ("topic", "topic"),
            ("callback", "callback"),
            ("mode", "mode"),
            ("verify", "verify"),
        ):
            if not getattr(prepared, field_name):
                raise HubValidationError(f"{label} is required")
        if mode not in (MODE_SUBSCRIBE, MODE_UNSUBSCRIBE):
            raise HubValidationError("mode must be subscribe or unsubscribe")

        if mode == MODE_SUBSCRIBE:
            if prepared.lease_seconds <= 0:
                prepared.lease_seconds = self.defaults.lease_seconds
        else:
            prepared.lease_seconds = 0

        if not prepared.verify_token:
            prepared.verify_token = generate_verify_token()
        if not prepared.channel_id:
            prepared.channel_id = extract_channel_id(prepared.topic)
        return prepared

    async def send(self, request: SubscriptionRequest, *, hub_url: str | None = None) -> HubResult:
        """Submit a WebSub request, registering its expectation before the POST goes out."""

        prepared = self.prepare(request, hub_url=hub_url)
        token = prepared.verify_token
        self.registry.register(
            Expectation(
                mode=prepared.mode,
                topic=prepared.topic,
                verify_token=token,
                lease_seconds=prepared.lease_seconds,
                secret=prepared.secret,
                channel_id=prepared.channel_id,
            )
        )

        accepted = False
        try:
            payload = prepared.to_form()
            logger.info(
                "Sending WebSub %s for topic %s",
                prepared.mode,
                prepared.topic,
                extra={"hub_url": prepared.hub_url, "callback": prepared.callback, "verify_token": token},
            )
            try:
                response = await self._client.post(
                    prepared.hub_url,
                    data=payload,
                    headers={"User-Agent": USER_AGENT},
                    timeout=self.defaults.timeout,
                )
            except httpx.HTTPError as exc:
                raise HubRequestError(f"post to hub: {exc}", request=prepared) from exc

            body = response.content
            logger.info(
                "WebSub hub responded %s for topic %s",
                response.status_code,
                prepared.topic,
                extra={"body": body[:512].decode("utf-8", errors="replace")},
            )
            if not 200 <= response.status_code < 300:
                raise HubRequestError(
                    f"hub returned non-2xx: {response.status_code} {response.reason_phrase}",
                    request=prepared,
                    response=response,
                    body=body,
                )
            accepted = True
            return HubResult(response=response, body=body, request=prepared)
        finally:
            if not accepted:
                self.registry.cancel(token)
