"""Tests for the WebSub hub client."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from stream_alerts.services.expectations import ExpectationRegistry
from stream_alerts.services.websub import (
    HubClient,
    HubDefaults,
    HubRequestError,
    HubValidationError,
    SubscriptionRequest,
)

pytest_plugins = ("pytest_asyncio",)

TOPIC = "https://www.youtube.com/xml/feeds/videos.xml?channel_id=UC123"
DEFAULTS = HubDefaults(
    hub_url="https://hub.example/subscribe",
    callback_url="https://alerts.example/alerts",
    verify="async",
    lease_seconds=864000,
    secret="s3cret",
)


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[-1] for key, values in parse_qs(request.content.decode()).items()}


def _client(handler, registry: ExpectationRegistry | None = None) -> tuple[HubClient, ExpectationRegistry]:
    registry = registry or ExpectationRegistry()
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HubClient(registry, http, DEFAULTS), registry


@pytest.mark.asyncio
async def test_subscribe_registers_expectation_before_post() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        form = _form(request)
        seen["form"] = form
        seen["registered"] = form["hub.verify_token"] in registry
        return httpx.Response(202, text="Accepted")

    client, registry = _client(handler)
    result = await client.send(SubscriptionRequest(topic=TOPIC))

    form = seen["form"]
    assert seen["registered"] is True
    assert form["hub.mode"] == "subscribe"
    assert form["hub.callback"] == DEFAULTS.callback_url
    assert form["hub.verify"] == "async"
    assert form["hub.lease_seconds"] == "864000"
    assert form["hub.secret"] == "s3cret"
    assert result.status == "202 Accepted"
    assert result.body == b"Accepted"

    expectation = registry.lookup(result.request.verify_token)
    assert expectation is not None
    assert expectation.channel_id == "UC123"
    assert expectation.lease_seconds == 864000


@pytest.mark.asyncio
async def test_unsubscribe_never_sends_lease() -> None:
    forms: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        forms.append(_form(request))
        return httpx.Response(204)

    client, registry = _client(handler)
    result = await client.send(SubscriptionRequest(topic=TOPIC, mode="unsubscribe", lease_seconds=500))

    assert "hub.lease_seconds" not in forms[0]
    assert forms[0]["hub.mode"] == "unsubscribe"
    assert registry.lookup(result.request.verify_token).lease_seconds == 0


@pytest.mark.asyncio
async def test_secret_only_sent_over_https_callback() -> None:
    forms: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        forms.append(_form(request))
        return httpx.Response(202)

    client, _ = _client(handler)
    await client.send(SubscriptionRequest(topic=TOPIC, callback="http://alerts.example/alerts"))

    assert "hub.secret" not in forms[0]


@pytest.mark.asyncio
async def test_non_2xx_cancels_expectation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="bad topic")

    client, registry = _client(handler)
    with pytest.raises(HubRequestError) as excinfo:
        await client.send(SubscriptionRequest(topic=TOPIC))

    assert excinfo.value.response is not None
    assert excinfo.value.response.status_code == 400
    assert excinfo.value.body == b"bad topic"
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_transport_error_cancels_expectation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client, registry = _client(handler)
    with pytest.raises(HubRequestError) as excinfo:
        await client.send(SubscriptionRequest(topic=TOPIC))

    assert excinfo.value.response is None
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_missing_topic_fails_without_network() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(202)

    client, registry = _client(handler)
    with pytest.raises(HubValidationError, match="topic is required"):
        await client.send(SubscriptionRequest(topic="  "))

    assert calls == []
    assert len(registry) == 0


def test_prepare_rejects_unknown_mode() -> None:
    client = HubClient(ExpectationRegistry(), httpx.AsyncClient(), DEFAULTS)
    with pytest.raises(HubValidationError, match="mode"):
        client.prepare(SubscriptionRequest(topic=TOPIC, mode="renew"))


def test_prepare_keeps_explicit_values() -> None:
    client = HubClient(ExpectationRegistry(), httpx.AsyncClient(), DEFAULTS)
    prepared = client.prepare(
        SubscriptionRequest(topic=TOPIC, lease_seconds=100, verify_token="tok", callback="https://other/cb"),
        hub_url="https://hub2.example",
    )
    assert prepared.lease_seconds == 100
    assert prepared.verify_token == "tok"
    assert prepared.callback == "https://other/cb"
    assert prepared.hub_url == "https://hub2.example"
