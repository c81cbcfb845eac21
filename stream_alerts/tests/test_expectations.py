"""Tests for the pending-verification registry."""

from __future__ import annotations

from stream_alerts.services.expectations import (
    Expectation,
    ExpectationRegistry,
    extract_channel_id,
    generate_verify_token,
)


def _expectation(token: str = "T") -> Expectation:
    return Expectation(
        mode="subscribe",
        topic="https://x?channel_id=UC123",
        verify_token=token,
        lease_seconds=864000,
    )


def test_register_then_lookup_returns_same_expectation() -> None:
    registry = ExpectationRegistry()
    token = generate_verify_token()
    expectation = _expectation(token)

    registry.register(expectation)

    assert registry.lookup(token) == expectation
    assert token in registry


def test_consume_removes_expectation() -> None:
    registry = ExpectationRegistry()
    registry.register(_expectation())

    assert registry.consume("T") == _expectation()
    assert registry.lookup("T") is None
    assert registry.consume("T") is None


def test_register_ignores_empty_token() -> None:
    registry = ExpectationRegistry()
    registry.register(_expectation(""))
    assert len(registry) == 0


def test_cancel_is_idempotent() -> None:
    registry = ExpectationRegistry()
    registry.register(_expectation())
    registry.cancel("T")
    registry.cancel("T")
    assert registry.lookup("T") is None


def test_record_result_merges_hub_reply() -> None:
    registry = ExpectationRegistry()
    registry.register(_expectation())

    registry.record_result("T", alias="demo", status="202 Accepted", body="ok")
    registry.record_result("missing", alias="ignored")

    stored = registry.lookup("T")
    assert stored is not None
    assert stored.alias == "demo"
    assert stored.hub_status == "202 Accepted"
    assert stored.hub_body == "ok"
    assert stored.topic == "https://x?channel_id=UC123"
    assert len(registry) == 1


def test_generate_verify_token_is_hex_and_unique() -> None:
    tokens = {generate_verify_token() for _ in range(50)}
    assert len(tokens) == 50
    for token in tokens:
        assert len(token) == 32
        int(token, 16)


def test_extract_channel_id() -> None:
    assert extract_channel_id("https://www.youtube.com/xml/feeds/videos.xml?channel_id=UC123") == "UC123"
    assert extract_channel_id("https://x?foo=1&channel_id=UCabc&bar=2") == "UCabc"
    assert extract_channel_id("https://x?foo=1") == ""
    assert extract_channel_id("") == ""
    assert extract_channel_id("http://[::1") == ""
