"""Tests for the lease renewal monitor."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from stream_alerts.services.lease_monitor import (
    LeaseMonitor,
    LeaseMonitorConfig,
    renew_at,
    renewal_margin,
    start_lease_monitor,
)
from stream_alerts.services.streamer_store import StreamerRecord, YouTubePlatform

pytest_plugins = ("pytest_asyncio",)

T0 = datetime(2024, 7, 16, 12, 0, tzinfo=timezone.utc)


def _record(
    lease_start: datetime | None = T0,
    lease_seconds: int = 100,
    channel_id: str = "UC123",
) -> StreamerRecord:
    return StreamerRecord(
        id="s1",
        alias="demo",
        description=None,
        live=False,
        created_at=T0,
        updated_at=T0,
        youtube=YouTubePlatform(channel_id=channel_id, hub_lease_date=lease_start, lease_seconds=lease_seconds),
    )


class FakeStore:
    def __init__(self, *records: StreamerRecord) -> None:
        self.records = list(records)

    async def list(self) -> list[StreamerRecord]:
        return list(self.records)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def at(self, start: datetime, seconds: float) -> None:
        self.now = start + timedelta(seconds=seconds)


def _monitor(store: FakeStore, clock: Clock, renew, **kwargs) -> LeaseMonitor:
    return LeaseMonitor(store, LeaseMonitorConfig(renew=renew, renew_window=0.05, now=clock, **kwargs))


def test_margin_is_clamped() -> None:
    lease = timedelta(seconds=100)
    assert renewal_margin(lease, 0.05) == timedelta(seconds=5)
    assert renewal_margin(lease, 0) == timedelta(seconds=5)
    assert renewal_margin(lease, 1.5) == timedelta(seconds=5)
    assert renewal_margin(timedelta(seconds=10), -1) == timedelta(seconds=1)
    assert renew_at(T0, lease, 0.05) == T0 + timedelta(seconds=95)


@pytest.mark.asyncio
async def test_renewal_fires_once_per_lease_cycle() -> None:
    calls: list[StreamerRecord] = []

    async def renew(record: StreamerRecord) -> None:
        calls.append(record)

    store = FakeStore(_record())
    clock = Clock(T0)
    monitor = _monitor(store, clock, renew)

    clock.at(T0, 94)
    assert await monitor.evaluate() == 0

    clock.at(T0, 96)
    assert await monitor.evaluate() == 1
    await monitor.wait_idle()
    assert len(calls) == 1

    clock.at(T0, 97)
    assert await monitor.evaluate() == 0
    await monitor.wait_idle()
    assert len(calls) == 1

    t1 = T0 + timedelta(seconds=97)
    store.records = [_record(lease_start=t1)]
    clock.at(t1, 96)
    assert await monitor.evaluate() == 1
    await monitor.wait_idle()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_records_without_lease_data_are_skipped() -> None:
    calls: list[StreamerRecord] = []

    async def renew(record: StreamerRecord) -> None:
        calls.append(record)

    no_youtube = replace(_record(), youtube=None)
    store = FakeStore(
        no_youtube,
        _record(channel_id=""),
        _record(lease_start=None),
        _record(lease_seconds=0),
    )
    clock = Clock(T0 + timedelta(days=30))
    monitor = _monitor(store, clock, renew)

    assert await monitor.evaluate() == 0
    assert calls == []


@pytest.mark.asyncio
async def test_default_lease_applies_when_record_has_none() -> None:
    async def renew(record: StreamerRecord) -> None:
        return None

    store = FakeStore(_record(lease_seconds=0))
    clock = Clock(T0 + timedelta(seconds=96))
    monitor = _monitor(store, clock, renew, default_lease_seconds=100)

    assert await monitor.evaluate() == 1
    await monitor.wait_idle()


@pytest.mark.asyncio
async def test_failed_renewal_is_not_retried_by_default() -> None:
    calls: list[StreamerRecord] = []

    async def renew(record: StreamerRecord) -> None:
        calls.append(record)
        raise RuntimeError("hub down")

    store = FakeStore(_record())
    clock = Clock(T0 + timedelta(seconds=96))
    monitor = _monitor(store, clock, renew)

    assert await monitor.evaluate() == 1
    await monitor.wait_idle()
    clock.at(T0, 500)
    assert await monitor.evaluate() == 0
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_failed_renewal_retried_after_delay_when_enabled() -> None:
    calls: list[StreamerRecord] = []

    async def renew(record: StreamerRecord) -> None:
        calls.append(record)
        raise RuntimeError("hub down")

    store = FakeStore(_record())
    clock = Clock(T0 + timedelta(seconds=96))
    monitor = _monitor(store, clock, renew, retry_after=30)

    assert await monitor.evaluate() == 1
    await monitor.wait_idle()

    clock.at(T0, 110)
    assert await monitor.evaluate() == 0

    clock.at(T0, 127)
    assert await monitor.evaluate() == 1
    await monitor.wait_idle()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_slow_renewal_is_bounded_by_timeout() -> None:
    started = asyncio.Event()

    async def renew(record: StreamerRecord) -> None:
        started.set()
        await asyncio.sleep(10)

    store = FakeStore(_record())
    clock = Clock(T0 + timedelta(seconds=96))
    monitor = _monitor(store, clock, renew, renew_timeout=0.05)

    await monitor.evaluate()
    await asyncio.wait_for(monitor.wait_idle(), timeout=2)
    assert started.is_set()


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_renewals() -> None:
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def renew(record: StreamerRecord) -> None:
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    store = FakeStore(_record())
    clock = Clock(T0 + timedelta(seconds=96))
    monitor = start_lease_monitor(store, LeaseMonitorConfig(renew=renew, interval=60, now=clock))

    await asyncio.wait_for(started.wait(), timeout=2)
    assert monitor.running

    await monitor.stop()

    assert cancelled.is_set()
    assert not monitor.running
