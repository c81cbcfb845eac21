"""Background loop that renews WebSub leases before they expire."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol

from stream_alerts.services.streamer_store import StreamerRecord

logger = logging.getLogger(__name__)

RenewFunc = Callable[[StreamerRecord], Awaitable[object]]

MIN_MARGIN = timedelta(seconds=1)


class RecordSource(Protocol):
    async def list(self) -> Iterable[StreamerRecord]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class LeaseMonitorConfig:
    renew: RenewFunc
    interval: float = 60.0
    renew_window: float = 0.05
    now: Callable[[], datetime] = field(default=_utcnow)
    default_lease_seconds: int = 0
    renew_timeout: float = 15.0
    retry_after: float = 0.0


@dataclass(slots=True)
class _RenewalAttempt:
    lease_start: datetime
    attempted_at: datetime
    failed: bool = False


def renewal_margin(lease: timedelta, window: float) -> timedelta:
    """Portion of the lease reserved for renewal, clamped to a sane range."""

    margin = lease * window
    if margin <= timedelta(0) or margin >= lease:
        margin = max(lease / 20, MIN_MARGIN)
    return margin


def renew_at(lease_start: datetime, lease: timedelta, window: float) -> datetime:
    return lease_start + (lease - renewal_margin(lease, window))


class LeaseMonitor:
    """Scans stored subscriptions and triggers at most one renewal per channel per lease."""

    def __init__(self, store: RecordSource, config: LeaseMonitorConfig) -> None:
        self.store = store
        self.config = config
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._lock = threading.Lock()
        self._attempts: dict[str, _RenewalAttempt] = {}
        self._renewals: set[asyncio.Task] = set()

    def start(self) -> "LeaseMonitor":
        if self._task is not None and not self._task.done():
            return self
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())
        return self

    async def stop(self) -> None:
        """Stop scanning and wait for in-flight renewals to return."""

        self._stop_event.set()
        tasks: list[asyncio.Task] = list(self._renewals)
        if self._task is not None:
            self._task.cancel()
            tasks.append(self._task)
        for task in self._renewals:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._renewals.clear()

    async def wait_idle(self) -> None:
        """Wait until every renewal started so far has finished."""

        while self._renewals:
            await asyncio.gather(*list(self._renewals), return_exceptions=True)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.evaluate()
            except Exception:  # noqa: BLE001 - keep scanning after store failures
                logger.exception("Lease monitor iteration failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.interval)
            except asyncio.TimeoutError:
                continue

    async def evaluate(self) -> int:
        """Run one scan and return the number of renewals started."""

        records = await self.store.list()
        now = self.config.now()
        started = 0
        for record in records:
            if self._evaluate_record(record, now):
                started += 1
        return started

    def _lease_duration(self, record: StreamerRecord) -> timedelta | None:
        seconds = record.youtube.lease_seconds if record.youtube else 0
        if seconds <= 0:
            seconds = self.config.default_lease_seconds
        if seconds <= 0:
            return None
        return timedelta(seconds=seconds)

    def _evaluate_record(self, record: StreamerRecord, now: datetime) -> bool:
        yt = record.youtube
        if yt is None or not yt.channel_id.strip():
            return False
        lease = self._lease_duration(record)
        lease_start = yt.hub_lease_date
        if lease is None or lease_start is None:
            return False

        channel_id = yt.channel_id.strip()
        if now < renew_at(lease_start, lease, self.config.renew_window):
            with self._lock:
                attempt = self._attempts.get(channel_id)
                if attempt is not None and attempt.lease_start < lease_start:
                    del self._attempts[channel_id]
            return False

        with self._lock:
            attempt = self._attempts.get(channel_id)
            if attempt is not None and attempt.lease_start == lease_start and not self._may_retry(attempt, now):
                return False
            self._attempts[channel_id] = _RenewalAttempt(lease_start=lease_start, attempted_at=now)

        logger.info(
            "Renewing YouTube lease for %s",
            record.alias,
            extra={"channel_id": channel_id, "lease_start": lease_start.isoformat()},
        )
        task = asyncio.create_task(self._renew(record, channel_id, lease_start))
        self._renewals.add(task)
        task.add_done_callback(self._renewals.discard)
        return True

    def _may_retry(self, attempt: _RenewalAttempt, now: datetime) -> bool:
        retry_after = self.config.retry_after
        if retry_after <= 0 or not attempt.failed:
            return False
        return now - attempt.attempted_at >= timedelta(seconds=retry_after)

    async def _renew(self, record: StreamerRecord, channel_id: str, lease_start: datetime) -> None:
        try:
            await asyncio.wait_for(self.config.renew(record), timeout=self.config.renew_timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Lease renewal for %s timed out", record.alias, extra={"channel_id": channel_id})
            self._mark_failed(channel_id, lease_start)
        except Exception:  # noqa: BLE001 - renewal failures must not stop the monitor
            logger.exception("Lease renewal failed for %s", record.alias, extra={"channel_id": channel_id})
            self._mark_failed(channel_id, lease_start)

    def _mark_failed(self, channel_id: str, lease_start: datetime) -> None:
        with self._lock:
            attempt = self._attempts.get(channel_id)
            if attempt is not None and attempt.lease_start == lease_start:
                attempt.failed = True


def start_lease_monitor(store: RecordSource, config: LeaseMonitorConfig) -> LeaseMonitor:
    return LeaseMonitor(store, config).start()


__all__ = [
    "LeaseMonitor",
    "LeaseMonitorConfig",
    "renew_at",
    "renewal_margin",
    "start_lease_monitor",
]
