"""Answer WebSub hub verification challenges for pending subscriptions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from stream_alerts.services.errors import NotFoundError
from stream_alerts.services.expectations import Expectation, ExpectationRegistry, extract_channel_id
from stream_alerts.services.websub import MODE_SUBSCRIBE, MODE_UNSUBSCRIBE

logger = logging.getLogger(__name__)


class LeaseRecorder(Protocol):
    async def record_lease(self, channel_id: str, verified_at: datetime) -> None:
        ...


@dataclass(slots=True, frozen=True)
class ChallengeOutcome:
    """Status and plain-text body to send back to the hub."""

    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return self.status_code == 200


@dataclass(slots=True)
class _HubQuery:
    challenge: str
    verify_token: str
    topic: str
    mode: str
    lease_seconds: int | None


def _reject(reason: str) -> ChallengeOutcome:
    return ChallengeOutcome(status_code=400, body=reason)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeVerifier:
    """Validates hub GET callbacks against registered expectations.

    Token lifecycle: pending (registered by the hub client) then either
    verified here, or cancelled by the hub client when its POST fails.
    """

    def __init__(
        self,
        registry: ExpectationRegistry,
        store: LeaseRecorder,
        *,
        callback_path: str = "/alerts",
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.registry = registry
        self.store = store
        self.callback_path = callback_path
        self._now = now

    def matches(self, method: str, path: str) -> bool:
        return method.upper() == "GET" and path == self.callback_path

    async def handle(self, method: str, path: str, params: Mapping[str, str]) -> ChallengeOutcome | None:
        """Return the response for a verification request, or ``None`` if it is not one."""

        if not self.matches(method, path):
            return None
        return await self.verify(params)

    async def verify(self, params: Mapping[str, str]) -> ChallengeOutcome:
        challenge = params.get("hub.challenge", "")
        if not challenge:
            return _reject("missing hub.challenge")

        verify_token = params.get("hub.verify_token", "").strip()
        if not verify_token:
            return _reject("missing hub.verify_token")

        expectation = self.registry.lookup(verify_token)
        if expectation is None:
            logger.warning("Hub challenge with unknown verify token", extra={"verify_token": verify_token})
            return _reject("unknown verification token")

        query = _HubQuery(
            challenge=challenge,
            verify_token=verify_token,
            topic=params.get("hub.topic", "").strip(),
            mode=params.get("hub.mode", "").strip(),
            lease_seconds=None,
        )

        if expectation.topic and query.topic != expectation.topic:
            return _reject("hub.topic mismatch")

        lease_param = params.get("hub.lease_seconds", "").strip()
        if lease_param:
            try:
                query.lease_seconds = int(lease_param)
            except ValueError:
                return _reject("invalid hub.lease_seconds")
            if (
                expectation.lease_seconds > 0
                and expectation.mode.lower() != MODE_UNSUBSCRIBE
                and query.lease_seconds != expectation.lease_seconds
            ):
                return _reject("hub.lease_seconds mismatch")

        if expectation.mode and query.mode.lower() != expectation.mode.lower():
            return _reject("hub.mode mismatch")

        consumed = self.registry.consume(verify_token)
        if consumed is None:
            # another callback with the same token won the race
            return _reject("verification token already used")

        logger.info(
            "Responding to hub challenge",
            extra={
                "mode": query.mode,
                "topic": query.topic,
                "lease_seconds": lease_param,
                "verify_token": verify_token,
            },
        )

        channel_id = consumed.channel_id or extract_channel_id(query.topic)
        if channel_id and query.mode.lower() == MODE_SUBSCRIBE and query.lease_seconds is not None:
            try:
                await self.store.record_lease(channel_id, self._now())
            except NotFoundError:
                logger.warning("No stored subscription for %s; lease not recorded", channel_id)
            except Exception:  # noqa: BLE001 - lease bookkeeping must not fail the handshake
                logger.exception("Failed to record hub lease for %s", channel_id)

        self._log_result(consumed, channel_id, query)
        return ChallengeOutcome(status_code=200, body=challenge)

    def _log_result(self, expectation: Expectation, channel_id: str, query: _HubQuery) -> None:
        if expectation.hub_status:
            logger.info(
                "YouTube hub response status: %s, body: %s", expectation.hub_status, expectation.hub_body
            )
        alias = expectation.alias.strip() or channel_id or "channel"
        topic = query.topic or expectation.topic
        if query.mode.lower() == MODE_UNSUBSCRIBE:
            logger.info("YouTube alerts unsubscribed for %s (%s)", alias, topic)
        else:
            logger.info("YouTube alerts subscribed for %s (%s)", alias, topic)
