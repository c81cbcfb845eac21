"""In-memory registry of pending WebSub verification handshakes."""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass, replace
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Expectation:
    """A subscribe/unsubscribe request awaiting the hub's challenge callback."""

    mode: str
    topic: str
    verify_token: str
    lease_seconds: int = 0
    secret: str | None = None
    channel_id: str = ""
    alias: str = ""
    hub_status: str = ""
    hub_body: str = ""


def generate_verify_token() -> str:
    """Return a fresh 128-bit hex token used to correlate hub callbacks."""

    try:
        return secrets.token_hex(16)
    except (NotImplementedError, OSError):  # pragma: no cover - no entropy source
        logger.warning("Random source unavailable; using timestamp verify token")
        return format(time.time_ns(), "x")


def extract_channel_id(topic: str) -> str:
    """Return the ``channel_id`` query parameter of a topic URL, or an empty string."""

    if not topic:
        return ""
    try:
        parsed = urlparse(topic)
    except ValueError:
        return ""
    values = parse_qs(parsed.query).get("channel_id")
    if not values:
        return ""
    return values[0]


class ExpectationRegistry:
    """Thread-safe table of expectations keyed by verify token.

    One instance lives for the lifetime of the server process and is shared by
    the hub client (which registers and cancels) and the challenge verifier
    (which looks up and consumes).
    """

    def __init__(self) -> None:
        self._expectations: dict[str, Expectation] = {}
        self._lock = threading.Lock()

    def register(self, expectation: Expectation) -> None:
        if not expectation.verify_token:
            return
        with self._lock:
            self._expectations[expectation.verify_token] = expectation

    def lookup(self, token: str) -> Expectation | None:
        with self._lock:
            return self._expectations.get(token)

    def consume(self, token: str) -> Expectation | None:
        """Atomically remove and return the expectation for ``token``."""

        with self._lock:
            return self._expectations.pop(token, None)

    def cancel(self, token: str) -> None:
        with self._lock:
            self._expectations.pop(token, None)

    def record_result(
        self,
        token: str,
        *,
        alias: str = "",
        topic: str = "",
        status: str = "",
        body: str = "",
    ) -> None:
        """Attach the hub's response to a pending expectation for later logging."""

        if not token:
            return
        with self._lock:
            current = self._expectations.get(token)
            if current is None:
                return
            self._expectations[token] = replace(
                current,
                alias=alias or current.alias,
                topic=topic or current.topic,
                hub_status=status,
                hub_body=body,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._expectations)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._expectations
