"""Check ``X-Hub-Signature`` headers on WebSub notifications."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Protocol

from stream_alerts.services.streamer_store import StreamerRecord
from stream_alerts.services.websub import signing_secret
from stream_alerts.services.youtube_notifications import MAX_FEED_BYTES, InvalidFeedError, parse_feed

logger = logging.getLogger(__name__)


class ChannelLookup(Protocol):
    async def find_by_channel(self, channel_id: str) -> StreamerRecord | None:
        ...


def validate_signature(payload: bytes, signature: str, secret: str) -> bool:
    try:
        algo, received = signature.split("=", 1)
    except ValueError:
        return False

    algo = algo.lower()
    if algo == "sha1":
        digestmod = hashlib.sha1
    elif algo == "sha256":
        digestmod = hashlib.sha256
    else:
        return False

    expected = hmac.new(secret.encode(), payload, digestmod).hexdigest()
    return hmac.compare_digest(expected, received.lower())


def _notified_channel(payload: bytes, limit: int) -> str:
    try:
        entries = parse_feed(payload, limit=limit)
    except InvalidFeedError:
        return ""
    for entry in entries:
        if entry.channel_id:
            return entry.channel_id
    return ""


class NotificationAuthenticator:
    """Verifies notifications against the secret the hub was given for the channel.

    A stored streamer subscribes with its own ``hub_secret`` and callback; other
    subscriptions use the operator defaults. The hub only receives a secret for
    https callbacks, so plain-http subscriptions are never signed.
    """

    def __init__(
        self,
        store: ChannelLookup,
        *,
        default_secret: str | None,
        default_callback: str,
        body_limit: int = MAX_FEED_BYTES,
    ) -> None:
        self.store = store
        self.default_secret = default_secret
        self.default_callback = default_callback
        self.body_limit = body_limit

    async def expected_secret(self, payload: bytes) -> str | None:
        channel_id = _notified_channel(payload, self.body_limit)
        record = await self.store.find_by_channel(channel_id) if channel_id else None
        if record is not None and record.youtube is not None:
            yt = record.youtube
            return signing_secret(
                yt.hub_secret or self.default_secret,
                yt.callback_url or self.default_callback,
            )
        return signing_secret(self.default_secret, self.default_callback)

    async def verify(self, payload: bytes, signature: str | None) -> bool:
        secret = await self.expected_secret(payload)
        if secret is None:
            return True
        if not signature:
            logger.warning("Missing hub signature on notification")
            return False
        return validate_signature(payload, signature, secret)
