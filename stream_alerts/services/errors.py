"""Error taxonomy shared by the subscription, verification and notification services."""

from __future__ import annotations


class AlertError(Exception):
    """Base class for expected service failures."""


class ValidationError(AlertError, ValueError):
    """Missing or malformed protocol fields; never retried automatically."""


class UpstreamError(AlertError, RuntimeError):
    """A hub or metadata service failed or answered with an error."""


class NotFoundError(AlertError, LookupError):
    """An unknown verify token, channel or streamer was referenced."""


class StreamerNotFoundError(NotFoundError):
    """Raised when no streamer record matches an identifier."""
