"""Pydantic schemas for the hub subscription API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from stream_alerts.services.websub import SubscriptionRequest


class HubSubscriptionPayload(BaseModel):
    """Operator request to subscribe or unsubscribe a topic at the hub.

    Missing ``topic`` is reported by the hub client as a 400, not by validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    topic: str = ""
    callback: str = ""
    hub_url: str = Field("", alias="hubUrl")
    verify: str = ""
    verify_token: str = Field("", alias="verifyToken")
    lease_seconds: int = Field(0, alias="leaseSeconds", ge=0)
    secret: str | None = None
    channel_id: str = Field("", alias="channelId")

    def to_request(self) -> SubscriptionRequest:
        return SubscriptionRequest(
            topic=self.topic,
            hub_url=self.hub_url,
            callback=self.callback,
            verify=self.verify,
            verify_token=self.verify_token,
            secret=self.secret or None,
            lease_seconds=self.lease_seconds,
            channel_id=self.channel_id,
        )


class ChannelLookupResponse(BaseModel):
    handle: str
    channel_id: str = Field(serialization_alias="channelId")
