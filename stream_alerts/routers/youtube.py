"""Operator endpoints for WebSub subscriptions and channel lookup."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from stream_alerts.core.dependencies import AlertServices, get_services
from stream_alerts.schema.subscription import ChannelLookupResponse, HubSubscriptionPayload
from stream_alerts.services.channel_resolver import ChannelResolutionError, normalise_channel_identifier
from stream_alerts.services.subscription_service import ProxyError, ProxyResult, SubscriptionProxy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/youtube", tags=["youtube"])


def _mirror(result: ProxyResult) -> Response:
    return Response(
        content=result.body,
        status_code=result.status_code,
        media_type=result.content_type or None,
    )


async def _forward(proxy: SubscriptionProxy, payload: HubSubscriptionPayload) -> Response:
    try:
        result = await proxy.process(payload.to_request())
    except ProxyError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return _mirror(result)


@router.post("/subscribe")
async def subscribe(
    payload: HubSubscriptionPayload,
    services: AlertServices = Depends(get_services),
) -> Response:
    """Forward a subscribe request to the hub and relay its reply."""

    return await _forward(services.subscribe_proxy, payload)


@router.post("/unsubscribe")
async def unsubscribe(
    payload: HubSubscriptionPayload,
    services: AlertServices = Depends(get_services),
) -> Response:
    return await _forward(services.unsubscribe_proxy, payload)


@router.get("/channel", response_model=ChannelLookupResponse)
async def lookup_channel(
    handle: str = Query("", description="YouTube handle, channel URL or UC id"),
    services: AlertServices = Depends(get_services),
) -> ChannelLookupResponse:
    try:
        resolved_handle, channel_id = await normalise_channel_identifier(handle, services.resolver)
    except ChannelResolutionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ChannelLookupResponse(handle=resolved_handle, channel_id=channel_id)
