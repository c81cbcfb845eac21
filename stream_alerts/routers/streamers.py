"""API endpoints for managing streamers and their YouTube alerts."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status

from stream_alerts.core.dependencies import AlertServices, get_services
from stream_alerts.schema.streamer import StreamerCreateRequest, StreamerListResponse, StreamerResponse
from stream_alerts.services.channel_resolver import (
    ChannelResolutionError,
    channel_feed_url,
    normalise_channel_identifier,
)
from stream_alerts.services.errors import AlertError, StreamerNotFoundError, UpstreamError
from stream_alerts.services.streamer_store import DuplicateStreamerError, YouTubePlatform

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/streamers", tags=["streamers"])


@router.get("", response_model=StreamerListResponse)
async def list_streamers(services: AlertServices = Depends(get_services)) -> StreamerListResponse:
    records = await services.store.list()
    return StreamerListResponse(streamers=[StreamerResponse.from_record(record) for record in records])


@router.post("", response_model=StreamerResponse, status_code=status.HTTP_201_CREATED)
async def add_streamer(
    payload: StreamerCreateRequest,
    services: AlertServices = Depends(get_services),
) -> StreamerResponse:
    handle = channel_id = ""
    if payload.youtube:
        try:
            handle, channel_id = await normalise_channel_identifier(payload.youtube, services.resolver)
        except ChannelResolutionError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        record = await services.store.create(alias=payload.alias, description=payload.description)
    except DuplicateStreamerError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except AlertError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if not channel_id:
        return StreamerResponse.from_record(record)

    settings = services.settings
    record = await services.store.set_youtube_platform(
        record.id,
        YouTubePlatform(
            handle=handle,
            channel_id=channel_id,
            hub_secret=secrets.token_hex(16),
            lease_seconds=settings.lease_seconds,
            callback_url=settings.callback_url,
            hub_url=settings.hub_url,
            verify_mode=settings.verify_mode,
            topic=channel_feed_url(channel_id),
        ),
    )

    try:
        await services.manager.subscribe_record(record)
    except UpstreamError as exc:
        logger.exception("Failed to register WebSub subscription for %s", record.alias)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Unable to register WebSub subscription; please retry",
        ) from exc
    except AlertError as exc:
        logger.warning("Cannot subscribe %s: %s", record.alias, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return StreamerResponse.from_record(record)


@router.post("/{streamer_id}/subscribe", response_model=StreamerResponse)
async def resubscribe_streamer(
    streamer_id: str,
    services: AlertServices = Depends(get_services),
) -> StreamerResponse:
    """Send a fresh subscribe request for the streamer's YouTube channel."""

    try:
        record = await services.store.get(streamer_id)
    except StreamerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Streamer not found") from exc
    if record.youtube is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Streamer has no YouTube channel")

    try:
        await services.manager.subscribe_record(record)
    except UpstreamError as exc:
        logger.warning("Resubscribe failed for %s", record.alias, exc_info=True)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except AlertError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return StreamerResponse.from_record(record)


@router.delete("/{streamer_id}", response_model=StreamerResponse)
async def delete_streamer(
    streamer_id: str,
    services: AlertServices = Depends(get_services),
) -> StreamerResponse:
    try:
        record = await services.store.get(streamer_id)
    except StreamerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Streamer not found") from exc

    if record.youtube is not None and record.youtube.channel_id:
        try:
            await services.manager.unsubscribe_record(record)
        except AlertError:
            logger.warning("Failed to unsubscribe %s", record.alias, exc_info=True)

    try:
        record = await services.store.delete(streamer_id)
    except StreamerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Streamer not found") from exc

    return StreamerResponse.from_record(record)
