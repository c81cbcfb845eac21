"""YouTube WebSub webhook handlers."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import PlainTextResponse

from stream_alerts.core.dependencies import AlertServices, get_services
from stream_alerts.services.youtube_notifications import InvalidFeedError, LookupFailedError

logger = logging.getLogger(__name__)


async def verify_webhook(request: Request, services: AlertServices = Depends(get_services)) -> Response:
    """Answer the hub's subscription challenge."""

    outcome = await services.verifier.handle(request.method, request.url.path, request.query_params)
    if outcome is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not outcome.ok:
        logger.warning("Rejected hub challenge: %s", outcome.body)
    return PlainTextResponse(content=outcome.body, status_code=outcome.status_code)


async def receive_webhook(request: Request, services: AlertServices = Depends(get_services)) -> Response:
    """Receive WebSub notifications and mark live streams."""

    payload = await request.body()
    logger.info("Received WebSub notification", extra={"payload_length": len(payload)})

    if not payload:
        logger.info("Empty WebSub payload")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    signature = request.headers.get("X-Hub-Signature") or request.headers.get("X-Hub-Signature-256")
    if not await services.authenticator.verify(payload, signature):
        logger.warning("Webhook signature validation failed")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    try:
        result = await services.notifications.process(payload)
    except InvalidFeedError as exc:
        logger.warning("Invalid WebSub payload", exc_info=exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload") from exc
    except LookupFailedError as exc:
        logger.warning("Video lookup failed", extra={"video_ids": exc.video_ids}, exc_info=exc)
        return Response(status_code=status.HTTP_202_ACCEPTED)
    except Exception as exc:  # noqa: BLE001 - let FastAPI handle HTTP error
        logger.exception("Failed to process WebSub notification")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to process notification",
        ) from exc

    logger.info(
        "Processed WebSub notification",
        extra={
            "entries": result.entries,
            "video_ids": result.video_ids,
            "live": [update.video_id for update in result.live_updates],
            "skipped": [(skip.video_id, skip.reason) for skip in result.skipped],
        },
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def build_router(callback_path: str) -> APIRouter:
    """Mount the challenge and notification handlers on ``callback_path``."""

    router = APIRouter(tags=["webhooks"])
    router.add_api_route(callback_path, verify_webhook, methods=["GET"], response_class=PlainTextResponse)
    router.add_api_route(
        callback_path,
        receive_webhook,
        methods=["POST"],
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    return router
