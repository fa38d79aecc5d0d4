"""Routes polled by the external playout engine."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fastchannel.api.routes import get_service
from fastchannel.clock import utc_now
from fastchannel.errors import NotFound
from fastchannel.log import bind_channel_context, clear_context, get_logger
from fastchannel.metrics import POLL_TIME, WEBHOOK_POLLS
from fastchannel.scheduling.service import ScheduleService

logger = get_logger(__name__)
webhook_router = APIRouter(prefix="/webhook")


@webhook_router.get("/nextVod")
def next_vod(
    channel_ref: Optional[str] = Query(default=None, alias="channelId"),
    svc: ScheduleService = Depends(get_service),
):
    if not channel_ref:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "channelId parameter is required")

    started = time.perf_counter()
    bind_channel_context(channel_ref)
    try:
        lookup, resolution = svc.poll(channel_ref)
    except NotFound:
        WEBHOOK_POLLS.labels(result="not_found").inc()
        logger.warning("webhook_poll_unanswered", channel_ref=channel_ref)
        raise
    finally:
        POLL_TIME.observe(time.perf_counter() - started)
        clear_context()

    WEBHOOK_POLLS.labels(result=resolution.kind.value).inc()
    logger.info(
        "webhook_poll",
        channel_ref=channel_ref,
        channel_id=lookup.channel.id,
        matched_via=lookup.via.value,
        result=resolution.kind.value,
        vod_id=resolution.entry.vod_id,
        position=resolution.entry.position,
    )
    return resolution.playout.wire()


@webhook_router.get("/health")
async def webhook_health():
    return {"status": "ok", "timestamp": utc_now().isoformat()}
