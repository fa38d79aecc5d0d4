"""FastAPI routes for channel, VOD and schedule administration.

Handlers that reach the service are plain ``def``: they block on the database
and on channel locks, so FastAPI runs them in its threadpool.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fastchannel.config import webhook_url
from fastchannel.db import ChannelRow, ScheduleRow, get_db
from fastchannel.models import (
    AddScheduleRequest,
    ChannelResponse,
    ChannelStatusResponse,
    CreateChannelRequest,
    CreateVodRequest,
    RebalanceRequest,
    ReorderRequest,
    ScheduleEntryResponse,
    ScheduleStartRequest,
    UpdateChannelRequest,
    UpdateScheduleRequest,
    UpdateVodRequest,
    VodResponse,
)
from fastchannel.scheduling.service import ScheduleService
from fastchannel.store import TimelineStore

router = APIRouter(prefix="/api/v1")


# ---- helpers ---------------------------------------------------------------

def get_service(db: Session = Depends(get_db)) -> ScheduleService:
    return ScheduleService(TimelineStore(db))


def _channel_out(channel: ChannelRow) -> ChannelResponse:
    out = ChannelResponse.model_validate(channel)
    out.webhook_url = webhook_url()
    return out


def _entry_out(entry: ScheduleRow) -> ScheduleEntryResponse:
    return ScheduleEntryResponse.model_validate(entry)


# ---- health --------------------------------------------------------------

health_router = APIRouter()


@health_router.get("/health")
async def health():
    return {"status": "ok"}


# ---- channels --------------------------------------------------------------

@router.get("/channels")
def list_channels(svc: ScheduleService = Depends(get_service)):
    return [_channel_out(c) for c in svc.list_channels()]


@router.post("/channels", status_code=status.HTTP_201_CREATED)
def create_channel(req: CreateChannelRequest, svc: ScheduleService = Depends(get_service)):
    channel = svc.create_channel(req.name, req.description, req.schedule_start)
    return _channel_out(channel)


@router.get("/channels/{channel_id}")
def get_channel(channel_id: str, svc: ScheduleService = Depends(get_service)):
    channel = svc.get_channel(channel_id)
    out = _channel_out(channel).model_dump(mode="json")
    out["schedule"] = [_entry_out(e).model_dump(mode="json") for e in svc.list_schedule(channel_id)]
    return out


@router.put("/channels/{channel_id}")
def update_channel(
    channel_id: str,
    req: UpdateChannelRequest,
    svc: ScheduleService = Depends(get_service),
):
    fields = req.model_dump(exclude_unset=True)
    if fields.get("name", "") is None:
        fields.pop("name")
    channel = svc.update_channel(channel_id, fields)
    return _channel_out(channel)


@router.delete("/channels/{channel_id}")
def delete_channel(channel_id: str, svc: ScheduleService = Depends(get_service)):
    channel = svc.delete_channel(channel_id)
    return {"success": True, "message": f'Channel "{channel.name}" deleted successfully'}


@router.get("/channels/{channel_id}/status")
def channel_status(channel_id: str, svc: ScheduleService = Depends(get_service)):
    return ChannelStatusResponse(**svc.channel_status(channel_id))


@router.get("/webhook-url")
async def get_webhook_url():
    return {"webhookUrl": webhook_url()}


# ---- vods ------------------------------------------------------------------

@router.get("/vods")
def list_vods(svc: ScheduleService = Depends(get_service)):
    return [VodResponse.model_validate(v) for v in svc.list_vods()]


@router.post("/vods", status_code=status.HTTP_201_CREATED)
def create_vod(req: CreateVodRequest, svc: ScheduleService = Depends(get_service)):
    vod = svc.create_vod(req.model_dump())
    return VodResponse.model_validate(vod)


@router.get("/vods/{vod_id}")
def get_vod(vod_id: str, svc: ScheduleService = Depends(get_service)):
    return VodResponse.model_validate(svc.get_vod(vod_id))


@router.put("/vods/{vod_id}")
def update_vod(vod_id: str, req: UpdateVodRequest, svc: ScheduleService = Depends(get_service)):
    vod = svc.update_vod(vod_id, req.model_dump(exclude_unset=True))
    return VodResponse.model_validate(vod)


@router.delete("/vods/{vod_id}")
def delete_vod(vod_id: str, svc: ScheduleService = Depends(get_service)):
    svc.delete_vod(vod_id)
    return {"success": True}


# ---- schedule --------------------------------------------------------------

@router.get("/channels/{channel_id}/schedule")
def list_schedule(channel_id: str, svc: ScheduleService = Depends(get_service)):
    return [_entry_out(e) for e in svc.list_schedule(channel_id)]


@router.get("/channels/{channel_id}/current")
def current_playout(
    channel_id: str,
    at: Optional[datetime] = None,
    svc: ScheduleService = Depends(get_service),
):
    resolution = svc.resolve_current_playout(channel_id, at)
    return resolution.playout.wire()


@router.post("/channels/{channel_id}/schedule", status_code=status.HTTP_201_CREATED)
def add_to_schedule(
    channel_id: str,
    req: AddScheduleRequest,
    svc: ScheduleService = Depends(get_service),
):
    entry = svc.add_to_schedule(
        channel_id,
        req.vod_id,
        start=req.scheduled_start,
        end=req.scheduled_end,
        back_to_back=req.use_back_to_back,
        position=req.position,
    )
    return _entry_out(entry)


@router.put("/schedule/{entry_id}")
def update_schedule_entry(
    entry_id: str,
    req: UpdateScheduleRequest,
    svc: ScheduleService = Depends(get_service),
):
    entry = svc.update_entry(entry_id, req.model_dump(exclude_unset=True))
    return _entry_out(entry)


@router.delete("/schedule/{entry_id}")
def delete_schedule_entry(entry_id: str, svc: ScheduleService = Depends(get_service)):
    svc.delete_entry(entry_id)
    return {"success": True}


@router.put("/channels/{channel_id}/schedule/reorder")
def reorder_schedule(
    channel_id: str,
    req: ReorderRequest,
    svc: ScheduleService = Depends(get_service),
):
    ordered = svc.reorder(channel_id, req.schedule_ids)
    return {"success": True, "schedule": [_entry_out(e) for e in ordered]}


@router.put("/channels/{channel_id}/schedule/rebalance")
def rebalance_schedule(
    channel_id: str,
    req: RebalanceRequest | None = None,
    svc: ScheduleService = Depends(get_service),
):
    from_position = req.start_from_position if req is not None else 1
    updated = svc.rebalance_schedule(channel_id, from_position)
    return {"success": True, "rebalanced": len(updated)}


@router.put("/channels/{channel_id}/schedule-start")
def set_schedule_start(
    channel_id: str,
    req: ScheduleStartRequest,
    svc: ScheduleService = Depends(get_service),
):
    channel = svc.set_channel_schedule_start(channel_id, req.schedule_start)
    return {"success": True, "channel": _channel_out(channel)}
