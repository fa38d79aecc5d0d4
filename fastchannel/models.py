"""Pydantic models — request bodies, responses and the playout descriptor."""

from __future__ import annotations

import enum
import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class InsertionMode(str, enum.Enum):
    BACK_TO_BACK = "back_to_back"
    ANCHORED = "anchored"        # back-to-back arithmetic from a caller-given start
    MANUAL = "manual"            # caller-given start and end, no duration check


class ResolutionKind(str, enum.Enum):
    ON_AIR = "on_air"
    NEXT = "next"
    LOOP_BACK = "loop_back"


# ---------------------------------------------------------------------------
# Playout descriptor (engine wire format)
# ---------------------------------------------------------------------------

class AssetPlayout(BaseModel):
    """What the playout engine should air. Serialised with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    hls_url: str = Field(alias="hlsUrl")
    preroll_url: Optional[str] = Field(default=None, alias="prerollUrl")
    preroll_duration_ms: Optional[int] = Field(default=None, alias="prerollDurationMs")

    @classmethod
    def from_vod(cls, vod: Any) -> "AssetPlayout":
        playout = cls(id=vod.id, title=vod.title, hls_url=vod.hls_url)
        # Preroll is overlay metadata; only surfaced when fully described.
        if vod.preroll_url and vod.preroll_duration_ms:
            playout.preroll_url = vod.preroll_url
            playout.preroll_duration_ms = vod.preroll_duration_ms
        return playout

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

class CreateChannelRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    schedule_start: Optional[datetime] = None


class UpdateChannelRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    schedule_start: Optional[datetime] = None


class ScheduleStartRequest(BaseModel):
    schedule_start: Optional[datetime] = None


class ChannelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    schedule_start: Optional[datetime] = None
    schedule_synced: bool = False
    last_webhook_call: Optional[datetime] = None
    webhook_url: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChannelStatusResponse(BaseModel):
    channel_id: str
    is_online: bool
    last_webhook_call: Optional[datetime] = None
    seconds_since_last_webhook: Optional[float] = None
    online_threshold_seconds: float


# ---------------------------------------------------------------------------
# VOD
# ---------------------------------------------------------------------------

class CreateVodRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    hls_url: str = Field(min_length=1)
    duration_ms: Optional[int] = Field(default=None, gt=0)
    preroll_url: Optional[str] = None
    preroll_duration_ms: Optional[int] = Field(default=None, gt=0)
    metadata: Optional[dict[str, Any]] = None


class UpdateVodRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    hls_url: Optional[str] = None
    duration_ms: Optional[int] = Field(default=None, gt=0)
    preroll_url: Optional[str] = None
    preroll_duration_ms: Optional[int] = Field(default=None, gt=0)
    metadata: Optional[dict[str, Any]] = None


class VodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    hls_url: str
    duration_ms: Optional[int] = None
    preroll_url: Optional[str] = None
    preroll_duration_ms: Optional[int] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="metadata_json")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _decode_metadata(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------

class AddScheduleRequest(BaseModel):
    vod_id: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    use_back_to_back: bool = True
    position: Optional[int] = Field(default=None, ge=1)


class UpdateScheduleRequest(BaseModel):
    vod_id: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    position: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class ReorderRequest(BaseModel):
    schedule_ids: list[str]


class RebalanceRequest(BaseModel):
    start_from_position: int = Field(default=1, ge=1)


class ScheduleEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    channel_id: str
    vod_id: str
    position: int
    scheduled_start: datetime
    scheduled_end: datetime
    is_active: bool
    vod: Optional[VodResponse] = None
