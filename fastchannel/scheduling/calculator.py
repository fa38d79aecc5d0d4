"""Schedule calculator — where a new entry lands on a channel timeline.

Three placements:

* back-to-back: start at the end of the entry that finishes last (ties go to
  the higher position), else at the channel's ``schedule_start``, else now;
* anchored: back-to-back arithmetic from a caller-given start;
* manual: caller-given start and end, stored exactly as given.

Manual placement is deliberately not checked against the VOD duration and no
placement checks for overlaps; both are allowed as intentional overrides.
The entry takes the next position after the highest one unless the caller
names a free position. Nothing is persisted here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastchannel.clock import plus_ms, to_utc, utc_now
from fastchannel.errors import InvalidInput
from fastchannel.log import get_logger
from fastchannel.models import InsertionMode
from fastchannel.store import CalculatorStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class Insertion:
    scheduled_start: datetime
    scheduled_end: datetime
    position: int
    mode: InsertionMode


class ScheduleCalculator:
    def __init__(self, store: CalculatorStore):
        self.store = store

    def compute_insertion(
        self,
        channel_id: str,
        vod_id: Optional[str],
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        back_to_back: bool = True,
        position: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Insertion:
        if not vod_id:
            raise InvalidInput("vod_id is required")

        channel = self.store.get_channel(channel_id)
        vod = self.store.get_vod(vod_id)
        position = self._position(channel_id, position)

        if not back_to_back:
            if start is None or end is None:
                raise InvalidInput("Manual scheduling needs scheduled_start and scheduled_end")
            return Insertion(
                scheduled_start=to_utc(start),
                scheduled_end=to_utc(end),
                position=position,
                mode=InsertionMode.MANUAL,
            )

        if not vod.duration_ms or vod.duration_ms <= 0:
            raise InvalidInput(f"VOD {vod_id} has no positive duration")

        if start is not None:
            mode = InsertionMode.ANCHORED
            scheduled_start = to_utc(start)
        else:
            mode = InsertionMode.BACK_TO_BACK
            last = self.store.last_entry_by_end(channel_id)
            if last is not None:
                scheduled_start = last.scheduled_end
            elif channel.schedule_start is not None:
                scheduled_start = channel.schedule_start
            else:
                scheduled_start = to_utc(now) if now is not None else utc_now()

        insertion = Insertion(
            scheduled_start=scheduled_start,
            scheduled_end=plus_ms(scheduled_start, vod.duration_ms),
            position=position,
            mode=mode,
        )
        logger.debug(
            "insertion_computed",
            channel_id=channel_id,
            vod_id=vod_id,
            mode=mode.value,
            position=position,
        )
        return insertion

    def _position(self, channel_id: str, requested: Optional[int]) -> int:
        if requested is None:
            return self.store.max_position(channel_id) + 1
        if requested < 1:
            raise InvalidInput("position must be a positive integer")
        if self.store.entry_at_position(channel_id, requested) is not None:
            raise InvalidInput(f"Position {requested} is already taken on channel {channel_id}")
        return requested
