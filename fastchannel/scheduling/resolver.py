"""Playout resolver — what should be airing on a channel at an instant.

First match wins, over active entries only:

1. on air: ``start <= now <= end`` (both bounds inclusive), earliest start;
2. next: smallest start strictly after ``now``;
3. loop back: the timeline is exhausted, so the lowest position is re-anchored
   at ``now`` together with everything after it, and returned;
4. nothing active: NotFound.

Step 3 writes to the store so a channel never stalls when its playlist ends.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastchannel.clock import to_utc, utc_now
from fastchannel.db import ScheduleRow
from fastchannel.errors import NotFound
from fastchannel.log import get_logger
from fastchannel.metrics import LOOP_BACKS
from fastchannel.models import AssetPlayout, ResolutionKind
from fastchannel.scheduling.rebalancer import Rebalancer
from fastchannel.store import ResolverStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    entry: ScheduleRow
    kind: ResolutionKind

    @property
    def playout(self) -> AssetPlayout:
        return AssetPlayout.from_vod(self.entry.vod)


class PlayoutResolver:
    def __init__(self, store: ResolverStore, rebalancer: Rebalancer):
        self.store = store
        self.rebalancer = rebalancer

    def resolve(self, channel_id: str, now: Optional[datetime] = None) -> Resolution:
        now = to_utc(now) if now is not None else utc_now()
        self.store.get_channel(channel_id)

        entry = self.store.on_air_entry(channel_id, now)
        if entry is not None:
            return Resolution(entry, ResolutionKind.ON_AIR)

        entry = self.store.next_entry(channel_id, now)
        if entry is not None:
            return Resolution(entry, ResolutionKind.NEXT)

        return Resolution(self._loop_back(channel_id, now), ResolutionKind.LOOP_BACK)

    def _loop_back(self, channel_id: str, now: datetime) -> ScheduleRow:
        first = self.store.first_active_entry(channel_id)
        if first is None:
            raise NotFound(f"No schedule configured for channel {channel_id}")

        channel = self.store.get_channel(channel_id)
        self.store.update_channel(channel, schedule_start=now)
        retimed = self.rebalancer.rebalance(channel_id, 1, now=now, trigger="loop_back")

        LOOP_BACKS.inc()
        logger.info(
            "playout_loop_back",
            channel_id=channel_id,
            position=first.position,
            schedule_start=now.isoformat(),
        )
        for entry in retimed:
            if entry.position == first.position:
                return entry
        return first
