"""Rebalancer — re-times a timeline suffix so it runs without gaps."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastchannel.clock import plus_ms, to_utc, utc_now
from fastchannel.db import ScheduleRow
from fastchannel.errors import InvalidInput
from fastchannel.log import get_logger
from fastchannel.metrics import REBALANCED_ENTRIES, REBALANCES
from fastchannel.store import RebalanceStore

logger = get_logger(__name__)


class Rebalancer:
    """Lays active entries at or after a position back-to-back.

    The anchor is the channel's ``schedule_start`` (or now) when starting from
    position 1, otherwise the end of the entry at ``from_position - 1`` (or now
    when that entry is missing). Each entry keeps its order, position and the
    current duration of its VOD; only start and end change. Running it twice
    with nothing in between changes nothing the second time.
    """

    def __init__(self, store: RebalanceStore):
        self.store = store

    def rebalance(
        self,
        channel_id: str,
        from_position: int = 1,
        *,
        now: Optional[datetime] = None,
        trigger: str = "admin",
    ) -> list[ScheduleRow]:
        if from_position < 1:
            raise InvalidInput("start_from_position must be >= 1")

        channel = self.store.get_channel(channel_id)
        entries = self.store.active_entries_from(channel_id, from_position)
        if not entries:
            return []

        fallback = to_utc(now) if now is not None else utc_now()
        if from_position == 1:
            anchor = channel.schedule_start or fallback
        else:
            previous = self.store.entry_at_position(channel_id, from_position - 1)
            anchor = previous.scheduled_end if previous is not None else fallback

        timings = []
        for entry in entries:
            end = plus_ms(anchor, entry.vod.duration_ms or 0)
            timings.append((entry, anchor, end))
            anchor = end

        updated = self.store.retime_entries(timings)

        REBALANCES.labels(trigger=trigger).inc()
        REBALANCED_ENTRIES.observe(len(updated))
        logger.info(
            "schedule_rebalanced",
            channel_id=channel_id,
            from_position=from_position,
            entries=len(updated),
            trigger=trigger,
        )
        return updated
