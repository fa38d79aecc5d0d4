"""Sync coordinator — anchor a channel to the engine's first real poll.

An administrator may set ``schedule_start`` before the playout engine is up,
so the first poll can arrive late. That poll moves ``schedule_start`` to the
poll instant and re-times the whole timeline, once; setting a new
``schedule_start`` re-arms it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastchannel.clock import to_utc, utc_now
from fastchannel.log import get_logger
from fastchannel.metrics import SCHEDULE_SYNCS
from fastchannel.scheduling.rebalancer import Rebalancer
from fastchannel.store import SyncStore

logger = get_logger(__name__)


class SyncCoordinator:
    def __init__(self, store: SyncStore, rebalancer: Rebalancer):
        self.store = store
        self.rebalancer = rebalancer

    def maybe_sync_on_first_poll(self, channel_id: str, now: Optional[datetime] = None) -> bool:
        """Record the poll; on the first one of an epoch, re-anchor. Returns True if it synced."""
        now = to_utc(now) if now is not None else utc_now()
        channel = self.store.get_channel(channel_id)

        synced = False
        if not channel.schedule_synced and channel.schedule_start is not None:
            planned = channel.schedule_start
            self.store.update_channel(channel, schedule_start=now)
            self.rebalancer.rebalance(channel_id, 1, now=now, trigger="sync")
            self.store.update_channel(channel, schedule_synced=True)
            synced = True

            SCHEDULE_SYNCS.inc()
            logger.info(
                "schedule_synced_on_first_poll",
                channel_id=channel_id,
                planned_start=planned.isoformat(),
                actual_start=now.isoformat(),
            )

        self.store.update_channel(channel, last_webhook_call=now)
        return synced
