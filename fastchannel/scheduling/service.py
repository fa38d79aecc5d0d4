"""Schedule service — the channel operations exposed to the admin API and the webhook.

Every operation that touches a timeline takes the channel lock and runs in a
single store transaction, so calculate-then-persist and rebalance-then-write
are atomic with respect to other writers on the same channel.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, ContextManager, Iterator, Optional

from fastchannel.clock import to_utc, utc_now
from fastchannel.config import webhook_online_threshold_seconds
from fastchannel.db import ChannelRow, ScheduleRow, VodRow
from fastchannel.errors import InvalidInput, NotFound
from fastchannel.locks import channel_lock
from fastchannel.log import get_logger
from fastchannel.metrics import ENTRIES_ADDED
from fastchannel.scheduling.calculator import ScheduleCalculator
from fastchannel.scheduling.lookup import ChannelLookup, resolve_channel_ref
from fastchannel.scheduling.rebalancer import Rebalancer
from fastchannel.scheduling.resolver import PlayoutResolver, Resolution
from fastchannel.scheduling.sync import SyncCoordinator
from fastchannel.store import TimelineStore

logger = get_logger(__name__)

LockFactory = Callable[[str], ContextManager[None]]


def _now(now: Optional[datetime]) -> datetime:
    return to_utc(now) if now is not None else utc_now()


class ScheduleService:
    def __init__(self, store: TimelineStore, lock: LockFactory = channel_lock):
        self.store = store
        self.lock = lock
        self.calculator = ScheduleCalculator(store)
        self.rebalancer = Rebalancer(store)
        self.resolver = PlayoutResolver(store, self.rebalancer)
        self.sync = SyncCoordinator(store, self.rebalancer)

    @contextmanager
    def _locked(self, channel_id: str) -> Iterator[None]:
        """Hold the channel lock; rows cached before it was taken are reloaded."""
        with self.lock(channel_id):
            self.store.refresh()
            yield

    # ---- channels ------------------------------------------------------

    def list_channels(self) -> list[ChannelRow]:
        return self.store.list_channels()

    def get_channel(self, channel_id: str) -> ChannelRow:
        return self.store.get_channel(channel_id)

    def create_channel(
        self,
        name: str,
        description: str | None = None,
        schedule_start: datetime | None = None,
    ) -> ChannelRow:
        with self.store.transaction():
            channel = self.store.add_channel(
                name=name,
                description=description,
                schedule_start=to_utc(schedule_start) if schedule_start else None,
                schedule_synced=False,
            )
        logger.info("channel_created", channel_id=channel.id, name=name)
        return channel

    def update_channel(self, channel_id: str, fields: dict[str, Any]) -> ChannelRow:
        """Apply the given fields. A ``schedule_start`` key re-arms first-poll sync."""
        fields = dict(fields)
        has_start = "schedule_start" in fields
        new_start = fields.pop("schedule_start", None)

        with self._locked(channel_id):
            with self.store.transaction():
                channel = self.store.get_channel(channel_id)
                if fields:
                    self.store.update_channel(channel, **fields)
                if has_start and new_start is not None:
                    self._apply_schedule_start(channel, new_start)
                elif has_start:
                    self.store.update_channel(channel, schedule_start=None, schedule_synced=False)
        return channel

    def delete_channel(self, channel_id: str) -> ChannelRow:
        with self._locked(channel_id):
            with self.store.transaction():
                channel = self.store.get_channel(channel_id)
                self.store.delete_channel(channel)
        logger.info("channel_deleted", channel_id=channel_id, name=channel.name)
        return channel

    def channel_status(self, channel_id: str, now: Optional[datetime] = None) -> dict[str, Any]:
        now = _now(now)
        channel = self.store.get_channel(channel_id)
        threshold = webhook_online_threshold_seconds()
        elapsed = None
        if channel.last_webhook_call is not None:
            elapsed = (now - channel.last_webhook_call).total_seconds()
        return {
            "channel_id": channel.id,
            "is_online": elapsed is not None and elapsed <= threshold,
            "last_webhook_call": channel.last_webhook_call,
            "seconds_since_last_webhook": elapsed,
            "online_threshold_seconds": threshold,
        }

    # ---- vods ----------------------------------------------------------

    def list_vods(self) -> list[VodRow]:
        return self.store.list_vods()

    def get_vod(self, vod_id: str) -> VodRow:
        return self.store.get_vod(vod_id)

    def create_vod(self, fields: dict[str, Any]) -> VodRow:
        fields = _encode_metadata(fields)
        with self.store.transaction():
            vod = self.store.add_vod(**fields)
        logger.info("vod_created", vod_id=vod.id, duration_ms=vod.duration_ms)
        return vod

    def update_vod(self, vod_id: str, fields: dict[str, Any]) -> VodRow:
        # Scheduled entries keep their times until a rebalance re-reads durations.
        fields = _encode_metadata(fields)
        with self.store.transaction():
            vod = self.store.get_vod(vod_id)
            self.store.update_vod(vod, **fields)
        return vod

    def delete_vod(self, vod_id: str) -> None:
        with self.store.transaction():
            vod = self.store.get_vod(vod_id)
            self.store.delete_vod(vod)
        logger.info("vod_deleted", vod_id=vod_id)

    # ---- schedule ------------------------------------------------------

    def list_schedule(self, channel_id: str) -> list[ScheduleRow]:
        self.store.get_channel(channel_id)
        return self.store.list_entries(channel_id)

    def add_to_schedule(
        self,
        channel_id: str,
        vod_id: Optional[str],
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        back_to_back: bool = True,
        position: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleRow:
        with self._locked(channel_id):
            with self.store.transaction():
                insertion = self.calculator.compute_insertion(
                    channel_id, vod_id,
                    start=start, end=end, back_to_back=back_to_back,
                    position=position, now=now,
                )
                entry = self.store.add_entry(
                    channel_id=channel_id,
                    vod_id=vod_id,
                    position=insertion.position,
                    scheduled_start=insertion.scheduled_start,
                    scheduled_end=insertion.scheduled_end,
                    is_active=True,
                )

        ENTRIES_ADDED.labels(mode=insertion.mode.value).inc()
        logger.info(
            "schedule_entry_added",
            channel_id=channel_id,
            entry_id=entry.id,
            vod_id=vod_id,
            position=entry.position,
            mode=insertion.mode.value,
        )
        return entry

    def update_entry(self, entry_id: str, fields: dict[str, Any]) -> ScheduleRow:
        fields = dict(fields)
        channel_id = self.store.get_entry(entry_id).channel_id
        with self._locked(channel_id):
            with self.store.transaction():
                entry = self.store.get_entry(entry_id)
                if "vod_id" in fields:
                    if not fields["vod_id"]:
                        raise InvalidInput("vod_id cannot be empty")
                    self.store.get_vod(fields["vod_id"])
                for key in ("scheduled_start", "scheduled_end"):
                    if key in fields:
                        if fields[key] is None:
                            raise InvalidInput(f"{key} cannot be null")
                        fields[key] = to_utc(fields[key])
                if "position" in fields:
                    if fields["position"] is None or fields["position"] < 1:
                        raise InvalidInput("position must be a positive integer")
                    holder = self.store.entry_at_position(channel_id, fields["position"])
                    if holder is not None and holder.id != entry.id:
                        raise InvalidInput(
                            f"Position {fields['position']} is already taken on channel {channel_id}"
                        )
                if fields.get("is_active", True) is None:
                    raise InvalidInput("is_active cannot be null")
                self.store.update_entry(entry, **fields)
        return entry

    def delete_entry(self, entry_id: str) -> None:
        channel_id = self.store.get_entry(entry_id).channel_id
        with self._locked(channel_id):
            with self.store.transaction():
                self.store.delete_entry(self.store.get_entry(entry_id))
        logger.info("schedule_entry_deleted", channel_id=channel_id, entry_id=entry_id)

    def reorder(self, channel_id: str, entry_ids: list[str]) -> list[ScheduleRow]:
        """Give the listed entries positions 1..N in list order. Times are not touched."""
        with self._locked(channel_id):
            with self.store.transaction():
                self.store.get_channel(channel_id)
                current = {e.id: e for e in self.store.list_entries(channel_id)}
                if len(set(entry_ids)) != len(entry_ids):
                    raise InvalidInput("schedule_ids contains duplicates")
                unknown = [eid for eid in entry_ids if eid not in current]
                if unknown:
                    raise NotFound(f"Schedule entries not on channel: {', '.join(unknown)}")
                if len(entry_ids) != len(current):
                    raise InvalidInput("schedule_ids must list every entry of the channel")
                ordered = self.store.assign_positions([current[eid] for eid in entry_ids])
        logger.info("schedule_reordered", channel_id=channel_id, entries=len(ordered))
        return ordered

    def rebalance_schedule(
        self,
        channel_id: str,
        from_position: int = 1,
        *,
        now: Optional[datetime] = None,
    ) -> list[ScheduleRow]:
        with self._locked(channel_id):
            with self.store.transaction():
                return self.rebalancer.rebalance(channel_id, from_position, now=now)

    def set_channel_schedule_start(
        self,
        channel_id: str,
        new_start: Optional[datetime],
        *,
        now: Optional[datetime] = None,
    ) -> ChannelRow:
        if new_start is None:
            raise InvalidInput("schedule_start is required")
        with self._locked(channel_id):
            with self.store.transaction():
                channel = self.store.get_channel(channel_id)
                self._apply_schedule_start(channel, new_start, now=now)
        return channel

    def _apply_schedule_start(
        self,
        channel: ChannelRow,
        new_start: datetime,
        *,
        now: Optional[datetime] = None,
    ) -> None:
        self.store.update_channel(channel, schedule_start=to_utc(new_start), schedule_synced=False)
        self.rebalancer.rebalance(channel.id, 1, now=now, trigger="schedule_start")
        logger.info(
            "schedule_start_updated",
            channel_id=channel.id,
            schedule_start=channel.schedule_start.isoformat(),
        )

    # ---- playout -------------------------------------------------------

    def resolve_current_playout(
        self,
        channel_id: str,
        now: Optional[datetime] = None,
    ) -> Resolution:
        now = _now(now)
        with self._locked(channel_id):
            with self.store.transaction():
                return self.resolver.resolve(channel_id, now)

    def poll(
        self,
        channel_ref: str,
        now: Optional[datetime] = None,
    ) -> tuple[ChannelLookup, Resolution]:
        """Answer a playout engine poll: sync on first contact, then resolve."""
        now = _now(now)
        lookup = resolve_channel_ref(self.store, channel_ref)
        if not lookup.found:
            raise NotFound(f"Channel not found: {channel_ref}")
        channel_id = lookup.channel.id

        with self._locked(channel_id):
            # Liveness is committed even when there is nothing to play.
            with self.store.transaction():
                self.sync.maybe_sync_on_first_poll(channel_id, now)
            with self.store.transaction():
                resolution = self.resolver.resolve(channel_id, now)
        return lookup, resolution


def _encode_metadata(fields: dict[str, Any]) -> dict[str, Any]:
    fields = dict(fields)
    if "metadata" in fields:
        metadata = fields.pop("metadata")
        fields["metadata_json"] = json.dumps(metadata) if metadata is not None else None
    return fields
