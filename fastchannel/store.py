"""Timeline store — the persisted channel timelines behind the scheduling core.

``TimelineStore`` wraps one SQLAlchemy session. Reads and writes flush but
never commit; callers group them with :meth:`TimelineStore.transaction`.
Every SQLAlchemy error leaves this module as :class:`StoreFailure`.

Each scheduling component only sees the slice of the store it needs,
described by the ``*Store`` protocols below.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fastchannel.db import ChannelRow, ScheduleRow, VodRow
from fastchannel.errors import NotFound, StoreFailure
from fastchannel.log import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------------

class CalculatorStore(Protocol):
    def get_channel(self, channel_id: str) -> ChannelRow: ...
    def get_vod(self, vod_id: str) -> VodRow: ...
    def last_entry_by_end(self, channel_id: str) -> Optional[ScheduleRow]: ...
    def max_position(self, channel_id: str) -> int: ...
    def entry_at_position(self, channel_id: str, position: int) -> Optional[ScheduleRow]: ...


class RebalanceStore(Protocol):
    def get_channel(self, channel_id: str) -> ChannelRow: ...
    def active_entries_from(self, channel_id: str, from_position: int) -> list[ScheduleRow]: ...
    def entry_at_position(self, channel_id: str, position: int) -> Optional[ScheduleRow]: ...
    def retime_entries(
        self, timings: Sequence[tuple[ScheduleRow, datetime, datetime]],
    ) -> list[ScheduleRow]: ...


class ResolverStore(Protocol):
    def get_channel(self, channel_id: str) -> ChannelRow: ...
    def on_air_entry(self, channel_id: str, now: datetime) -> Optional[ScheduleRow]: ...
    def next_entry(self, channel_id: str, now: datetime) -> Optional[ScheduleRow]: ...
    def first_active_entry(self, channel_id: str) -> Optional[ScheduleRow]: ...
    def update_channel(self, channel: ChannelRow, **fields) -> ChannelRow: ...


class SyncStore(Protocol):
    def get_channel(self, channel_id: str) -> ChannelRow: ...
    def update_channel(self, channel: ChannelRow, **fields) -> ChannelRow: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _store_op(method):
    """Translate SQLAlchemy errors into StoreFailure, rolling the session back."""

    @functools.wraps(method)
    def wrapper(self: "TimelineStore", *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("store_failure", operation=method.__name__, error=str(exc))
            raise StoreFailure(f"{method.__name__} failed") from exc

    return wrapper


class TimelineStore:
    def __init__(self, session: Session):
        self.session = session

    def refresh(self) -> None:
        """Forget loaded row state so the next reads see other sessions' commits."""
        self.session.expire_all()

    @contextmanager
    def transaction(self) -> Iterator["TimelineStore"]:
        """Commit everything done inside the block, or nothing."""
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("store_transaction_failed", error=str(exc))
            raise StoreFailure("transaction failed") from exc
        except BaseException:
            self.session.rollback()
            raise

    # ---- channels ------------------------------------------------------

    @_store_op
    def find_channel(self, channel_id: str) -> Optional[ChannelRow]:
        return self.session.get(ChannelRow, channel_id)

    def get_channel(self, channel_id: str) -> ChannelRow:
        channel = self.find_channel(channel_id)
        if channel is None:
            raise NotFound(f"Channel not found: {channel_id}")
        return channel

    @_store_op
    def find_channel_by_name(self, name: str) -> Optional[ChannelRow]:
        return (
            self.session.query(ChannelRow)
            .filter(ChannelRow.name == name)
            .order_by(ChannelRow.created_at)
            .first()
        )

    @_store_op
    def list_channels(self) -> list[ChannelRow]:
        return self.session.query(ChannelRow).order_by(ChannelRow.created_at).all()

    @_store_op
    def add_channel(self, **fields) -> ChannelRow:
        channel = ChannelRow(**fields)
        self.session.add(channel)
        self.session.flush()
        return channel

    @_store_op
    def update_channel(self, channel: ChannelRow, **fields) -> ChannelRow:
        for key, value in fields.items():
            setattr(channel, key, value)
        self.session.flush()
        return channel

    @_store_op
    def delete_channel(self, channel: ChannelRow) -> None:
        self.session.delete(channel)
        self.session.flush()

    # ---- vods ----------------------------------------------------------

    @_store_op
    def find_vod(self, vod_id: str) -> Optional[VodRow]:
        return self.session.get(VodRow, vod_id)

    def get_vod(self, vod_id: str) -> VodRow:
        vod = self.find_vod(vod_id)
        if vod is None:
            raise NotFound(f"VOD not found: {vod_id}")
        return vod

    @_store_op
    def list_vods(self) -> list[VodRow]:
        return self.session.query(VodRow).order_by(VodRow.created_at.desc()).all()

    @_store_op
    def add_vod(self, **fields) -> VodRow:
        vod = VodRow(**fields)
        self.session.add(vod)
        self.session.flush()
        return vod

    @_store_op
    def update_vod(self, vod: VodRow, **fields) -> VodRow:
        for key, value in fields.items():
            setattr(vod, key, value)
        self.session.flush()
        return vod

    @_store_op
    def delete_vod(self, vod: VodRow) -> None:
        self.session.delete(vod)
        self.session.flush()

    # ---- schedule entries: reads ---------------------------------------

    def _entries(self, channel_id: str):
        return self.session.query(ScheduleRow).filter(ScheduleRow.channel_id == channel_id)

    def _active(self, channel_id: str):
        return self._entries(channel_id).filter(ScheduleRow.is_active.is_(True))

    @_store_op
    def find_entry(self, entry_id: str) -> Optional[ScheduleRow]:
        return self.session.get(ScheduleRow, entry_id)

    def get_entry(self, entry_id: str) -> ScheduleRow:
        entry = self.find_entry(entry_id)
        if entry is None:
            raise NotFound(f"Schedule entry not found: {entry_id}")
        return entry

    @_store_op
    def list_entries(self, channel_id: str) -> list[ScheduleRow]:
        return self._entries(channel_id).order_by(ScheduleRow.position).all()

    @_store_op
    def last_entry_by_end(self, channel_id: str) -> Optional[ScheduleRow]:
        return (
            self._entries(channel_id)
            .order_by(ScheduleRow.scheduled_end.desc(), ScheduleRow.position.desc())
            .first()
        )

    @_store_op
    def max_position(self, channel_id: str) -> int:
        value = (
            self.session.query(func.max(ScheduleRow.position))
            .filter(ScheduleRow.channel_id == channel_id)
            .scalar()
        )
        return value or 0

    @_store_op
    def active_entries_from(self, channel_id: str, from_position: int) -> list[ScheduleRow]:
        return (
            self._active(channel_id)
            .filter(ScheduleRow.position >= from_position)
            .order_by(ScheduleRow.position)
            .all()
        )

    @_store_op
    def entry_at_position(self, channel_id: str, position: int) -> Optional[ScheduleRow]:
        return self._entries(channel_id).filter(ScheduleRow.position == position).first()

    @_store_op
    def on_air_entry(self, channel_id: str, now: datetime) -> Optional[ScheduleRow]:
        # Both bounds inclusive; overlaps resolve to the earliest start.
        return (
            self._active(channel_id)
            .filter(ScheduleRow.scheduled_start <= now, ScheduleRow.scheduled_end >= now)
            .order_by(ScheduleRow.scheduled_start, ScheduleRow.position)
            .first()
        )

    @_store_op
    def next_entry(self, channel_id: str, now: datetime) -> Optional[ScheduleRow]:
        return (
            self._active(channel_id)
            .filter(ScheduleRow.scheduled_start > now)
            .order_by(ScheduleRow.scheduled_start, ScheduleRow.position)
            .first()
        )

    @_store_op
    def first_active_entry(self, channel_id: str) -> Optional[ScheduleRow]:
        return self._active(channel_id).order_by(ScheduleRow.position).first()

    # ---- schedule entries: writes --------------------------------------

    @_store_op
    def add_entry(self, **fields) -> ScheduleRow:
        entry = ScheduleRow(**fields)
        self.session.add(entry)
        self.session.flush()
        return entry

    @_store_op
    def update_entry(self, entry: ScheduleRow, **fields) -> ScheduleRow:
        for key, value in fields.items():
            setattr(entry, key, value)
        self.session.flush()
        return entry

    @_store_op
    def delete_entry(self, entry: ScheduleRow) -> None:
        self.session.delete(entry)
        self.session.flush()

    @_store_op
    def retime_entries(
        self, timings: Sequence[tuple[ScheduleRow, datetime, datetime]],
    ) -> list[ScheduleRow]:
        """Write new start/end pairs for many entries in one flush."""
        updated = []
        for entry, start, end in timings:
            entry.scheduled_start = start
            entry.scheduled_end = end
            updated.append(entry)
        self.session.flush()
        return updated

    @_store_op
    def assign_positions(self, ordered: Sequence[ScheduleRow]) -> list[ScheduleRow]:
        """Renumber ``ordered`` as 1..N without tripping the unique position index."""
        for i, entry in enumerate(ordered, start=1):
            entry.position = -i
        self.session.flush()
        for i, entry in enumerate(ordered, start=1):
            entry.position = i
        self.session.flush()
        return list(ordered)
