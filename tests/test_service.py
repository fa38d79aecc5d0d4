"""E) Service plumbing — reorder, entry edits, cascades, locking and store failures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from fastchannel.clock import to_utc
from fastchannel.errors import InvalidInput, NotFound, StoreFailure
from fastchannel.locks import channel_lock, lock_name
from tests.harness import T0


@pytest.fixture()
def three(service, make_channel, make_vod):
    ch = make_channel()
    entries = [service.add_to_schedule(ch.id, make_vod(duration_ms=d).id)
               for d in (60_000, 120_000, 180_000)]
    return ch, entries


class TestReorder:
    def test_reorder_assigns_positions_in_list_order(self, service, store, three):
        ch, (a, b, c) = three
        service.reorder(ch.id, [c.id, a.id, b.id])

        store.session.expire_all()
        assert [e.id for e in store.list_entries(ch.id)] == [c.id, a.id, b.id]
        assert [e.position for e in store.list_entries(ch.id)] == [1, 2, 3]

    def test_reorder_then_rebalance_is_gapless(self, service, store, three):
        ch, (a, b, c) = three
        service.reorder(ch.id, [c.id, a.id, b.id])
        service.rebalance_schedule(ch.id)

        store.session.expire_all()
        entries = store.list_entries(ch.id)
        assert entries[0].id == c.id
        assert entries[0].scheduled_start == T0
        for prev, cur in zip(entries, entries[1:]):
            assert cur.scheduled_start == prev.scheduled_end

    def test_reorder_keeps_times(self, service, store, three):
        ch, (a, b, c) = three
        before = {e.id: (e.scheduled_start, e.scheduled_end) for e in (a, b, c)}
        service.reorder(ch.id, [b.id, c.id, a.id])
        store.session.expire_all()
        after = {e.id: (e.scheduled_start, e.scheduled_end) for e in store.list_entries(ch.id)}
        assert after == before

    def test_partial_list_rejected(self, service, three):
        ch, (a, b, _) = three
        with pytest.raises(InvalidInput):
            service.reorder(ch.id, [b.id, a.id])

    def test_duplicates_rejected(self, service, three):
        ch, (a, b, c) = three
        with pytest.raises(InvalidInput):
            service.reorder(ch.id, [a.id, a.id, b.id])

    def test_foreign_entry_rejected(self, service, make_channel, make_vod, three):
        ch, (a, b, _) = three
        other = make_channel(name="Other")
        foreign = service.add_to_schedule(other.id, make_vod().id)
        with pytest.raises(NotFound):
            service.reorder(ch.id, [a.id, b.id, foreign.id])


class TestEntryEdits:
    def test_update_times_and_vod(self, service, store, make_vod, three):
        _, (a, _, _) = three
        replacement = make_vod(duration_ms=5_000)
        start = T0 + timedelta(days=1)

        service.update_entry(a.id, {
            "vod_id": replacement.id,
            "scheduled_start": start,
            "scheduled_end": start + timedelta(seconds=1),
        })

        store.session.expire_all()
        entry = store.get_entry(a.id)
        assert entry.vod_id == replacement.id
        assert entry.scheduled_start == start

    def test_move_to_free_position(self, service, store, three):
        ch, (a, _, _) = three
        service.update_entry(a.id, {"position": 7})
        store.session.expire_all()
        assert store.entry_at_position(ch.id, 7).id == a.id

    def test_move_onto_taken_position_rejected(self, service, store, three):
        ch, (a, b, _) = three
        with pytest.raises(InvalidInput, match="already taken"):
            service.update_entry(a.id, {"position": b.position})
        store.session.expire_all()
        assert store.entry_at_position(ch.id, 1).id == a.id

    def test_keeping_own_position_is_allowed(self, service, three):
        _, (a, _, _) = three
        assert service.update_entry(a.id, {"position": 1}).position == 1

    def test_update_unknown_vod(self, service, three):
        _, (a, _, _) = three
        with pytest.raises(NotFound):
            service.update_entry(a.id, {"vod_id": "missing"})

    def test_update_unknown_entry(self, service):
        with pytest.raises(NotFound):
            service.update_entry("missing", {"is_active": False})

    def test_delete_entry_leaves_gap_until_rebalanced(self, service, store, three):
        ch, (a, b, c) = three
        service.delete_entry(b.id)

        store.session.expire_all()
        remaining = store.list_entries(ch.id)
        assert [e.id for e in remaining] == [a.id, c.id]
        assert remaining[1].scheduled_start > remaining[0].scheduled_end

        service.rebalance_schedule(ch.id)
        store.session.expire_all()
        remaining = store.list_entries(ch.id)
        assert remaining[1].scheduled_start == remaining[0].scheduled_end

    def test_next_insert_after_gap_uses_max_position(self, service, make_vod, three):
        ch, (_, b, _) = three
        service.delete_entry(b.id)
        entry = service.add_to_schedule(ch.id, make_vod().id)
        assert entry.position == 4


class TestCascades:
    def test_deleting_channel_deletes_entries(self, service, store, three):
        ch, entries = three
        service.delete_channel(ch.id)
        for entry in entries:
            assert store.find_entry(entry.id) is None

    def test_deleting_vod_deletes_its_entries(self, service, store, three):
        ch, (a, b, c) = three
        service.delete_vod(b.vod_id)
        store.session.expire_all()
        assert [e.id for e in store.list_entries(ch.id)] == [a.id, c.id]


class TestChannelStatus:
    def test_online_within_threshold(self, service, store, make_channel):
        ch = make_channel()
        store.update_channel(ch, last_webhook_call=T0)
        status = service.channel_status(ch.id, now=T0 + timedelta(seconds=30))
        assert status["is_online"] is True
        assert status["seconds_since_last_webhook"] == 30

    def test_offline_after_threshold(self, service, store, make_channel):
        ch = make_channel()
        store.update_channel(ch, last_webhook_call=T0)
        status = service.channel_status(ch.id, now=T0 + timedelta(minutes=10))
        assert status["is_online"] is False

    def test_never_polled(self, service, make_channel):
        ch = make_channel()
        status = service.channel_status(ch.id, now=T0)
        assert status["is_online"] is False
        assert status["last_webhook_call"] is None


class TestLocking:
    def test_busy_channel_fails_with_store_failure(self, service, fake_redis, make_channel, make_vod):
        ch = make_channel()
        vod = make_vod()
        held = fake_redis.lock(lock_name(ch.id), timeout=30)
        assert held.acquire(blocking=False)
        try:
            with pytest.raises(StoreFailure):
                service.add_to_schedule(ch.id, vod.id)
        finally:
            held.release()

    def test_other_channels_not_blocked(self, service, fake_redis, make_channel, make_vod):
        busy = make_channel(name="Busy")
        free = make_channel(name="Free")
        held = fake_redis.lock(lock_name(busy.id), timeout=30)
        assert held.acquire(blocking=False)
        try:
            entry = service.add_to_schedule(free.id, make_vod().id)
            assert entry.position == 1
        finally:
            held.release()

    def test_lock_released_after_error(self, service, fake_redis, make_channel):
        ch = make_channel()
        with pytest.raises(NotFound):
            service.add_to_schedule(ch.id, "missing")
        with channel_lock(ch.id):
            assert fake_redis.exists(lock_name(ch.id))
        assert not fake_redis.exists(lock_name(ch.id))


class TestStoreFailures:
    def test_read_errors_become_store_failure(self, store, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store.session, "get", boom)
        with pytest.raises(StoreFailure):
            store.get_channel("anything")

    def test_commit_errors_roll_back(self, service, store, make_channel, make_vod, monkeypatch):
        ch = make_channel()
        vod = make_vod()

        def boom():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(store.session, "commit", boom)
        with pytest.raises(StoreFailure):
            service.add_to_schedule(ch.id, vod.id)
        monkeypatch.undo()

        assert store.list_entries(ch.id) == []


class TestClock:
    def test_naive_is_utc_and_truncated_to_ms(self):
        value = to_utc(datetime(2026, 3, 1, 20, 0, 0, 123456))
        assert value.tzinfo == timezone.utc
        assert value.microsecond == 123000

    def test_offsets_normalised(self):
        plus_two = timezone(timedelta(hours=2))
        assert to_utc(datetime(2026, 3, 1, 22, 0, tzinfo=plus_two)) == T0

    def test_stored_instants_come_back_aware(self, store, make_channel):
        ch = make_channel(schedule_start=datetime(2026, 3, 1, 20, 0, 0, 987654))
        store.session.expire_all()
        loaded = store.get_channel(ch.id)
        assert loaded.schedule_start == datetime(2026, 3, 1, 20, 0, 0, 987000, tzinfo=timezone.utc)
