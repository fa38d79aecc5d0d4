"""B) Rebalancer — gapless re-timing, idempotence, duration preservation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from fastchannel.clock import elapsed_ms
from fastchannel.errors import InvalidInput, NotFound
from tests.harness import T0, ms


@pytest.fixture()
def scattered(service, make_channel, make_vod):
    """Channel with three manually placed, gappy entries."""
    ch = make_channel()
    vods = [make_vod(duration_ms=d) for d in (600_000, 300_000, 120_000)]
    for i, vod in enumerate(vods):
        start = T0 + timedelta(hours=i * 2)
        service.add_to_schedule(ch.id, vod.id, start=start, end=start + ms(5), back_to_back=False)
    return ch, vods


def _timeline(store, channel_id):
    store.session.expire_all()
    return [e for e in store.list_entries(channel_id) if e.is_active]


class TestRebalance:
    def test_no_gaps_after_rebalance(self, service, store, scattered):
        ch, _ = scattered
        service.rebalance_schedule(ch.id)

        entries = _timeline(store, ch.id)
        assert entries[0].scheduled_start == T0
        for prev, cur in zip(entries, entries[1:]):
            assert cur.scheduled_start == prev.scheduled_end

    def test_durations_come_from_vods(self, service, store, scattered):
        ch, vods = scattered
        service.rebalance_schedule(ch.id)

        for entry, vod in zip(_timeline(store, ch.id), vods):
            assert elapsed_ms(entry.scheduled_start, entry.scheduled_end) == vod.duration_ms

    def test_idempotent(self, service, store, scattered):
        ch, _ = scattered
        service.rebalance_schedule(ch.id)
        first = [(e.scheduled_start, e.scheduled_end) for e in _timeline(store, ch.id)]
        service.rebalance_schedule(ch.id)
        second = [(e.scheduled_start, e.scheduled_end) for e in _timeline(store, ch.id)]
        assert first == second

    def test_positions_untouched(self, service, store, scattered):
        ch, _ = scattered
        before = [(e.id, e.position) for e in _timeline(store, ch.id)]
        service.rebalance_schedule(ch.id)
        assert [(e.id, e.position) for e in _timeline(store, ch.id)] == before

    def test_suffix_anchors_on_previous_end(self, service, store, scattered):
        ch, _ = scattered
        prev = store.entry_at_position(ch.id, 1)
        untouched = (prev.scheduled_start, prev.scheduled_end)

        service.rebalance_schedule(ch.id, 2)

        entries = _timeline(store, ch.id)
        assert (entries[0].scheduled_start, entries[0].scheduled_end) == untouched
        assert entries[1].scheduled_start == entries[0].scheduled_end
        assert entries[2].scheduled_start == entries[1].scheduled_end

    def test_suffix_without_previous_anchors_on_now(self, service, store, scattered):
        ch, _ = scattered
        service.delete_entry(store.entry_at_position(ch.id, 1).id)
        now = T0 + timedelta(days=2)

        service.rebalance_schedule(ch.id, 2, now=now)

        assert _timeline(store, ch.id)[0].scheduled_start == now

    def test_no_schedule_start_anchors_on_now(self, service, store, make_channel, make_vod):
        ch = make_channel(schedule_start=None)
        vod = make_vod(duration_ms=1_000)
        service.add_to_schedule(ch.id, vod.id, now=T0)
        now = T0 + timedelta(minutes=30)

        service.rebalance_schedule(ch.id, now=now)

        assert _timeline(store, ch.id)[0].scheduled_start == now

    def test_inactive_entries_skipped(self, service, store, scattered):
        ch, _ = scattered
        middle = store.entry_at_position(ch.id, 2)
        service.update_entry(middle.id, {"is_active": False})
        frozen = (middle.scheduled_start, middle.scheduled_end)

        service.rebalance_schedule(ch.id)

        active = _timeline(store, ch.id)
        assert [e.position for e in active] == [1, 3]
        assert active[1].scheduled_start == active[0].scheduled_end
        middle = store.get_entry(middle.id)
        assert (middle.scheduled_start, middle.scheduled_end) == frozen

    def test_empty_channel_is_noop(self, service, make_channel):
        ch = make_channel()
        assert service.rebalance_schedule(ch.id) == []

    def test_position_below_one_rejected(self, service, make_channel):
        ch = make_channel()
        with pytest.raises(InvalidInput):
            service.rebalance_schedule(ch.id, 0)

    def test_unknown_channel(self, service):
        with pytest.raises(NotFound):
            service.rebalance_schedule("missing")


class TestDurationStaleness:
    def test_duration_edit_is_stale_until_rebalanced(self, service, store, make_channel, make_vod):
        ch = make_channel()
        a = make_vod(duration_ms=600_000)
        b = make_vod(duration_ms=300_000)
        service.add_to_schedule(ch.id, a.id)
        service.add_to_schedule(ch.id, b.id)

        service.update_vod(a.id, {"duration_ms": 60_000})
        entries = _timeline(store, ch.id)
        assert entries[0].scheduled_end == T0 + ms(600_000)

        service.rebalance_schedule(ch.id)
        entries = _timeline(store, ch.id)
        assert entries[0].scheduled_end == T0 + ms(60_000)
        assert entries[1].scheduled_start == T0 + ms(60_000)
        assert entries[1].scheduled_end == T0 + ms(360_000)
