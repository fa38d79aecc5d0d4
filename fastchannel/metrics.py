"""Prometheus-style metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram, generate_latest

# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

WEBHOOK_POLLS = Counter(
    "fastchannel_webhook_polls_total",
    "Playout engine polls answered",
    ["result"],  # on_air | next | loop_back | not_found
)

LOOP_BACKS = Counter(
    "fastchannel_loop_backs_total",
    "Timelines that ran out and were re-anchored at position 1",
)

REBALANCES = Counter(
    "fastchannel_rebalances_total",
    "Rebalance runs",
    ["trigger"],  # admin | schedule_start | loop_back | sync
)

SCHEDULE_SYNCS = Counter(
    "fastchannel_schedule_syncs_total",
    "Channels re-anchored to their first engine poll",
)

ENTRIES_ADDED = Counter(
    "fastchannel_schedule_entries_added_total",
    "Schedule entries created",
    ["mode"],  # back_to_back | anchored | manual
)

# ---------------------------------------------------------------------------
# Histograms
# ---------------------------------------------------------------------------

REBALANCED_ENTRIES = Histogram(
    "fastchannel_rebalanced_entries",
    "Entries re-timed per rebalance",
    buckets=[0, 1, 5, 10, 25, 50, 100, 250, 500],
)

POLL_TIME = Histogram(
    "fastchannel_poll_seconds",
    "Time to answer one engine poll",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5],
)


def metrics_text() -> bytes:
    """Return Prometheus exposition text."""
    return generate_latest()
