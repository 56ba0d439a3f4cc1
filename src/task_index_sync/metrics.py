"""
Prometheus metrics for the index sync pipeline.
Registered in the global REGISTRY at import time.
"""

from prometheus_client import Counter, Gauge


UPSERTS_TOTAL = Counter(
    "index_sync_upserts_total",
    "Index upsert attempts by outcome",
    ["outcome"],  # success | failure
)

DEAD_LETTERS_TOTAL = Counter(
    "index_sync_dead_letters_total",
    "Mutations written to the dead-letter store",
    ["reason"],  # retries_exhausted | permanent | overflow
)

DEAD_LETTER_APPEND_FAILURES_TOTAL = Counter(
    "index_sync_dead_letter_append_failures_total",
    "Mutations lost because the dead-letter store rejected them",
)

REPLAY_ENTRIES_TOTAL = Counter(
    "index_sync_replay_entries_total",
    "Dead-letter entries handled by the replay scheduler",
    ["outcome"],  # replayed | poisoned | failed
)

REPLAY_TICKS_SKIPPED_TOTAL = Counter(
    "index_sync_replay_ticks_skipped_total",
    "Replay ticks skipped because a scan was still running",
)

CHANNEL_DEPTH = Gauge(
    "index_sync_channel_depth",
    "Mutations waiting in the channel",
)


class MetricsRegistry:
    """Centralized access to the index sync metrics."""

    upserts_total = UPSERTS_TOTAL
    dead_letters_total = DEAD_LETTERS_TOTAL
    dead_letter_append_failures_total = DEAD_LETTER_APPEND_FAILURES_TOTAL
    replay_entries_total = REPLAY_ENTRIES_TOTAL
    replay_ticks_skipped_total = REPLAY_TICKS_SKIPPED_TOTAL
    channel_depth = CHANNEL_DEPTH


# Singleton instance
metrics_registry = MetricsRegistry()
