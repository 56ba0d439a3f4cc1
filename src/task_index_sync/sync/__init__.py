"""Index synchronization pipeline

Committed task mutations flow write path -> channel -> worker -> search index:
- MutationChannel (bounded FIFO, overflow strategies, terminal close)
- RetryPolicy (fixed delay by default, single retryable/permanent decision point)
- SyncWorker (bounded retry, dead-letter on exhaustion)
- Dead-letter stores (PostgreSQL table or NDJSON file)
- ReplayScheduler (periodic re-enqueue, skip-if-busy)
- IndexSync lifecycle & health
"""

from .channel import MutationChannel, OverflowStrategy
from .policy import RetryPolicy, retry_everything, http_status_classifier
from .dlq import (
    DeadLetterEntry,
    DeadLetterStore,
    FileDeadLetterStore,
    PostgresDeadLetterStore,
)
from .worker import SyncWorker
from .replay import ReplayScheduler, ReplayResult
from .index_sync import IndexSync, SyncHealth

__all__ = [
    # channel
    "MutationChannel",
    "OverflowStrategy",
    # policies
    "RetryPolicy",
    "retry_everything",
    "http_status_classifier",
    # dead letters
    "DeadLetterEntry",
    "DeadLetterStore",
    "FileDeadLetterStore",
    "PostgresDeadLetterStore",
    # runtime
    "SyncWorker",
    "ReplayScheduler",
    "ReplayResult",
    "IndexSync",
    "SyncHealth",
]
