"""
Task Index Sync

Keeps a search index in step with committed task records: mutations are
pushed through an in-process channel to a worker that upserts them into
Elasticsearch, retries transient failures and parks exhausted ones in a
dead-letter store that a scheduler replays.

Usage:
    from task_index_sync import IndexSync, ElasticsearchIndexClient, FileDeadLetterStore

    async with ElasticsearchIndexClient("http://127.0.0.1:9200") as es:
        async with IndexSync(es, FileDeadLetterStore(".dlq/tasks.ndjson")) as sync:
            await sync.publish(mutation)
"""

from .errors import (
    TaskSyncError,
    IndexWriteError,
    PayloadDecodeError,
    ChannelClosedError,
    QueueFullError,
    TaskNotFound,
)
from .models import Mutation, IndexDocument, TaskStatus
from .index import ElasticsearchIndexClient, IndexClient
from .sync import (
    IndexSync,
    MutationChannel,
    SyncWorker,
    ReplayScheduler,
    RetryPolicy,
    DeadLetterEntry,
    FileDeadLetterStore,
    PostgresDeadLetterStore,
)
from .repository import PostgresTaskRepository

__version__ = "1.0.0"
__all__ = [
    "TaskSyncError",
    "IndexWriteError",
    "PayloadDecodeError",
    "ChannelClosedError",
    "QueueFullError",
    "TaskNotFound",
    "Mutation",
    "IndexDocument",
    "TaskStatus",
    "ElasticsearchIndexClient",
    "IndexClient",
    "IndexSync",
    "MutationChannel",
    "SyncWorker",
    "ReplayScheduler",
    "RetryPolicy",
    "DeadLetterEntry",
    "FileDeadLetterStore",
    "PostgresDeadLetterStore",
    "PostgresTaskRepository",
]
