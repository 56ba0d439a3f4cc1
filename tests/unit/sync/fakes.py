"""
Test doubles for the index sync pipeline.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from task_index_sync.errors import IndexWriteError
from task_index_sync.models import Mutation, TaskStatus
from task_index_sync.sync.dlq import DeadLetterEntry

T0 = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)


def make_mutation(
    id: int = 42, title: str = "buy milk", status: TaskStatus | str = "TODO", content: str = ""
) -> Mutation:
    return Mutation(
        id=id, title=title, content=content, status=status, created_at=T0, updated_at=T0
    )


class FakeIndex:
    """Index client that fails the first N upserts, then stores documents by id."""

    def __init__(self, fail_first_n: int = 0, error: Exception | None = None):
        self._fail = fail_first_n
        self._error = error or IndexWriteError("connection refused")
        self.calls: list[tuple[int, dict[str, Any]]] = []
        self.docs: dict[int, dict[str, Any]] = {}

    async def upsert(self, doc_id: int, document: dict[str, Any]) -> None:
        self.calls.append((doc_id, document))
        if self._fail > 0:
            self._fail -= 1
            raise self._error
        self.docs[doc_id] = document


class AlwaysFailIndex(FakeIndex):
    def __init__(self, error: Exception | None = None):
        super().__init__(fail_first_n=10**9, error=error)


class MemoryDeadLetterStore:
    """In-memory dead-letter store with switchable failures and latency."""

    def __init__(self, append_delay: float = 0, scan_delay: float = 0):
        self.entries: dict[int, DeadLetterEntry] = {}
        self._next = 1
        self.append_delay = append_delay
        self.scan_delay = scan_delay
        self.fail_append = False
        self.fail_scan = False
        self.fail_delete = False
        self.scans = 0
        self.deleted: list[int] = []

    async def append(self, record_id: int, payload: str, error: str, retry_count: int) -> int:
        if self.append_delay:
            await asyncio.sleep(self.append_delay)
        if self.fail_append:
            raise RuntimeError("dead letter table unavailable")
        entry_id = self._next
        self._next += 1
        self.entries[entry_id] = DeadLetterEntry(
            id=entry_id, record_id=record_id, payload=payload, error=error, retry_count=retry_count
        )
        return entry_id

    async def scan(self, limit: int) -> list[DeadLetterEntry]:
        self.scans += 1
        if self.scan_delay:
            await asyncio.sleep(self.scan_delay)
        if self.fail_scan:
            raise RuntimeError("dead letter table unavailable")
        return [self.entries[k] for k in sorted(self.entries)][:limit]

    async def delete(self, entry_id: int) -> bool:
        if self.fail_delete:
            raise RuntimeError("dead letter table unavailable")
        self.deleted.append(entry_id)
        return self.entries.pop(entry_id, None) is not None

    def for_record(self, record_id: int) -> list[DeadLetterEntry]:
        return [e for e in self.entries.values() if e.record_id == record_id]
