"""
Dead-letter stores for mutations that exhausted their index retries.

Both stores share the same three-operation protocol: append, a bounded scan
in ascending id order, and delete (a missing id is a no-op).
"""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from loguru import logger
from psycopg import sql as psql
from psycopg_pool import AsyncConnectionPool

from ..errors import map_db_error
from ..utils import parse_datetime, utc_now

DEAD_LETTER_TABLE = "dead_letter_tasks"


@dataclass(frozen=True)
class DeadLetterEntry:
    id: int
    record_id: int
    payload: str
    error: str
    retry_count: int
    created_at: Optional[datetime] = None


class DeadLetterStore(Protocol):
    async def append(self, record_id: int, payload: str, error: str, retry_count: int) -> int: ...

    async def scan(self, limit: int) -> list[DeadLetterEntry]: ...

    async def delete(self, entry_id: int) -> bool: ...


class FileDeadLetterStore:
    """Append-only NDJSON dead-letter file.

    Suited to single-process deployments. Deletes rewrite the file through a
    temp file + os.replace so a crash never leaves it half written.
    """

    def __init__(self, path: str | Path, *, mkdirs: bool = True):
        self.path = Path(path)
        if mkdirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._next_id: Optional[int] = None

    @staticmethod
    def _parse(line: str) -> DeadLetterEntry:
        row = json.loads(line)
        created = row.get("created_at")
        return DeadLetterEntry(
            id=int(row["id"]),
            record_id=int(row["record_id"]),
            payload=row["payload"],
            error=row.get("error", ""),
            retry_count=int(row.get("retry_count", 0)),
            created_at=parse_datetime(created) if created else None,
        )

    def _read_lines(self) -> list[tuple[Optional[DeadLetterEntry], str]]:
        """Parsed entry (None when corrupt) alongside each raw non-empty line."""
        if not self.path.exists():
            return []
        out: list[tuple[Optional[DeadLetterEntry], str]] = []
        with self.path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append((self._parse(line), line))
                except (ValueError, KeyError, TypeError, AttributeError) as exc:
                    logger.error(f"Skipping corrupt dead-letter line {lineno} in {self.path}: {exc}")
                    out.append((None, line))
        return out

    def _read_all(self) -> list[DeadLetterEntry]:
        return [entry for entry, _ in self._read_lines() if entry is not None]

    @staticmethod
    def _line(entry: DeadLetterEntry) -> str:
        row = asdict(entry)
        row["created_at"] = entry.created_at.isoformat() if entry.created_at else None
        return json.dumps(row) + "\n"

    def _append_sync(self, entry: DeadLetterEntry) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(self._line(entry))
            f.flush()
            os.fsync(f.fileno())

    def _rewrite_sync(self, lines: list[str]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def _delete_sync(self, entry_id: int) -> bool:
        lines = self._read_lines()
        # corrupt lines are carried over verbatim for manual repair
        kept = [raw for entry, raw in lines if entry is None or entry.id != entry_id]
        if len(kept) == len(lines):
            return False
        self._rewrite_sync(kept)
        return True

    async def append(self, record_id: int, payload: str, error: str, retry_count: int) -> int:
        async with self._lock:
            if self._next_id is None:
                existing = await asyncio.to_thread(self._read_all)
                self._next_id = max((e.id for e in existing), default=0) + 1
            entry = DeadLetterEntry(
                id=self._next_id,
                record_id=record_id,
                payload=payload,
                error=error,
                retry_count=retry_count,
                created_at=utc_now(),
            )
            await asyncio.to_thread(self._append_sync, entry)
            self._next_id += 1
            return entry.id

    async def scan(self, limit: int) -> list[DeadLetterEntry]:
        async with self._lock:
            entries = await asyncio.to_thread(self._read_all)
        entries.sort(key=lambda e: e.id)
        return entries[: max(0, limit)]

    async def delete(self, entry_id: int) -> bool:
        async with self._lock:
            return await asyncio.to_thread(self._delete_sync, entry_id)


class PostgresDeadLetterStore:
    """Dead-letter table in PostgreSQL, one row per failed mutation."""

    def __init__(self, pool: AsyncConnectionPool, table: str = DEAD_LETTER_TABLE):
        self.pool = pool
        self.table = table

    @classmethod
    def from_dsn(cls, dsn: str, pool_max: int = 10) -> "PostgresDeadLetterStore":
        pool = AsyncConnectionPool(conninfo=dsn, max_size=pool_max, open=False)
        return cls(pool)

    async def open(self) -> None:
        await self.pool.open()

    async def aclose(self) -> None:
        await self.pool.close()

    async def append(self, record_id: int, payload: str, error: str, retry_count: int) -> int:
        q = psql.SQL(
            "INSERT INTO {} (task_id, payload, error_msg, retry_count) "
            "VALUES (%s, %s, %s, %s) RETURNING id"
        ).format(psql.Identifier(self.table))
        try:
            async with self.pool.connection() as conn:
                cur = await conn.execute(q, (record_id, payload, error, retry_count))
                row = await cur.fetchone()
                await conn.commit()
        except Exception as e:
            raise map_db_error(e) from e
        return int(row[0])

    async def scan(self, limit: int) -> list[DeadLetterEntry]:
        q = psql.SQL(
            "SELECT id, task_id, payload, error_msg, retry_count, created_at "
            "FROM {} ORDER BY id LIMIT %s"
        ).format(psql.Identifier(self.table))
        try:
            async with self.pool.connection() as conn:
                cur = await conn.execute(q, (limit,))
                rows = await cur.fetchall()
        except Exception as e:
            raise map_db_error(e) from e
        return [
            DeadLetterEntry(
                id=int(r[0]),
                record_id=int(r[1]),
                payload=r[2] if isinstance(r[2], str) else bytes(r[2]).decode("utf-8"),
                error=r[3] or "",
                retry_count=int(r[4]),
                created_at=r[5],
            )
            for r in rows
        ]

    async def delete(self, entry_id: int) -> bool:
        q = psql.SQL("DELETE FROM {} WHERE id = %s").format(psql.Identifier(self.table))
        try:
            async with self.pool.connection() as conn:
                cur = await conn.execute(q, (entry_id,))
                deleted = cur.rowcount
                await conn.commit()
        except Exception as e:
            raise map_db_error(e) from e
        return deleted > 0
