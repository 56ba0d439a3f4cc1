"""
Task write path.

Persists tasks in PostgreSQL and, after each successful commit, publishes the
committed state as a Mutation for the index sync pipeline.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from loguru import logger
from psycopg import sql as psql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .errors import TaskNotFound, map_db_error
from .models import Mutation, TaskStatus

TASK_TABLE = "tasks"
TASK_COLS = ["id", "title", "content", "status", "created_at", "updated_at"]

Publisher = Callable[[Mutation], Awaitable[None]]


def _returning() -> psql.Composed:
    return psql.SQL("RETURNING {}").format(
        psql.SQL(", ").join(psql.Identifier(c) for c in TASK_COLS)
    )


class PostgresTaskRepository:
    """Create/update tasks and emit a Mutation per committed write."""

    def __init__(self, pool: AsyncConnectionPool, publish: Publisher, table: str = TASK_TABLE):
        self.pool = pool
        self._publish = publish
        self.table = table

    async def create(
        self, title: str, content: str = "", status: TaskStatus | str = TaskStatus.TODO
    ) -> Mutation:
        draft = Mutation.new(title, content, status)
        q = psql.SQL(
            "INSERT INTO {} (title, content, status, created_at, updated_at) "
            "VALUES (%(title)s, %(content)s, %(status)s, %(created_at)s, %(updated_at)s) {}"
        ).format(psql.Identifier(self.table), _returning())
        params = draft.model_dump()
        params["status"] = draft.status.value
        row = await self._write(q, params)
        return await self._committed(row)

    async def update_title(self, task_id: int, title: str) -> Mutation:
        if not title:
            raise ValueError("title cannot be empty")
        q = psql.SQL(
            "UPDATE {} SET title = %(title)s, updated_at = now() "
            "WHERE id = %(id)s AND deleted_at IS NULL {}"
        ).format(psql.Identifier(self.table), _returning())
        row = await self._write(q, {"id": task_id, "title": title})
        if row is None:
            raise TaskNotFound(f"task {task_id} not found")
        return await self._committed(row)

    async def update_content(self, task_id: int, content: str) -> Mutation:
        q = psql.SQL(
            "UPDATE {} SET content = %(content)s, updated_at = now() "
            "WHERE id = %(id)s AND deleted_at IS NULL {}"
        ).format(psql.Identifier(self.table), _returning())
        row = await self._write(q, {"id": task_id, "content": content})
        if row is None:
            raise TaskNotFound(f"task {task_id} not found")
        return await self._committed(row)

    async def update_status(self, task_id: int, status: TaskStatus | str) -> Mutation:
        status = TaskStatus(status)
        q = psql.SQL(
            "UPDATE {} SET status = %(status)s, updated_at = now() "
            "WHERE id = %(id)s AND deleted_at IS NULL {}"
        ).format(psql.Identifier(self.table), _returning())
        row = await self._write(q, {"id": task_id, "status": status.value})
        if row is None:
            raise TaskNotFound(f"task {task_id} not found")
        return await self._committed(row)

    async def _write(self, q: psql.Composed, params: dict) -> dict | None:
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(q, params)
                    row = await cur.fetchone()
                await conn.commit()
        except Exception as e:
            raise map_db_error(e) from e
        return row

    async def _committed(self, row: dict) -> Mutation:
        mutation = Mutation.model_validate(row)
        try:
            await self._publish(mutation)
        except Exception as exc:
            # the commit already succeeded; replay cannot help here
            logger.error(f"Failed to publish task {mutation.id} for indexing: {exc}")
        return mutation
