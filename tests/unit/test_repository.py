"""
Unit tests for PostgresTaskRepository (write path publishes after commit).
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest

from task_index_sync.errors import ConstraintViolation, TaskNotFound
from task_index_sync.models import TaskStatus
from task_index_sync.repository import PostgresTaskRepository

T0 = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)


def _row(**kw):
    row = {
        "id": 42,
        "title": "buy milk",
        "content": "",
        "status": "TODO",
        "created_at": T0,
        "updated_at": T0,
    }
    row.update(kw)
    return row


def _mock_pool(fetchone=None, execute_error=None):
    cur = MagicMock()
    cur.execute = AsyncMock(side_effect=execute_error)
    cur.fetchone = AsyncMock(return_value=fetchone)
    conn = MagicMock()
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=cur)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=False)
    conn.commit = AsyncMock()
    pool = MagicMock()
    pool.connection.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.connection.return_value.__aexit__ = AsyncMock(return_value=False)
    return pool, conn, cur


class Published:
    def __init__(self, fail=False):
        self.fail = fail
        self.mutations = []

    async def __call__(self, m):
        if self.fail:
            raise RuntimeError("channel closed")
        self.mutations.append(m)


@pytest.mark.asyncio
async def test_create_commits_then_publishes():
    pool, conn, cur = _mock_pool(fetchone=_row())
    published = Published()
    repo = PostgresTaskRepository(pool, published)

    m = await repo.create("buy milk")

    assert m.id == 42
    assert m.status is TaskStatus.TODO
    conn.commit.assert_awaited_once()
    params = cur.execute.call_args[0][1]
    assert params["title"] == "buy milk"
    assert params["status"] == "TODO"
    assert [p.id for p in published.mutations] == [42]


@pytest.mark.asyncio
async def test_update_status_publishes_new_state():
    pool, _, cur = _mock_pool(fetchone=_row(status="COMPLETED"))
    published = Published()
    repo = PostgresTaskRepository(pool, published)

    m = await repo.update_status(42, "COMPLETED")

    assert m.status is TaskStatus.COMPLETED
    assert cur.execute.call_args[0][1] == {"id": 42, "status": "COMPLETED"}
    assert published.mutations[0].status is TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_update_title_missing_row_raises_not_found():
    pool, _, _ = _mock_pool(fetchone=None)
    published = Published()
    repo = PostgresTaskRepository(pool, published)

    with pytest.raises(TaskNotFound):
        await repo.update_title(999, "new title")
    assert published.mutations == []


@pytest.mark.asyncio
async def test_publish_failure_does_not_reach_caller():
    pool, _, _ = _mock_pool(fetchone=_row(title="renamed"))
    repo = PostgresTaskRepository(pool, Published(fail=True))

    m = await repo.update_title(42, "renamed")
    assert m.title == "renamed"


@pytest.mark.asyncio
async def test_db_errors_are_mapped_and_nothing_published():
    pool, conn, _ = _mock_pool(execute_error=psycopg.errors.CheckViolation("ck_tasks_status"))
    published = Published()
    repo = PostgresTaskRepository(pool, published)

    with pytest.raises(ConstraintViolation):
        await repo.create("x")
    conn.commit.assert_not_awaited()
    assert published.mutations == []


@pytest.mark.asyncio
async def test_invalid_input_rejected_before_query():
    pool, _, cur = _mock_pool(fetchone=_row())
    repo = PostgresTaskRepository(pool, Published())
    with pytest.raises(ValueError):
        await repo.update_title(42, "")
    with pytest.raises(ValueError):
        await repo.update_status(42, "ARCHIVED")
    cur.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_content_publishes_new_content():
    pool, conn, cur = _mock_pool(fetchone=_row(content="2 litres, semi-skimmed"))
    published = Published()
    repo = PostgresTaskRepository(pool, published)

    m = await repo.update_content(42, "2 litres, semi-skimmed")

    assert m.content == "2 litres, semi-skimmed"
    assert cur.execute.call_args[0][1] == {"id": 42, "content": "2 litres, semi-skimmed"}
    conn.commit.assert_awaited_once()
    assert published.mutations[0].content == "2 litres, semi-skimmed"


@pytest.mark.asyncio
async def test_update_content_missing_row_raises_not_found():
    pool, _, _ = _mock_pool(fetchone=None)
    published = Published()
    repo = PostgresTaskRepository(pool, published)

    with pytest.raises(TaskNotFound):
        await repo.update_content(999, "anything")
    assert published.mutations == []
