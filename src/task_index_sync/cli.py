from __future__ import annotations

import asyncio
import json
import signal
import subprocess
import sys
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import AsyncIterator, Optional

import typer
from loguru import logger
from prometheus_client import start_http_server

from .config import SyncSettings, get_settings
from .index import ElasticsearchIndexClient
from .sync import FileDeadLetterStore, IndexSync, PostgresDeadLetterStore
from .sync.dlq import DeadLetterStore

app = typer.Typer(help="Task search-index sync CLI (worker, dead letters, migrations)")


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@asynccontextmanager
async def dead_letter_store(settings: SyncSettings) -> AsyncIterator[DeadLetterStore]:
    if settings.dead_letter_backend == "file":
        yield FileDeadLetterStore(settings.dead_letter_path)
        return
    store = PostgresDeadLetterStore.from_dsn(settings.database_url, pool_max=settings.pool_max)
    await store.open()
    try:
        yield store
    finally:
        await store.aclose()


def _index_client(settings: SyncSettings) -> ElasticsearchIndexClient:
    return ElasticsearchIndexClient(
        settings.elasticsearch_url, settings.index_name, timeout=settings.index_timeout_sec
    )


# ---------------------------
# Worker
# ---------------------------


async def _serve(settings: SyncSettings) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows

    async with _index_client(settings) as es, dead_letter_store(settings) as dlq:
        async with IndexSync.from_settings(settings, es, dlq):
            logger.info("Index sync running, press Ctrl+C to stop")
            await stop.wait()
            logger.info("Shutdown requested, draining mutation channel")


@app.command()
def run():
    """Run the sync worker and the dead-letter replay scheduler until signalled."""
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.metrics_port:
        start_http_server(settings.metrics_port)
        logger.info(f"Prometheus metrics available at :{settings.metrics_port}/metrics")
    asyncio.run(_serve(settings))
    logger.success("Index sync stopped cleanly")


# ---------------------------
# Dead letters
# ---------------------------


async def _list(settings: SyncSettings, limit: int) -> list[dict]:
    async with dead_letter_store(settings) as dlq:
        entries = await dlq.scan(limit)
    return [asdict(e) for e in entries]


@app.command("dlq-list")
def dlq_list(limit: int = typer.Option(100, "--limit", help="Maximum entries to show")):
    """Print dead-letter entries as NDJSON."""
    settings = get_settings()
    configure_logging(settings.log_level)
    for row in asyncio.run(_list(settings, limit)):
        typer.echo(json.dumps(row, default=str))


async def _replay_once(settings: SyncSettings) -> dict:
    async with _index_client(settings) as es, dead_letter_store(settings) as dlq:
        async with IndexSync.from_settings(settings, es, dlq) as sync:
            result = await sync.scheduler.tick()
    return asdict(result)


@app.command("dlq-replay")
def dlq_replay():
    """Replay one batch of dead letters through the worker, then drain and exit."""
    settings = get_settings()
    configure_logging(settings.log_level)
    typer.echo(json.dumps(asyncio.run(_replay_once(settings)), indent=2))


async def _delete(settings: SyncSettings, entry_id: int) -> bool:
    async with dead_letter_store(settings) as dlq:
        return await dlq.delete(entry_id)


@app.command("dlq-delete")
def dlq_delete(entry_id: int = typer.Argument(..., help="Dead-letter entry id")):
    """Delete one dead-letter entry (e.g. a poison payload)."""
    settings = get_settings()
    configure_logging(settings.log_level)
    deleted = asyncio.run(_delete(settings, entry_id))
    typer.echo(json.dumps({"id": entry_id, "deleted": deleted}))
    if not deleted:
        raise typer.Exit(code=1)


# ---------------------------
# Schema
# ---------------------------


@app.command()
def migrate(target: str = "head", ini: Optional[str] = typer.Option(None, "--ini")):
    """Run Alembic migrations to the specified target (default: head)."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Running migrations to {target}")
    result = subprocess.run(
        ["alembic", "-c", ini or settings.alembic_ini, "upgrade", target],
        capture_output=True,
        text=True,
        cwd=Path.cwd(),
    )
    if result.returncode != 0:
        logger.error(f"Migration failed: {result.stderr}")
        raise typer.Exit(code=1)
    logger.success(f"Successfully migrated to {target}")
    if result.stdout:
        logger.info(f"Migration output: {result.stdout}")


if __name__ == "__main__":
    app()
