from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal, Optional

from loguru import logger

from ..errors import ChannelClosedError, PayloadDecodeError, QueueFullError
from ..metrics import metrics_registry
from ..models import Mutation
from .channel import MutationChannel
from .dlq import DeadLetterStore

PoisonPolicy = Literal["retain", "delete"]


@dataclass
class ReplayResult:
    """Outcome of one replay pass."""

    scanned: int = 0
    replayed: int = 0
    poisoned: int = 0
    failed: int = 0
    skipped: bool = False


class ReplayScheduler:
    """Periodically moves dead-lettered mutations back onto the channel.

    The timer and the scan run as separate tasks. A tick that fires while a
    scan is still running is skipped, so at most one scan is ever in flight.
    An entry is deleted right after its mutation is re-enqueued, which makes
    delivery at-least-once.
    """

    def __init__(
        self,
        channel: MutationChannel,
        dead_letters: DeadLetterStore,
        *,
        interval_sec: float = 30.0,
        batch_size: int = 100,
        poison_policy: PoisonPolicy = "retain",
    ):
        if interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._channel = channel
        self._dlq = dead_letters
        self.interval_sec = interval_sec
        self.batch_size = batch_size
        self.poison_policy = poison_policy

        self._timer: Optional[asyncio.Task] = None
        self._scan: Optional[asyncio.Task] = None
        self._busy = False

    @property
    def alive(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        return self._busy

    def start(self) -> None:
        if self._timer is None:
            self._timer = asyncio.create_task(self._run_timer(), name="dead-letter-replay")

    async def stop(self) -> None:
        for task in (self._timer, self._scan):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._timer = None
        self._scan = None

    async def _run_timer(self) -> None:
        logger.info(f"Starting dead letter replay every {self.interval_sec}s")
        while True:
            await asyncio.sleep(self.interval_sec)
            if self._busy:
                metrics_registry.replay_ticks_skipped_total.inc()
                logger.warning("Previous dead letter scan still running, skipping tick")
                continue
            logger.debug("Resynchronising dead-lettered tasks")
            self._scan = asyncio.create_task(self.tick(), name="dead-letter-scan")

    async def tick(self) -> ReplayResult:
        """Run one replay pass (skipped if another pass is in progress)."""
        if self._busy:
            return ReplayResult(skipped=True)
        self._busy = True
        try:
            return await self._replay_batch()
        finally:
            self._busy = False

    async def _replay_batch(self) -> ReplayResult:
        result = ReplayResult()
        try:
            entries = await self._dlq.scan(self.batch_size)
        except Exception as exc:
            logger.error(f"Failed to query dead letter store: {type(exc).__name__}: {exc}")
            return result

        result.scanned = len(entries)
        for entry in entries:
            try:
                mutation = Mutation.from_payload(entry.payload)
            except PayloadDecodeError as exc:
                result.poisoned += 1
                metrics_registry.replay_entries_total.labels(outcome="poisoned").inc()
                await self._handle_poison(entry.id, entry.record_id, exc)
                continue

            mutation = mutation.model_copy(update={"id": entry.record_id})
            try:
                await self._channel.put(mutation)
            except (ChannelClosedError, QueueFullError) as exc:
                result.failed += 1
                metrics_registry.replay_entries_total.labels(outcome="failed").inc()
                logger.warning(f"Stopping replay pass, channel unavailable: {exc}")
                break

            result.replayed += 1
            metrics_registry.replay_entries_total.labels(outcome="replayed").inc()
            try:
                await self._dlq.delete(entry.id)
            except Exception as exc:
                # the entry will be replayed again on a later pass
                logger.error(
                    f"Failed to delete dead letter entry {entry.id}: {type(exc).__name__}: {exc}"
                )

        if result.scanned:
            logger.info(
                f"Dead letter replay: scanned={result.scanned} replayed={result.replayed} "
                f"poisoned={result.poisoned} failed={result.failed}"
            )
        return result

    async def _handle_poison(self, entry_id: int, record_id: int, exc: Exception) -> None:
        if self.poison_policy == "delete":
            logger.error(f"Deleting undecodable dead letter entry {entry_id} (task {record_id}): {exc}")
            try:
                await self._dlq.delete(entry_id)
            except Exception as del_exc:
                logger.error(f"Failed to delete dead letter entry {entry_id}: {del_exc}")
        else:
            logger.error(f"Skipping undecodable dead letter entry {entry_id} (task {record_id}): {exc}")
