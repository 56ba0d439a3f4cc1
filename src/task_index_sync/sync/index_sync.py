from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from loguru import logger

from ..errors import ChannelClosedError, QueueFullError
from ..index import IndexClient
from ..metrics import metrics_registry
from ..models import Mutation
from .channel import MutationChannel, OverflowStrategy
from .dlq import DeadLetterStore
from .policy import RetryPolicy
from .replay import PoisonPolicy, ReplayScheduler
from .worker import SyncWorker

if TYPE_CHECKING:
    from ..config import SyncSettings


@dataclass(frozen=True)
class SyncHealth:
    worker_alive: bool
    scheduler_alive: bool
    queue_size: int
    capacity: int
    closed: bool


class IndexSync:
    """Owns the channel, the sync worker and the replay scheduler.

    Example:
        async with IndexSync(es_client, dead_letters) as sync:
            await sync.publish(mutation)
        # on exit: replay stopped, channel closed, worker drained
    """

    def __init__(
        self,
        index_client: IndexClient,
        dead_letters: DeadLetterStore,
        *,
        capacity: int = 200,
        overflow_strategy: OverflowStrategy = "block",
        retry_policy: Optional[RetryPolicy] = None,
        replay_interval_sec: float = 30.0,
        replay_batch_size: int = 100,
        poison_policy: PoisonPolicy = "retain",
    ):
        self._dlq = dead_letters
        self.channel = MutationChannel(
            capacity,
            overflow_strategy=overflow_strategy,
            drop_callback=self._on_drop,
        )
        self.worker = SyncWorker(
            self.channel, index_client, dead_letters, retry_policy=retry_policy
        )
        self.scheduler = ReplayScheduler(
            self.channel,
            dead_letters,
            interval_sec=replay_interval_sec,
            batch_size=replay_batch_size,
            poison_policy=poison_policy,
        )
        self._started = False

    @classmethod
    def from_settings(
        cls, settings: "SyncSettings", index_client: IndexClient, dead_letters: DeadLetterStore
    ) -> "IndexSync":
        return cls(
            index_client,
            dead_letters,
            capacity=settings.channel_capacity,
            overflow_strategy=settings.overflow_strategy,
            retry_policy=settings.retry_policy(),
            replay_interval_sec=settings.replay_interval_sec,
            replay_batch_size=settings.replay_batch_size,
            poison_policy=settings.poison_policy,
        )

    async def __aenter__(self) -> "IndexSync":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def start(self) -> None:
        if self._started:
            return
        self.worker.start()
        self.scheduler.start()
        self._started = True
        logger.info(f"Index sync started (capacity={self.channel.capacity})")

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop replay, close the channel and let the worker drain."""
        await self.scheduler.stop()
        self.channel.close()
        try:
            await asyncio.wait_for(self.worker.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Index sync worker did not drain within {timeout}s "
                f"({self.channel.size} mutations left), cancelling"
            )
            await self.worker.stop()
        self._started = False
        logger.info("Index sync stopped")

    async def publish(self, mutation: Mutation) -> None:
        """Hand a committed mutation to the worker; never raises sync errors."""
        try:
            await self.channel.put(mutation)
        except QueueFullError as exc:
            logger.warning(f"Mutation channel full, dead-lettering task {mutation.id}")
            await self._dead_letter_overflow(mutation, str(exc))
        except ChannelClosedError:
            logger.error(f"Index sync is stopped, task {mutation.id} not published")
        metrics_registry.channel_depth.set(self.channel.size)

    async def _on_drop(self, mutation: Mutation) -> None:
        await self._dead_letter_overflow(mutation, "dropped_by_overflow")

    async def _dead_letter_overflow(self, mutation: Mutation, error: str) -> None:
        try:
            await self._dlq.append(mutation.id, mutation.to_payload(), error, 0)
        except Exception as exc:
            metrics_registry.dead_letter_append_failures_total.inc()
            logger.error(f"Failed to dead-letter overflowed task {mutation.id}: {exc}")
            return
        metrics_registry.dead_letters_total.labels(reason="overflow").inc()

    def health(self) -> SyncHealth:
        return SyncHealth(
            worker_alive=self.worker.alive,
            scheduler_alive=self.scheduler.alive,
            queue_size=self.channel.size,
            capacity=self.channel.capacity,
            closed=self.channel.closed,
        )
