from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from ..errors import ChannelClosedError
from ..index import IndexClient
from ..metrics import metrics_registry
from ..models import IndexDocument, Mutation
from .channel import MutationChannel
from .dlq import DeadLetterStore
from .policy import RetryPolicy


class SyncWorker:
    """Single consumer that drains the channel into the search index.

    Each mutation is upserted with bounded retry; when the retries run out it
    is written to the dead-letter store and the worker moves on. The loop
    ends cleanly once the channel is closed and drained.
    """

    def __init__(
        self,
        channel: MutationChannel,
        index_client: IndexClient,
        dead_letters: DeadLetterStore,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._channel = channel
        self._index = index_client
        self._dlq = dead_letters
        self._retry = retry_policy or RetryPolicy()
        self._task: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="index-sync-worker")

    async def wait(self) -> None:
        """Wait for the loop to finish (channel closed and drained)."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Cancel the loop without draining."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        logger.info("Index sync worker started")
        while True:
            try:
                mutation = await self._channel.get()
            except ChannelClosedError:
                logger.info("Mutation channel closed, index sync worker exiting")
                return
            metrics_registry.channel_depth.set(self._channel.size)
            await self.process(mutation)

    async def process(self, mutation: Mutation) -> bool:
        """Index one mutation; returns False if it ended up dead-lettered."""
        document = IndexDocument.from_mutation(mutation).to_json_dict()
        retries = 0
        while True:
            try:
                await self._index.upsert(mutation.id, document)
                metrics_registry.upserts_total.labels(outcome="success").inc()
                logger.debug(f"Task {mutation.id} indexed (retries={retries})")
                return True
            except Exception as exc:
                metrics_registry.upserts_total.labels(outcome="failure").inc()
                error = f"{type(exc).__name__}: {exc}"

                if not self._retry.classify_retryable(exc):
                    logger.error(f"Task {mutation.id} rejected permanently: {error}")
                    await self._dead_letter(mutation, error, retries, reason="permanent")
                    return False

                if retries >= self._retry.max_retries:
                    logger.error(
                        f"Failed to index task {mutation.id} after {retries} retries: {error}"
                    )
                    await self._dead_letter(mutation, error, retries, reason="retries_exhausted")
                    return False

                retries += 1
                delay = self._retry.delay_for(retries)
                logger.warning(
                    f"Retry {retries}/{self._retry.max_retries} for task {mutation.id} "
                    f"in {delay:.2f}s: {error}"
                )
                await asyncio.sleep(delay)

    async def _dead_letter(self, mutation: Mutation, error: str, retries: int, reason: str) -> None:
        try:
            entry_id = await self._dlq.append(mutation.id, mutation.to_payload(), error, retries)
        except Exception as exc:
            metrics_registry.dead_letter_append_failures_total.inc()
            logger.error(
                f"Failed to insert task {mutation.id} into dead letter store, "
                f"mutation lost: {type(exc).__name__}: {exc}"
            )
            return
        metrics_registry.dead_letters_total.labels(reason=reason).inc()
        logger.warning(f"Task {mutation.id} sent to dead letter store (entry {entry_id})")
