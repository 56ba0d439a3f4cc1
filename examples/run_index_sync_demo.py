"""
Demo for the index sync pipeline without Elasticsearch or PostgreSQL.

Shows:
- Flaky index client with retries
- Dead letters in a local NDJSON file
- Replay scheduler repairing the index
- Prometheus metrics (exposed on :8000/metrics)
"""

import asyncio
from typing import Any

from loguru import logger
from prometheus_client import start_http_server

from task_index_sync import (
    FileDeadLetterStore,
    IndexSync,
    IndexWriteError,
    Mutation,
    RetryPolicy,
)


class FlakyIndex:
    """Fails every request during an outage window."""

    def __init__(self):
        self.outage = True
        self.docs: dict[int, dict[str, Any]] = {}

    async def upsert(self, doc_id: int, document: dict[str, Any]) -> None:
        await asyncio.sleep(0.005)  # simulate I/O
        if self.outage:
            raise IndexWriteError("simulated outage", status_code=503)
        self.docs[doc_id] = document


async def main():
    start_http_server(8000)
    logger.info("Prometheus metrics available at http://localhost:8000/metrics")

    index = FlakyIndex()
    dlq = FileDeadLetterStore(".dlq/demo_tasks.ndjson")
    retry = RetryPolicy(max_retries=3, delay_sec=0.05)

    async with IndexSync(index, dlq, retry_policy=retry, replay_interval_sec=1.0) as sync:
        for i in range(1, 6):
            m = Mutation.new(f"task {i}", status="TODO").model_copy(update={"id": i})
            await sync.publish(m)

        await asyncio.sleep(1.0)
        parked = await dlq.scan(100)
        logger.info(f"Dead letters during outage: {len(parked)}")

        index.outage = False
        logger.info("Index recovered, waiting for replay")
        await asyncio.sleep(2.5)

        h = sync.health()
        logger.info(f"Health: worker={h.worker_alive} queue={h.queue_size}/{h.capacity}")

    logger.info(f"Indexed docs: {sorted(index.docs)}")
    logger.info(f"Dead letters left: {len(await dlq.scan(100))}")


if __name__ == "__main__":
    asyncio.run(main())
