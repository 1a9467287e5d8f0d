"""Background reward submission.

Reward triggers only enqueue a request id; one consumer task per issuer
account submits them in order. A single consumer keeps issuer sequence
numbers from racing and keeps ledger latency off the request path.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from brother_nature.rewards.ledger import RewardLedger

logger = logging.getLogger(__name__)


class RewardWorker:
    """Serial consumer of reward request ids."""

    def __init__(self, ledger: RewardLedger) -> None:
        self.ledger = ledger
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def enqueue(self, request_id: str) -> None:
        """Schedule ``request_id`` for submission. Never blocks."""
        self._queue.put_nowait(request_id)
        logger.debug("Queued reward %s (backlog %d)", request_id, self._queue.qsize())

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="reward-worker")
        logger.info("Reward worker started")

    async def stop(self) -> None:
        """Cancel the consumer.

        A submission interrupted here stays PROCESSING and is reconciled by
        ``RewardLedger.recover_interrupted`` on the next start.
        """
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Reward worker stopped")

    async def drain(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            request_id = await self._queue.get()
            try:
                await self.ledger.submit(request_id)
            except Exception:
                logger.exception("Reward job %s crashed", request_id)
            finally:
                self._queue.task_done()
