"""Fire-and-forget handoff from mail sync to the rule engine."""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from email_rules.logging import get_error_logger
from email_rules.rules.errors import RuleLoadError

if TYPE_CHECKING:
    from email_rules.mail.messages import EmailMessage
    from email_rules.rules.engine import RuleEngine
    from email_rules.rules.models import ProcessingSummary

logger = logging.getLogger(__name__)


class RuleDispatcher:
    """
    Queue of (message, user) tasks processed by background workers.

    The sync pipeline calls ``submit`` for each newly inserted message and
    moves on; rule processing latency and failures never reach it. Each
    task runs ``RuleEngine.process_email`` in a worker thread.
    """

    def __init__(
        self,
        engine: "RuleEngine",
        *,
        workers: int = 4,
        max_queue: int = 0,
        on_complete: "Callable[[ProcessingSummary], None] | None" = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            engine: Engine that processes each message.
            workers: Number of concurrent worker tasks.
            max_queue: Maximum queued tasks (0 = unbounded).
            on_complete: Called with each successful ProcessingSummary.
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.engine = engine
        self.workers = workers
        self.max_queue = max_queue
        self.on_complete = on_complete

        self._queue: asyncio.Queue[tuple["EmailMessage", str]] | None = None
        self._tasks: list[asyncio.Task[None]] = []

        self.processed: int = 0
        self.failed: int = 0
        self.dropped: int = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        """Tasks waiting in the queue."""
        return self._queue.qsize() if self._queue else 0

    async def start(self) -> None:
        """Start the worker tasks (idempotent)."""
        if self.running:
            return
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        self._queue = queue
        self._tasks = [
            asyncio.create_task(self._worker(queue), name=f"rule-worker-{i}")
            for i in range(self.workers)
        ]
        logger.debug("Started %d rule workers", self.workers)

    def submit(self, email: "EmailMessage", user_id: str) -> bool:
        """
        Hand a newly synced message to the workers without waiting.

        Returns:
            True if queued, False if the dispatcher is stopped or full.
        """
        if self._queue is None or not self.running:
            logger.warning("Dispatcher not running; rules skipped for email %s", email.id)
            self.dropped += 1
            return False
        try:
            self._queue.put_nowait((email, user_id))
        except asyncio.QueueFull:
            logger.warning("Rule queue full; rules skipped for email %s", email.id)
            self.dropped += 1
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue, then stop the workers."""
        if not self.running:
            return
        await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None

    async def __aenter__(self) -> "RuleDispatcher":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            email, user_id = await queue.get()
            try:
                await self._process(email, user_id)
            finally:
                queue.task_done()

    async def _process(self, email: "EmailMessage", user_id: str) -> None:
        try:
            summary = await asyncio.to_thread(self.engine.process_email, email, user_id)
        except RuleLoadError as e:
            self.failed += 1
            logger.warning("Rules not evaluated for email %s: %s", email.id, e)
            return
        except Exception:
            self.failed += 1
            get_error_logger().exception("Rule processing crashed for email %s", email.id)
            return

        self.processed += 1
        if self.on_complete is not None:
            try:
                self.on_complete(summary)
            except Exception:
                logger.exception("on_complete callback failed for email %s", email.id)
