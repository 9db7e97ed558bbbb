"""Interval scheduler for sync and tally passes."""
import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()

HeadBlockSource = Callable[[], Awaitable[int]]
PassCallable = Callable[[int], Awaitable[object]]


class PassScheduler:
    """
    Background scheduler that runs one pass per interval.

    Every tick reads the current head block number and hands it to the pass.
    A failed pass is logged and the loop waits for the next tick; ticks never
    overlap because the loop awaits each pass before sleeping.
    """

    def __init__(
        self,
        name: str,
        run_pass: PassCallable,
        head_block_num: HeadBlockSource,
        interval_seconds: float = 180,
        run_immediately: bool = False,
    ):
        """
        Initialize the scheduler.

        Args:
            name: Name used in log lines
            run_pass: Coroutine function called with the head block number
            head_block_num: Coroutine function returning the head block number
            interval_seconds: Seconds between the end of a pass and the next tick
            run_immediately: Run the first pass on start instead of after one interval
        """
        self.name = name
        self.run_pass = run_pass
        self.head_block_num = head_block_num
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.passes_completed = 0
        self.passes_failed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the background loop."""
        if self._running:
            logger.warning("Scheduler already running", scheduler=self.name)
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Scheduler started", scheduler=self.name, interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the background loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped", scheduler=self.name)

    async def tick(self) -> bool:
        """Run a single pass. Returns True when it completed."""
        try:
            head_block_num = await self.head_block_num()
            await self.run_pass(head_block_num)
        except Exception as e:
            self.passes_failed += 1
            logger.error("Pass failed", scheduler=self.name, error=str(e), error_type=type(e).__name__)
            return False

        self.passes_completed += 1
        return True

    async def _run_loop(self):
        """Main scheduler loop."""
        if not self.run_immediately:
            await asyncio.sleep(self.interval_seconds)

        while self._running:
            await self.tick()
            await asyncio.sleep(self.interval_seconds)
