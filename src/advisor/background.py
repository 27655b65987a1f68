"""
Background job runner for post-exchange work (titles, insight extraction).

Jobs are fire-and-forget from the caller's point of view:
    - bounded concurrency (asyncio.Semaphore)
    - retry with exponential backoff (tenacity)
    - failures are logged, never raised to the scheduler
    - in-flight tasks are strongly referenced until done
    - ``drain()`` waits for everything (shutdown, tests)
"""

import asyncio
from loguru import logger
from typing import Any, Awaitable, Callable, Optional, Set

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from infrastructure.config import (
    BACKGROUND_BACKOFF_MAX,
    BACKGROUND_BACKOFF_MIN,
    BACKGROUND_MAX_CONCURRENCY,
    BACKGROUND_RETRY_ATTEMPTS,
)

JobFactory = Callable[[], Awaitable[Any]]


class BackgroundJobRunner:
    """Runs named async jobs outside the request path."""

    def __init__(
        self,
        max_concurrency: int = BACKGROUND_MAX_CONCURRENCY,
        retry_attempts: int = BACKGROUND_RETRY_ATTEMPTS,
        backoff_min: float = BACKGROUND_BACKOFF_MIN,
        backoff_max: float = BACKGROUND_BACKOFF_MAX,
    ) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, factory: JobFactory, **log_context: Any) -> asyncio.Task:
        """
        Schedule ``factory()`` as a background job.

        ``factory`` is called once per attempt, so each retry gets a fresh
        coroutine.
        """
        task = asyncio.create_task(self._run(name, factory, log_context), name=f"bg:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, factory: JobFactory, log_context: dict) -> Optional[Any]:
        log = logger.bind(job=name, **log_context)
        async with self._semaphore:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.retry_attempts),
                    wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
                    reraise=True,
                ):
                    with attempt:
                        n = attempt.retry_state.attempt_number
                        if n > 1:
                            log.info("Retrying background job (attempt {}/{})", n, self.retry_attempts)
                        result = await factory()
                log.debug("Background job done")
                return result
            except asyncio.CancelledError:
                log.warning("Background job cancelled")
                raise
            except Exception as e:
                log.error("Background job failed after {} attempts: {}", self.retry_attempts, e)
                return None

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for all in-flight jobs, including ones they schedule."""
        while self._tasks:
            pending = set(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning("{} background jobs still running after {}s", len(not_done), timeout)
                return
