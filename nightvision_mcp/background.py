"""
Fire-and-forget dispatch of long-running NightVision operations.

Tools submit a coroutine and return to the caller immediately. The task runs
on the server's event loop after the current handler has returned; its
outcome is only logged. Callers reconcile state by polling (list-scans,
get-scan-status).
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Keeps submitted tasks alive until they settle, then discards them."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        description: str,
        coro_factory: Callable[[], Awaitable[Any]],
        on_success: Optional[Callable[[Any], None]] = None,
    ) -> str:
        """
        Schedule coro_factory() on the running loop without awaiting it.

        Args:
            description: Human-readable label used in log lines
            coro_factory: Zero-argument callable producing the coroutine to run
            on_success: Optional callback given the result, for logging only

        Returns:
            Job id used to correlate log lines
        """
        job_id = str(uuid.uuid4())
        task = asyncio.get_running_loop().create_task(
            self._execute_job(job_id, description, coro_factory, on_success)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Submitted background job {job_id}: {description}")
        return job_id

    async def _execute_job(self, job_id, description, coro_factory, on_success):
        try:
            result = await coro_factory()
        except Exception as e:
            logger.error(f"Background job {job_id} ({description}) failed: {str(e)}")
            return None

        logger.info(f"Background job {job_id} ({description}) completed")
        if on_success is not None:
            try:
                on_success(result)
            except Exception as e:
                logger.warning(f"Background job {job_id} result handler failed: {str(e)}")
        return result

    async def drain(self):
        """Wait for every pending job; used at shutdown and in tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
