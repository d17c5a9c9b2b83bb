"""
Background Tasks
================

Fixed-size worker pool for fire-and-forget side effects (liveness
probes, cache flushes, ARP announcements). The worker count is fixed;
the queue is not. Submitted work has no result channel: failures are
logged and dropped.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from loguru import logger


class BackgroundTasks:
    """Detached task runner with a fixed number of workers."""

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="route-hygiene"
        )

    def submit(self, description: str, fn: Callable, *args) -> None:
        def task():
            try:
                fn(*args)
            except Exception as e:
                logger.warning(f"Background task '{description}' failed: {e}")

        try:
            self._executor.submit(task)
        except RuntimeError:
            # Pool already shut down
            logger.debug(f"Dropped background task '{description}' after shutdown")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
