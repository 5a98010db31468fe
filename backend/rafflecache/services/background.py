"""Fire-and-forget side work that must never delay or fail a read."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundRunner:
    def __init__(self) -> None:
        # Strong references; the event loop only keeps weak ones.
        self._tasks: set[asyncio.Task] = set()

    def fire_and_forget(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"task_name": task.get_name()},
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks; used on shutdown and in tests."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)
