from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class DebouncedSearch:
    """
    Separate raw keystrokes from the search term actually sent to queries.

    Every ``set_input`` restarts a ``delay`` second timer; only when it elapses
    undisturbed does ``committed_search`` take the raw value. ``on_commit`` may
    be a plain callable or a coroutine function; coroutines are scheduled on the
    loop and tracked until they finish.
    """

    def __init__(
        self,
        delay: float = 0.5,
        on_commit: Optional[Callable[[str], Any]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self.on_commit = on_commit
        self.raw_input = ""
        self.committed_search = ""
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Future] = set()
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def set_input(self, text: str) -> None:
        if self._closed:
            raise RuntimeError("DebouncedSearch is closed")
        self.raw_input = text
        self._cancel_pending()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._commit)

    def clear(self) -> None:
        """Reset the box; the empty term still goes through the timer."""
        self.set_input("")

    def flush(self) -> None:
        """Commit the current raw input now, skipping the remaining delay."""
        if self._handle is None:
            return
        self._cancel_pending()
        self._commit()

    def close(self) -> None:
        self._cancel_pending()
        self._closed = True

    async def wait_idle(self) -> None:
        """Wait until callbacks scheduled by earlier commits have finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _commit(self) -> None:
        self._handle = None
        if self._closed:
            return
        self.committed_search = self.raw_input
        if self.on_commit is None:
            return
        result = self.on_commit(self.committed_search)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Search commit callback failed: %s", task.exception())
