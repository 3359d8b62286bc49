"""FIFO executor that runs asynchronous tasks strictly one at a time.

Every expander owns one :class:`TaskQueue`. All bus transactions of the
device (state writes and input polls) are submitted to it, so the device
never has two transactions on the wire at once and its in-memory state is
only ever modified by one read-modify-write at a time.

Example:
    >>> queue = TaskQueue(name="pcf8574@0x38")
    >>> first = queue.submit(lambda: bus.write_bytes(0x38, b"\\xff"))
    >>> second = queue.submit(lambda: bus.read_bytes(0x38, 1))
    >>> await first
    >>> data = await second
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from portexp_core.types.outcome import TaskOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _QueuedTask:
    """A deferred unit of work and the future reporting its outcome."""

    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class TaskQueue:
    """Serialize asynchronous tasks in submission order.

    A single drain coroutine pops tasks from the queue and awaits each one to
    completion before starting the next. The outcome of every task is
    captured as a :class:`TaskOutcome` and delivered to the future returned by
    :meth:`submit`; a failing task never stops the queue.

    There is no cancellation. If a caller stops waiting on its future, the
    task still runs when its turn comes and its outcome is discarded.

    Args:
        name: Label used in log messages.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._pending: deque[_QueuedTask] = deque()
        self._working = False
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        """Return the queue label."""
        return self._name

    def __len__(self) -> int:
        """Return the number of tasks waiting to start (excluding the running one)."""
        return len(self._pending)

    def is_empty(self) -> bool:
        """Return True if no task is running and none is queued."""
        return not self._working and not self._pending

    def submit(self, task: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Append ``task`` to the queue.

        If the queue is idle the task starts on the next iteration of the
        event loop. Must be called from within a running event loop.

        Args:
            task: Zero-argument callable returning an awaitable. It is not
                called until every previously submitted task has settled.

        Returns:
            Future resolved with the task's value or rejected with its error.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._pending.append(_QueuedTask(task=task, future=future))
        if not self._working:
            self._working = True
            self._drain_task = loop.create_task(self._drain())
        return future

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        """Submit ``task`` and wait for its result.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            The task's return value.

        Raises:
            Exception: Whatever the task raised.
        """
        return await self.submit(task)

    async def _drain(self) -> None:
        """Run queued tasks until the queue is empty."""
        item: _QueuedTask | None = None
        try:
            while self._pending:
                item = self._pending.popleft()
                outcome: TaskOutcome[Any] = await TaskOutcome.capture(item.task)
                if not outcome.ok:
                    logger.debug("Queue %s: task failed: %s", self._name, outcome.error)
                outcome.settle(item.future)
                item = None
        except asyncio.CancelledError:
            # Event loop shutdown; nothing left will ever run
            if item is not None:
                item.future.cancel()
            while self._pending:
                self._pending.popleft().future.cancel()
            raise
        finally:
            self._working = False
            self._drain_task = None
