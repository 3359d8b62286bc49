"""Typed success/failure outcome of an asynchronous task.

A :class:`TaskOutcome` is what the task queue records for every task it runs.
It holds either the task's return value or the exception it raised, and can
settle an :class:`asyncio.Future` handed to the original caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class TaskOutcome(Generic[T]):
    """Result of running one task: a value or an error, never both.

    Attributes:
        value: Return value of the task (None if it failed).
        error: Exception raised by the task, or None on success.

    Example:
        >>> outcome = await TaskOutcome.capture(lambda: bus.read_bytes(0x20, 1))
        >>> if outcome.ok:
        ...     print(outcome.value)
    """

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Return True if the task completed without raising."""
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the captured error.

        Returns:
            The task's return value.

        Raises:
            Exception: The exception the task raised.
        """
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def settle(self, future: asyncio.Future[T]) -> None:
        """Resolve or reject ``future`` with this outcome.

        Futures that are already done (for example because the caller
        cancelled its wait) are left untouched and the outcome is dropped.

        Args:
            future: Future to settle.
        """
        if future.done():
            return
        if self.error is not None:
            future.set_exception(self.error)
        else:
            future.set_result(self.value)  # type: ignore[arg-type]

    @classmethod
    async def capture(cls, task: Callable[[], Awaitable[T]]) -> TaskOutcome[T]:
        """Run ``task`` and capture its result or exception.

        Exceptions raised while creating the awaitable are captured the same
        way as exceptions raised while awaiting it. Cancellation is not
        captured and propagates to the caller.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            The outcome of the task.
        """
        try:
            value = await task()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            return cls(error=exc)
        return cls(value=value)
