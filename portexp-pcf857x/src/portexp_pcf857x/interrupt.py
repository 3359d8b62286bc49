"""Reference-counted registry of shared interrupt lines.

Several PCF857x ICs can wire their open-drain INT outputs to the same host
GPIO. The :class:`InterruptRegistry` makes sure such a line is acquired from
the :class:`~portexp_core.interfaces.GpioInterruptSource` exactly once, no
matter how many devices watch it, and released when the last watcher leaves.

A process-wide registry is available through :func:`default_registry`;
devices may also be given their own registry (tests do this).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from portexp_core.interfaces.interrupt import GpioInterruptSource, InterruptHandler

logger = logging.getLogger(__name__)


@dataclass
class _InterruptLine:
    """One acquired GPIO line and the handlers watching it."""

    line_id: int
    handle: Any
    source: GpioInterruptSource
    ref_count: int = 0
    handlers: list[InterruptHandler] = field(default_factory=list)


class InterruptRegistry:
    """Table mapping GPIO line ids to shared, reference-counted line handles.

    All mutation of the table happens under one lock, so two devices
    attaching to the same line concurrently cannot both acquire it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._lines: dict[int, _InterruptLine] = {}
        self._retired: list[tuple[GpioInterruptSource, Callable[[], None]]] = []

    def __contains__(self, line_id: object) -> bool:
        """Return True if ``line_id`` is currently acquired."""
        with self._lock:
            return line_id in self._lines

    def __len__(self) -> int:
        """Return the number of acquired lines."""
        with self._lock:
            return len(self._lines)

    def ref_count(self, line_id: int) -> int:
        """Return how many watchers ``line_id`` has (0 if not acquired)."""
        with self._lock:
            line = self._lines.get(line_id)
            return line.ref_count if line is not None else 0

    def attach(
        self,
        line_id: int,
        handler: InterruptHandler,
        source: GpioInterruptSource,
    ) -> None:
        """Register ``handler`` as a watcher of ``line_id``.

        The line is acquired from ``source`` on first use. Later attachments
        reuse the existing handle (and its source) and bump the reference
        count.

        Args:
            line_id: GPIO line number.
            handler: Callback invoked on every falling edge.
            source: Interrupt source used if the line must be acquired.

        Raises:
            Exception: Whatever ``source.acquire_line`` or ``source.watch``
                raised. The registry is left unchanged in that case.
        """
        with self._lock:
            line = self._lines.get(line_id)
            created = line is None
            if line is None:
                handle = source.acquire_line(line_id)
                line = _InterruptLine(line_id=line_id, handle=handle, source=source)
                logger.debug("Acquired interrupt line %d", line_id)

            try:
                line.source.watch(line.handle, handler)
            except Exception:
                if created:
                    line.source.release(line.handle)
                raise

            line.handlers.append(handler)
            line.ref_count += 1
            self._lines[line_id] = line
            logger.debug("Interrupt line %d now has %d watcher(s)", line_id, line.ref_count)

    def detach(self, line_id: int, handler: InterruptHandler) -> None:
        """Remove ``handler`` from ``line_id``, releasing the line if unused.

        Unknown lines and handlers are ignored.

        Args:
            line_id: GPIO line number.
            handler: Callback previously passed to :meth:`attach`.
        """
        with self._lock:
            line = self._lines.get(line_id)
            if line is None or handler not in line.handlers:
                return

            line.source.unwatch(line.handle, handler)
            line.handlers.remove(handler)
            line.ref_count -= 1
            if line.ref_count > 0:
                return

            del self._lines[line_id]
            line.source.release(line.handle)
            logger.debug("Released interrupt line %d", line_id)
            closers = self._pop_unused_retired()

        # Run outside the lock
        for close in closers:
            close()

    def retire(self, source: GpioInterruptSource, close: Callable[[], None]) -> None:
        """Close ``source`` once no acquired line depends on it any more.

        Used by owners that are done with a source while other devices may
        still be watching a line acquired through it. ``close`` runs
        immediately if no line uses ``source``, otherwise after the last such
        line is released by :meth:`detach`.

        Args:
            source: Interrupt source the owner no longer needs.
            close: Callback that closes ``source``.
        """
        with self._lock:
            if self._in_use(source):
                self._retired.append((source, close))
                logger.debug("Interrupt source kept open for shared lines")
                return
        close()

    def _in_use(self, source: GpioInterruptSource) -> bool:
        """Return True if an acquired line was obtained from ``source``. Lock must be held."""
        return any(line.source is source for line in self._lines.values())

    def _pop_unused_retired(self) -> list[Callable[[], None]]:
        """Remove and return closers of retired sources no line uses. Lock must be held."""
        closers = [close for source, close in self._retired if not self._in_use(source)]
        self._retired = [entry for entry in self._retired if self._in_use(entry[0])]
        return closers


_default_registry = InterruptRegistry()


def default_registry() -> InterruptRegistry:
    """Return the process-wide interrupt registry."""
    return _default_registry
