"""GPIO interrupt source protocol definition.

An interrupt source hands out input lines configured for falling-edge
detection. The PCF857x pulls its open-drain INT output low whenever an input
changes, so a single host GPIO can serve several expanders wired together.
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from typing import Any, Callable, Protocol

InterruptHandler = Callable[[], None]
"""Callback invoked once per detected falling edge."""


class GpioInterruptSource(Protocol):
    """Protocol for acquiring and watching edge-triggered GPIO lines."""

    def acquire_line(self, line_id: int) -> Any:
        """Claim ``line_id`` as an input with falling-edge detection.

        Args:
            line_id: GPIO line number (BCM numbering on a Raspberry Pi).

        Returns:
            Opaque handle passed to :meth:`watch`, :meth:`unwatch` and
            :meth:`release`.
        """
        ...

    def watch(self, handle: Any, handler: InterruptHandler) -> None:
        """Call ``handler`` on every falling edge of the line.

        Args:
            handle: Handle returned by :meth:`acquire_line`.
            handler: Callback to register.
        """
        ...

    def unwatch(self, handle: Any, handler: InterruptHandler) -> None:
        """Stop calling ``handler`` for the line.

        Args:
            handle: Handle returned by :meth:`acquire_line`.
            handler: Callback previously passed to :meth:`watch`.
        """
        ...

    def release(self, handle: Any) -> None:
        """Release the line back to the system.

        Args:
            handle: Handle returned by :meth:`acquire_line`.
        """
        ...
