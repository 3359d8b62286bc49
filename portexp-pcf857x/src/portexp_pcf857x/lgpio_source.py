"""GPIO interrupt source built on lgpio.

Claims host GPIO lines for falling-edge alerts with the lgpio library, which
works on the Raspberry Pi 5 (RP1) as well as earlier models. lgpio reports
edges on its own notification thread; handlers are handed over to the asyncio
event loop that was running when the line was acquired, so device code only
ever runs on the loop thread.

Example:
    >>> source = LgpioInterruptSource(chip=0)
    >>> source.open()
    >>> pcf = Pcf8574(bus, 0x20, True, interrupt_source=source)
    >>> pcf.enable_interrupt(17)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from portexp_core.errors import StateError
from portexp_core.interfaces.interrupt import InterruptHandler

logger = logging.getLogger(__name__)

# lgpio reports level 0 for a falling edge, 1 for rising, 2 for a watchdog timeout
_LEVEL_LOW = 0


@dataclass
class LgpioLine:
    """Handle of a line claimed through :class:`LgpioInterruptSource`.

    Attributes:
        line_id: BCM GPIO number.
        loop: Event loop receiving the edge notifications, if any.
        callback: lgpio callback object (cancelled on release).
        handlers: Registered interrupt handlers.
    """

    line_id: int
    loop: asyncio.AbstractEventLoop | None = None
    callback: Any = None
    handlers: list[InterruptHandler] = field(default_factory=list)


class LgpioInterruptSource:
    """Implementation of :class:`~portexp_core.interfaces.GpioInterruptSource`.

    Args:
        chip: GPIO chip number (default 0 for main GPIO).
    """

    def __init__(self, chip: int = 0) -> None:
        self._chip = chip
        self._handle: int | None = None
        self._lgpio: Any = None
        self._lines: dict[int, LgpioLine] = {}
        self._lock = threading.Lock()

    @property
    def chip(self) -> int:
        """Return the GPIO chip number."""
        return self._chip

    @property
    def is_open(self) -> bool:
        """Return True if the GPIO chip is open."""
        return self._handle is not None

    def open(self) -> None:
        """Open the GPIO chip.

        Raises:
            ImportError: If lgpio is not available.
            RuntimeError: If the chip cannot be opened.
        """
        if self._handle is not None:
            return

        try:
            import lgpio  # type: ignore[import-not-found]  # pylint: disable=import-outside-toplevel

            self._lgpio = lgpio
        except ImportError as exc:
            raise ImportError(
                "lgpio library is not installed. Install with: pip install lgpio"
            ) from exc

        try:
            self._handle = lgpio.gpiochip_open(self._chip)
        except Exception as exc:
            raise RuntimeError(f"Failed to open GPIO chip {self._chip}: {exc}") from exc
        logger.debug("Opened GPIO chip %d", self._chip)

    def close(self) -> None:
        """Release all lines and close the GPIO chip."""
        if self._handle is None:
            return

        for line in list(self._lines.values()):
            self.release(line)

        try:
            self._lgpio.gpiochip_close(self._handle)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.warning("Error closing GPIO chip %d", self._chip, exc_info=True)
        self._handle = None

    def acquire_line(self, line_id: int) -> LgpioLine:
        """Claim ``line_id`` as an input with falling-edge alerts.

        Opens the chip if necessary.

        Args:
            line_id: BCM GPIO number.

        Returns:
            Handle for the claimed line.

        Raises:
            StateError: If the line is already claimed by this source.
            RuntimeError: If lgpio refuses the claim.
        """
        self.open()
        if line_id in self._lines:
            raise StateError(f"GPIO line {line_id} already acquired")

        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        line = LgpioLine(line_id=line_id, loop=loop)
        try:
            self._lgpio.gpio_claim_alert(self._handle, line_id, self._lgpio.FALLING_EDGE)
            line.callback = self._lgpio.callback(
                self._handle,
                line_id,
                self._lgpio.FALLING_EDGE,
                lambda chip, gpio, level, tick: self._on_edge(line, level),
            )
        except Exception as exc:
            try:
                self._lgpio.gpio_free(self._handle, line_id)
            except Exception:  # pylint: disable=broad-exception-caught
                pass
            raise RuntimeError(f"Failed to claim GPIO line {line_id}: {exc}") from exc

        self._lines[line_id] = line
        logger.debug("Claimed GPIO line %d for falling-edge alerts", line_id)
        return line

    def watch(self, handle: LgpioLine, handler: InterruptHandler) -> None:
        """Call ``handler`` on every falling edge of the line."""
        with self._lock:
            handle.handlers.append(handler)

    def unwatch(self, handle: LgpioLine, handler: InterruptHandler) -> None:
        """Stop calling ``handler``. Unknown handlers are ignored."""
        with self._lock:
            if handler in handle.handlers:
                handle.handlers.remove(handler)

    def release(self, handle: LgpioLine) -> None:
        """Cancel the edge callback and free the line."""
        if self._lines.pop(handle.line_id, None) is None:
            return

        with self._lock:
            handle.handlers.clear()

        if handle.callback is not None:
            handle.callback.cancel()
            handle.callback = None

        try:
            self._lgpio.gpio_free(self._handle, handle.line_id)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.warning("Error freeing GPIO line %d", handle.line_id, exc_info=True)
        logger.debug("Released GPIO line %d", handle.line_id)

    def _on_edge(self, line: LgpioLine, level: int) -> None:
        """Dispatch an edge reported by lgpio (runs on the lgpio thread)."""
        if level != _LEVEL_LOW:
            return

        with self._lock:
            handlers = list(line.handlers)

        loop = line.loop
        for handler in handlers:
            if loop is None:
                handler()
            elif not loop.is_closed():
                loop.call_soon_threadsafe(handler)
