"""Periodic input polling for expanders without a wired interrupt line."""

from __future__ import annotations

import asyncio
import logging

from portexp_core.errors import CapacityError

from portexp_pcf857x.device import Pcf857x

logger = logging.getLogger(__name__)


class PeriodicPoller:
    """Call :meth:`Pcf857x.poll` at a fixed interval.

    Failed polls are logged and polling continues with the next interval.

    Args:
        device: The expander to poll.
        interval: Time between polls in seconds.

    Raises:
        ValueError: If ``interval`` is not positive.

    Example:
        >>> poller = PeriodicPoller(pcf, interval=0.25)
        >>> await poller.start()
        >>> ...
        >>> await poller.stop()
    """

    def __init__(self, device: Pcf857x[int], interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._device = device
        self._interval = interval
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        """Return the polling interval in seconds."""
        return self._interval

    @property
    def is_running(self) -> bool:
        """Return True if the polling task is active."""
        return self._running

    async def start(self) -> None:
        """Start polling. Does nothing if already running."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop polling. Safe to call multiple times or when not running."""
        if not self._running:
            return

        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _poll_loop(self) -> None:
        """Poll the device until :meth:`stop` is called."""
        while self._running:
            try:
                await self._device.poll()
            except asyncio.CancelledError:
                return
            except CapacityError:
                logger.debug("Skipped poll of %#04x, queue full", self._device.address)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.warning(
                    "Error polling expander at %#04x", self._device.address, exc_info=True
                )

            await asyncio.sleep(self._interval)
