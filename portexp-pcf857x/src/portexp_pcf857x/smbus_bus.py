"""I2C bus adapter built on smbus2.

The PCF857x ICs have no register pointer, so SMBus byte/word commands do not
fit them: a PCF8575 expects two data bytes with no command byte in front.
This adapter therefore uses raw ``i2c_rdwr`` transactions, which send exactly
the bytes given.

Blocking kernel calls are run in the default executor so the event loop
keeps serving interrupts and other devices while a transaction is on the
wire.

Example:
    >>> with Smbus2Bus(1) as bus:
    ...     pcf = Pcf8575(bus, 0x20, True)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from portexp_core.errors import TransportError

logger = logging.getLogger(__name__)


class Smbus2Bus:
    """Implementation of :class:`~portexp_core.interfaces.I2cBus` over smbus2.

    Args:
        bus_number: Linux I2C bus number (``/dev/i2c-<n>``, 1 on a Raspberry Pi).
        smbus: Optional pre-configured ``smbus2.SMBus`` object for testing.
    """

    def __init__(self, bus_number: int = 1, *, smbus: Any | None = None) -> None:
        self._bus_number = bus_number
        self._smbus = smbus
        self._i2c_msg: Any = None
        self._opened = False
        # Devices sharing this bus run their transfers on executor threads
        self._lock = threading.Lock()

    @property
    def bus_number(self) -> int:
        """Return the I2C bus number."""
        return self._bus_number

    @property
    def is_open(self) -> bool:
        """Return True if the bus is open."""
        return self._opened

    def open(self) -> None:
        """Open the I2C bus.

        Safe to call on an already open bus.

        Raises:
            ImportError: If smbus2 is not available.
            TransportError: If the bus device cannot be opened.
        """
        if self._opened:
            return

        try:
            import smbus2  # pylint: disable=import-outside-toplevel
        except ImportError as exc:
            raise ImportError(
                "smbus2 library is not installed. Install with: pip install smbus2"
            ) from exc

        if self._smbus is None:
            try:
                self._smbus = smbus2.SMBus(self._bus_number)
            except OSError as exc:
                raise TransportError(
                    f"Failed to open I2C bus {self._bus_number}: {exc}"
                ) from exc

        self._i2c_msg = smbus2.i2c_msg
        self._opened = True
        logger.debug("Opened I2C bus %d", self._bus_number)

    def close(self) -> None:
        """Close the I2C bus. Safe to call multiple times."""
        if not self._opened:
            return

        if self._smbus is not None:
            try:
                self._smbus.close()
            except OSError:
                logger.warning("Error closing I2C bus %d", self._bus_number, exc_info=True)
            self._smbus = None

        self._opened = False
        logger.debug("Closed I2C bus %d", self._bus_number)

    def __enter__(self) -> Smbus2Bus:
        """Open the bus on context entry."""
        self.open()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Close the bus on context exit."""
        self.close()

    def _require_open(self) -> None:
        """Raise if the bus is not open."""
        if not self._opened:
            raise TransportError(f"I2C bus {self._bus_number} not open")

    # -- Transfers -------------------------------------------------------------

    def write_bytes_sync(self, address: int, data: bytes) -> None:
        """Write ``data`` to ``address`` in one raw transaction.

        Raises:
            TransportError: If the bus is not open or the transfer fails.
        """
        self._require_open()
        msg = self._i2c_msg.write(address, list(data))
        try:
            with self._lock:
                self._smbus.i2c_rdwr(msg)
        except OSError as exc:
            raise TransportError(f"I2C write to {address:#04x} failed: {exc}") from exc

    def read_bytes_sync(self, address: int, count: int) -> bytes:
        """Read ``count`` bytes from ``address`` in one raw transaction.

        Raises:
            TransportError: If the bus is not open or the transfer fails.
        """
        self._require_open()
        msg = self._i2c_msg.read(address, count)
        try:
            with self._lock:
                self._smbus.i2c_rdwr(msg)
        except OSError as exc:
            raise TransportError(f"I2C read from {address:#04x} failed: {exc}") from exc
        return bytes(list(msg))

    async def write_bytes(self, address: int, data: bytes) -> None:
        """Write ``data`` to ``address`` without blocking the event loop.

        Raises:
            TransportError: If the bus is not open or the transfer fails.
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.write_bytes_sync, address, data)

    async def read_bytes(self, address: int, count: int) -> bytes:
        """Read ``count`` bytes from ``address`` without blocking the event loop.

        Raises:
            TransportError: If the bus is not open or the transfer fails.
        """
        loop = asyncio.get_running_loop()
        result: bytes = await loop.run_in_executor(None, self.read_bytes_sync, address, count)
        return result
