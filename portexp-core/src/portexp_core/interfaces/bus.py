"""I2C bus protocol definition.

This module defines the :class:`I2cBus` protocol consumed by the expander
drivers. A bus moves raw byte sequences to and from a 7-bit device address;
the PCF857x family has no register pointer, so every transaction is a plain
write or a plain read.

Implementations include:
- :class:`portexp_pcf857x.Smbus2Bus`: smbus2-backed bus for Linux i2c-dev
- Test doubles built from ``unittest.mock``
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from typing import Protocol


class I2cBus(Protocol):
    """Protocol for raw I2C byte transfers.

    Any failure (NACK, bus busy, timeout) is raised to the caller unchanged;
    the expander drivers never retry.
    """

    def write_bytes_sync(self, address: int, data: bytes) -> None:
        """Write ``data`` to ``address`` in one transaction, blocking.

        Used once during device construction so the IC has a defined level
        on every pin before the device object is returned.

        Args:
            address: 7-bit I2C address.
            data: Bytes to transmit.
        """
        ...

    async def write_bytes(self, address: int, data: bytes) -> None:
        """Write ``data`` to ``address`` in one transaction.

        Args:
            address: 7-bit I2C address.
            data: Bytes to transmit.
        """
        ...

    async def read_bytes(self, address: int, count: int) -> bytes:
        """Read ``count`` bytes from ``address`` in one transaction.

        Args:
            address: 7-bit I2C address.
            count: Number of bytes to read.

        Returns:
            The bytes received from the device.
        """
        ...

    def close(self) -> None:
        """Close the bus and release resources."""
        ...
