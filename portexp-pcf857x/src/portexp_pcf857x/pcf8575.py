"""PCF8575 16-bit I2C port expander driver.

Pins 0-7 form port P0 and pins 8-15 port P1. Both ports are transferred in
one two-byte transaction, P0 first.
"""

from __future__ import annotations

from typing import Any, Literal

from portexp_core.interfaces.bus import I2cBus

from portexp_pcf857x.device import ExpanderType, Pcf857x

PinNumber = Literal[0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15]
"""A pin number of the PCF8575."""


class Pcf8575(Pcf857x[PinNumber]):
    """Driver for a PCF8575 IC with 16 pins.

    Args:
        bus: Open I2C bus.
        address: 7-bit I2C address (0x20-0x27).
        initial_state: True/False for all pins, or a 16-bit bitmask.
        **kwargs: Passed to :class:`~portexp_pcf857x.device.Pcf857x`
            (``interrupt_source``, ``registry``, ``max_pending_polls``).
    """

    PinNumber = PinNumber

    def __init__(
        self,
        bus: I2cBus,
        address: int,
        initial_state: bool | int,
        **kwargs: Any,
    ) -> None:
        super().__init__(bus, address, initial_state, ExpanderType.PCF8575, **kwargs)
