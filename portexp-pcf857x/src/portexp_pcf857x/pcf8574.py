"""PCF8574/PCF8574A 8-bit I2C port expander driver.

The PCF8574 answers on addresses 0x20-0x27 and the PCF8574A on 0x38-0x3F;
apart from the address range both ICs are identical, so :class:`Pcf8574A`
is an alias of :class:`Pcf8574`. Pins are numbered 0-7 and transferred as a
single byte.
"""

from __future__ import annotations

from typing import Any, Literal

from portexp_core.interfaces.bus import I2cBus

from portexp_pcf857x.device import ExpanderType, Pcf857x

PinNumber = Literal[0, 1, 2, 3, 4, 5, 6, 7]
"""A pin number of the PCF8574/PCF8574A."""


class Pcf8574(Pcf857x[PinNumber]):
    """Driver for a PCF8574/PCF8574A IC with 8 pins.

    Args:
        bus: Open I2C bus.
        address: 7-bit I2C address (0x20-0x27 or 0x38-0x3F).
        initial_state: True/False for all pins, or an 8-bit bitmask.
        **kwargs: Passed to :class:`~portexp_pcf857x.device.Pcf857x`
            (``interrupt_source``, ``registry``, ``max_pending_polls``).

    Example:
        >>> pcf = Pcf8574(bus, 0x38, 0b00101010)
        >>> await pcf.configure_output(1, inverted=False)
        >>> await pcf.set_pin(1)  # toggle
    """

    PinNumber = PinNumber

    def __init__(
        self,
        bus: I2cBus,
        address: int,
        initial_state: bool | int,
        **kwargs: Any,
    ) -> None:
        super().__init__(bus, address, initial_state, ExpanderType.PCF8574, **kwargs)


Pcf8574A = Pcf8574
