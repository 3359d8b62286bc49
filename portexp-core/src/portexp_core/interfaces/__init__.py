"""Protocol-based interface definitions for portexp.

These interfaces describe the external collaborators the expander drivers
consume, so that real hardware adapters and test doubles are interchangeable.

Interface Categories:
    Bus: I2cBus - raw I2C byte transfers
    Interrupt: GpioInterruptSource - falling-edge GPIO lines
"""

from portexp_core.interfaces.bus import I2cBus
from portexp_core.interfaces.interrupt import GpioInterruptSource, InterruptHandler

__all__ = [
    "GpioInterruptSource",
    "I2cBus",
    "InterruptHandler",
]
