"""PCF8574/PCF8574A/PCF8575 I2C port expander drivers.

This package drives the NXP/TI PCF857x family of quasi-bidirectional GPIO
expanders from an asyncio application, typically on a Raspberry Pi. Pins
can be used as inputs or outputs, each optionally inverted; input changes
are detected through the shared open-drain INT line or by polling and
reported as :class:`~portexp_core.types.PinChange` events.

Supported Hardware:
    - PCF8574 / PCF8574A: 8 pins, one byte per transfer
    - PCF8575: 16 pins, two bytes per transfer (pins 0-7 first)

Example:
    Driving a PCF8574A with a push button on pin 7::

        from portexp_pcf857x import LgpioInterruptSource, Pcf8574A, Smbus2Bus

        bus = Smbus2Bus(1)
        bus.open()
        pcf = Pcf8574A(bus, 0x38, True, interrupt_source=LgpioInterruptSource())
        pcf.enable_interrupt(17)
        pcf.add_listener(lambda change: print(change))
        await pcf.configure_input(7, inverted=True)
        await pcf.configure_output(0, inverted=False, initial_value=True)

Note:
    The hardware adapters require ``smbus2`` for the I2C bus and ``lgpio``
    for the interrupt line, which are only useful on Linux with access to
    ``/dev/i2c-*`` and ``/dev/gpiochip*``.
"""

from portexp_pcf857x.config import (
    ExpanderConfig,
    InterruptConfig,
    PinConfig,
    load_config,
    parse_config,
)
from portexp_pcf857x.device import DEFAULT_MAX_PENDING_POLLS, ExpanderType, InputListener, Pcf857x
from portexp_pcf857x.instrument import Pcf857xInstrument, create_instrument
from portexp_pcf857x.interrupt import InterruptRegistry, default_registry
from portexp_pcf857x.lgpio_source import LgpioInterruptSource
from portexp_pcf857x.pcf8574 import Pcf8574, Pcf8574A
from portexp_pcf857x.pcf8575 import Pcf8575
from portexp_pcf857x.poller import PeriodicPoller
from portexp_pcf857x.smbus_bus import Smbus2Bus
from portexp_pcf857x.task_queue import TaskQueue

__all__ = [
    # Drivers
    "DEFAULT_MAX_PENDING_POLLS",
    "ExpanderType",
    "InputListener",
    "Pcf857x",
    "Pcf8574",
    "Pcf8574A",
    "Pcf8575",
    # Infrastructure
    "InterruptRegistry",
    "TaskQueue",
    "default_registry",
    # Hardware adapters
    "LgpioInterruptSource",
    "PeriodicPoller",
    "Smbus2Bus",
    # Configuration
    "ExpanderConfig",
    "InterruptConfig",
    "PinConfig",
    "load_config",
    "parse_config",
    # Instrument
    "Pcf857xInstrument",
    "create_instrument",
]
