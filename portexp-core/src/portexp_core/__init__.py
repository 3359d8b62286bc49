"""Core library for the portexp I2C port-expander drivers.

This package provides the error hierarchy, shared value types and
protocol definitions used by the driver packages. Like the rest of the core
layer it has no third-party dependencies.

Key components:
    - Types: PinDirection, PinChange and the TaskOutcome result type.
    - Interfaces: Protocols for the I2C bus and the GPIO interrupt source.
    - Errors: Hierarchy of exception types for the driver failure modes.

Example:
    >>> from portexp_core import PinChange, PinDirection
    >>> change = PinChange(pin=3, value=False)
    >>> print(change)
    pin 3 -> 0
"""

from portexp_core.errors import (
    CapacityError,
    ConfigurationError,
    PinRangeError,
    PortExpanderError,
    StateError,
    TransportError,
)
from portexp_core.interfaces import GpioInterruptSource, I2cBus, InterruptHandler
from portexp_core.types import PinChange, PinDirection, TaskOutcome

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Types
    "PinChange",
    "PinDirection",
    "TaskOutcome",
    # Interfaces
    "GpioInterruptSource",
    "I2cBus",
    "InterruptHandler",
    # Errors
    "CapacityError",
    "ConfigurationError",
    "PinRangeError",
    "PortExpanderError",
    "StateError",
    "TransportError",
]
