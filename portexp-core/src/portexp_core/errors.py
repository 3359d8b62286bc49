"""Exception types for portexp-core.

This module defines the exception hierarchy used by the port-expander drivers.
All portexp exceptions inherit from PortExpanderError, allowing consumers to
catch every driver-specific error with a single except clause.

Exception hierarchy:
    PortExpanderError (base)
    +-- ConfigurationError: Invalid construction or configuration parameters
    +-- PinRangeError: Pin number outside the range of the IC
    +-- StateError: Operation not allowed in the current pin/device state
    +-- TransportError: I2C bus read or write failures
    +-- CapacityError: Poll request queue is full
"""


class PortExpanderError(Exception):
    """Base exception for all portexp errors.

    This is the root of the portexp exception hierarchy. Catch this to handle
    any driver-specific error.
    """


class ConfigurationError(PortExpanderError, ValueError):
    """Raised for invalid configuration.

    Covers an I2C address outside the 7-bit range, an unsupported IC type, an
    initial state bitmask wider than the IC, or a malformed configuration
    file. Raised from constructors, so no partially built object escapes.
    """


class PinRangeError(PortExpanderError, IndexError):
    """Raised when a pin number is outside ``[0, pin_count)``.

    The rejected call performs no state mutation.
    """


class StateError(PortExpanderError):
    """Raised for operations not permitted in the current state.

    Examples are setting a pin that is not configured as an output, or
    enabling interrupt detection twice without disabling it first.
    """


class TransportError(PortExpanderError):
    """Raised when an I2C transaction fails.

    This may be a NACK from the IC, a busy or timed-out bus, or a read that
    returned fewer bytes than requested. State committed before the failing
    transaction stays valid; the attempted new value is discarded.
    """


class CapacityError(PortExpanderError):
    """Raised when too many polls are already pending on a device.

    Only the excess request is rejected; polls already in flight or queued
    are unaffected.
    """
