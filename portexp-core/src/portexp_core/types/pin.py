"""Pin-level types shared by the expander drivers.

Classes:
    PinDirection: Configured direction of an expander pin.
    PinChange: Change notification emitted when an input pin toggles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class PinDirection(IntEnum):
    """Direction of a single expander pin.

    The integer values are -1 (undefined), 0 (output) and 1 (input).

    Attributes:
        UNDEFINED: Pin not configured yet (default for every pin).
        OUTPUT: Pin driven by the host.
        INPUT: Pin held high by the host and pulled low by the remote circuit.
    """

    UNDEFINED = -1
    OUTPUT = 0
    INPUT = 1


@dataclass(frozen=True)
class PinChange:
    """Change of an input pin detected by a poll.

    Attributes:
        pin: Number of the pin that changed.
        value: New logical value (after polarity correction).
    """

    pin: int
    value: bool

    def __str__(self) -> str:
        """Return a compact representation for log output."""
        return f"pin {self.pin} -> {int(self.value)}"
