"""Value types shared by the portexp drivers."""

from portexp_core.types.outcome import TaskOutcome
from portexp_core.types.pin import PinChange, PinDirection

__all__ = [
    "PinChange",
    "PinDirection",
    "TaskOutcome",
]
