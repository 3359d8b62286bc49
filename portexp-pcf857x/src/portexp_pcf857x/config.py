"""YAML configuration for PCF857x expanders.

A configuration file describes one or more expanders, the I2C bus each one
sits on, how its pins are used and how input changes are detected.

Example YAML configuration:
    expanders:
      front_panel:
        type: pcf8574
        i2c_bus: 1
        address: 0x38
        initial_state: true
        interrupt:
          chip: 0
          line: 17
        pins:
          - id: 0
            name: "status_led"
            direction: output
            inverted: true
            initial_value: false
          - id: 7
            name: "start_button"
            direction: input

      relay_board:
        type: pcf8575
        address: 0x20
        initial_state: 0x0000
        poll_interval: 0.25
        pins:
          - id: 8
            name: "pump"
            direction: output
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from portexp_core.errors import ConfigurationError
from portexp_core.types.pin import PinDirection

from portexp_pcf857x.device import DEFAULT_MAX_PENDING_POLLS, ExpanderType


@dataclass(frozen=True)
class PinConfig:
    """Configuration of a single expander pin.

    Attributes:
        id: Pin number on the IC.
        name: Logical alias for this pin.
        direction: PinDirection.INPUT or PinDirection.OUTPUT.
        inverted: True if the pin is handled inverted.
        initial_value: Logical value written when an output is configured.
            None keeps the level from the expander's initial state.
    """

    id: int
    name: str
    direction: PinDirection
    inverted: bool = False
    initial_value: bool | None = None

    def __post_init__(self) -> None:
        """Validate the pin configuration."""
        if not self.name:
            raise ConfigurationError(f"pin {self.id} must have a name")
        if self.direction is PinDirection.UNDEFINED:
            raise ConfigurationError(f"pin {self.name!r} must be an input or an output")
        if self.direction is PinDirection.INPUT and self.initial_value is not None:
            raise ConfigurationError(f"input pin {self.name!r} cannot have an initial_value")


@dataclass(frozen=True)
class InterruptConfig:
    """GPIO line wired to the INT output of the expander.

    Attributes:
        line: BCM GPIO number.
        chip: GPIO chip number.
    """

    line: int
    chip: int = 0

    def __post_init__(self) -> None:
        """Validate the interrupt configuration."""
        if self.line < 0:
            raise ConfigurationError(f"interrupt line must be >= 0, got {self.line}")
        if self.chip < 0:
            raise ConfigurationError(f"interrupt chip must be >= 0, got {self.chip}")


@dataclass(frozen=True)
class ExpanderConfig:
    """Configuration for one PCF857x expander.

    Attributes:
        name: Unique expander name.
        type: IC type (fixes the pin count).
        address: 7-bit I2C address.
        i2c_bus: Linux I2C bus number.
        initial_state: True/False for all pins or a bitmask.
        pins: Pin configurations, applied in order.
        interrupt: Interrupt line, or None to not use interrupts.
        poll_interval: Seconds between polls when no interrupt line is used.
        max_pending_polls: Maximum number of polls in flight or waiting.
    """

    name: str
    type: ExpanderType
    address: int
    i2c_bus: int = 1
    initial_state: bool | int = True
    pins: tuple[PinConfig, ...] = ()
    interrupt: InterruptConfig | None = None
    poll_interval: float | None = None
    max_pending_polls: int = DEFAULT_MAX_PENDING_POLLS

    def __post_init__(self) -> None:
        """Validate the expander configuration."""
        if isinstance(self.address, bool) or not isinstance(self.address, int):
            raise ConfigurationError(f"address must be an integer, got {self.address!r}")
        if not 0x00 <= self.address <= 0x7F:
            raise ConfigurationError(f"address must be 0x00-0x7F, got {self.address:#x}")

        pin_count = self.type.pin_count
        if not isinstance(self.initial_state, (bool, int)):
            raise ConfigurationError(
                f"initial_state must be true, false or a bitmask, got {self.initial_state!r}"
            )
        if not isinstance(self.initial_state, bool):
            if not 0 <= self.initial_state < (1 << pin_count):
                raise ConfigurationError(
                    f"initial_state bitmask out of range for {pin_count} pins: "
                    f"{self.initial_state:#x}"
                )

        seen_ids: set[int] = set()
        seen_names: set[str] = set()
        for pin in self.pins:
            if not 0 <= pin.id < pin_count:
                raise ConfigurationError(f"pin id must be 0-{pin_count - 1}, got {pin.id}")
            if pin.id in seen_ids:
                raise ConfigurationError(f"duplicate pin id: {pin.id}")
            if pin.name in seen_names:
                raise ConfigurationError(f"duplicate pin name: {pin.name}")
            seen_ids.add(pin.id)
            seen_names.add(pin.name)

        if self.interrupt is not None and self.poll_interval is not None:
            raise ConfigurationError(
                f"expander {self.name!r}: use either interrupt or poll_interval, not both"
            )
        if self.poll_interval is not None and self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.max_pending_polls < 1:
            raise ConfigurationError(
                f"max_pending_polls must be at least 1, got {self.max_pending_polls}"
            )

    def pin_id(self, name: str) -> int:
        """Return the pin number for the pin named ``name``.

        Raises:
            KeyError: If no pin has that name.
        """
        for pin in self.pins:
            if pin.name == name:
                return pin.id
        raise KeyError(f"Unknown pin: {name}")


def parse_int(value: Any, field_name: str) -> int:
    """Convert a numeric YAML value such as 32 or "0x20" to an int."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}")
    try:
        return int(value, 0) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}") from None


def parse_float(value: Any, field_name: str) -> float:
    """Convert a numeric YAML value to a float."""
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}") from None


def parse_type(value: Any) -> ExpanderType:
    """Parse an IC type name such as ``"pcf8574"`` or ``"PCF8574A"``."""
    if isinstance(value, ExpanderType):
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f"type must be a string, got {value!r}")
    key = value.strip().upper()
    if key == "PCF8574A":
        key = "PCF8574"
    try:
        return ExpanderType[key]
    except KeyError:
        raise ConfigurationError(f"Unknown expander type: {value!r}") from None


def parse_direction(value: Any) -> PinDirection:
    """Parse a pin direction (``"input"``/``"in"`` or ``"output"``/``"out"``)."""
    if isinstance(value, PinDirection):
        return value
    text = str(value).strip().lower()
    if text in ("input", "in"):
        return PinDirection.INPUT
    if text in ("output", "out"):
        return PinDirection.OUTPUT
    raise ConfigurationError(f"Unknown pin direction: {value!r}")


def parse_pin(data: dict[str, Any]) -> PinConfig:
    """Build a :class:`PinConfig` from a mapping.

    Raises:
        ConfigurationError: If required fields are missing or invalid.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"pin entry must be a mapping, got {data!r}")
    if "id" not in data or "name" not in data:
        raise ConfigurationError(f"pin entry missing required field id or name: {data!r}")
    if "direction" not in data:
        raise ConfigurationError(f"pin {data['name']!r} missing required field: direction")

    initial_value = data.get("initial_value")
    return PinConfig(
        id=parse_int(data["id"], "pin id"),
        name=str(data["name"]),
        direction=parse_direction(data["direction"]),
        inverted=bool(data.get("inverted", False)),
        initial_value=None if initial_value is None else bool(initial_value),
    )


def parse_expander(name: str, data: dict[str, Any]) -> ExpanderConfig:
    """Build an :class:`ExpanderConfig` from a mapping.

    Args:
        name: Expander name (the key in the ``expanders`` mapping).
        data: Expander settings.

    Raises:
        ConfigurationError: If required fields are missing or invalid.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expander '{name}' must be a mapping")
    if "type" not in data:
        raise ConfigurationError(f"Expander '{name}' missing required field: type")
    if "address" not in data:
        raise ConfigurationError(f"Expander '{name}' missing required field: address")

    pins_data = data.get("pins") or []
    if not isinstance(pins_data, list):
        raise ConfigurationError(f"Expander '{name}': pins must be a list")

    interrupt: InterruptConfig | None = None
    interrupt_data = data.get("interrupt")
    if interrupt_data is not None:
        if isinstance(interrupt_data, int):
            interrupt = InterruptConfig(line=interrupt_data)
        elif isinstance(interrupt_data, dict) and "line" in interrupt_data:
            interrupt = InterruptConfig(
                line=parse_int(interrupt_data["line"], "interrupt line"),
                chip=parse_int(interrupt_data.get("chip", 0), "interrupt chip"),
            )
        else:
            raise ConfigurationError(f"Expander '{name}': interrupt needs a line number")

    poll_interval = data.get("poll_interval")

    return ExpanderConfig(
        name=name,
        type=parse_type(data["type"]),
        address=parse_int(data["address"], "address"),
        i2c_bus=parse_int(data.get("i2c_bus", 1), "i2c_bus"),
        initial_state=data.get("initial_state", True),
        pins=tuple(parse_pin(p) for p in pins_data),
        interrupt=interrupt,
        poll_interval=(
            None if poll_interval is None else parse_float(poll_interval, "poll_interval")
        ),
        max_pending_polls=parse_int(
            data.get("max_pending_polls", DEFAULT_MAX_PENDING_POLLS), "max_pending_polls"
        ),
    )


def parse_config(data: Any) -> tuple[ExpanderConfig, ...]:
    """Parse an already loaded configuration document.

    Args:
        data: Document with an ``expanders`` mapping.

    Returns:
        Expander configurations in document order.

    Raises:
        ConfigurationError: If the document is invalid.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Config must be a YAML mapping")

    expanders_data = data.get("expanders", {})
    if not isinstance(expanders_data, dict):
        raise ConfigurationError("expanders must be a mapping")

    return tuple(parse_expander(str(name), settings) for name, settings in expanders_data.items())


def load_config(path: str | Path) -> tuple[ExpanderConfig, ...]:
    """Load expander configurations from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Expander configurations in file order.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigurationError: If the config is invalid or missing required fields.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    return parse_config(data)
