"""Named-pin instrument wrapper around a PCF857x expander."""

from __future__ import annotations

import logging
from typing import Any

from portexp_core.errors import ConfigurationError, PinRangeError, StateError
from portexp_core.interfaces.bus import I2cBus
from portexp_core.interfaces.interrupt import GpioInterruptSource
from portexp_core.types.pin import PinDirection

from portexp_pcf857x.config import (
    ExpanderConfig,
    InterruptConfig,
    parse_int,
    parse_pin,
    parse_type,
)
from portexp_pcf857x.device import (
    DEFAULT_MAX_PENDING_POLLS,
    ExpanderType,
    InputListener,
    Pcf857x,
)
from portexp_pcf857x.interrupt import InterruptRegistry, default_registry
from portexp_pcf857x.lgpio_source import LgpioInterruptSource
from portexp_pcf857x.pcf8574 import Pcf8574
from portexp_pcf857x.pcf8575 import Pcf8575
from portexp_pcf857x.poller import PeriodicPoller
from portexp_pcf857x.smbus_bus import Smbus2Bus

logger = logging.getLogger(__name__)


class Pcf857xInstrument:
    """Instrument driver for one PCF8574/PCF8575 expander.

    Opens the bus, configures every pin from the configuration and sets up
    input change detection, either through the interrupt line or a periodic
    poller. Pins can be addressed by name or number.

    Args:
        config: Expander configuration.
        bus: Optional I2C bus for testing. When omitted an
            :class:`Smbus2Bus` is opened on ``config.i2c_bus`` and closed
            again by :meth:`close`.
        interrupt_source: Optional interrupt source for testing. When omitted
            and the configuration has an interrupt line, an
            :class:`LgpioInterruptSource` is used.
        registry: Interrupt line registry. Defaults to the process-wide one.

    Example:
        >>> async with Pcf857xInstrument(config) as panel:
        ...     panel.add_listener(print)
        ...     await panel.write("status_led", True)
    """

    def __init__(
        self,
        config: ExpanderConfig,
        *,
        bus: I2cBus | None = None,
        interrupt_source: GpioInterruptSource | None = None,
        registry: InterruptRegistry | None = None,
    ) -> None:
        self._config = config
        self._bus = bus
        self._owned_bus: Smbus2Bus | None = None
        self._interrupt_source = interrupt_source
        self._owned_source: LgpioInterruptSource | None = None
        self._registry = registry if registry is not None else default_registry()
        self._device: Pcf857x[Any] | None = None
        self._poller: PeriodicPoller | None = None
        self._pins_by_name = {pin.name: pin.id for pin in config.pins}

    @property
    def name(self) -> str:
        """Return the expander name."""
        return self._config.name

    @property
    def config(self) -> ExpanderConfig:
        """Return the expander configuration."""
        return self._config

    @property
    def is_open(self) -> bool:
        """Return True if the expander has been opened."""
        return self._device is not None

    @property
    def device(self) -> Pcf857x[Any]:
        """Return the underlying driver.

        Raises:
            StateError: If the instrument is not open.
        """
        return self._require_open()

    async def open(self) -> None:
        """Open the bus, configure all pins and start change detection.

        Safe to call on an already open instrument.

        Raises:
            ImportError: If smbus2 (or lgpio, for interrupts) is missing.
            TransportError: If the bus cannot be opened or a write fails.
            RuntimeError: If the interrupt line cannot be claimed.
        """
        if self._device is not None:
            return

        config = self._config
        if self._bus is None:
            smbus = Smbus2Bus(config.i2c_bus)
            smbus.open()
            self._bus = self._owned_bus = smbus

        if config.interrupt is not None and self._interrupt_source is None:
            self._owned_source = LgpioInterruptSource(chip=config.interrupt.chip)
            self._interrupt_source = self._owned_source

        facade = Pcf8574 if config.type is ExpanderType.PCF8574 else Pcf8575
        try:
            self._device = facade(
                self._bus,
                config.address,
                config.initial_state,
                interrupt_source=self._interrupt_source,
                registry=self._registry,
                max_pending_polls=config.max_pending_polls,
            )
        except Exception:
            self._close_owned()
            raise

        try:
            for pin in config.pins:
                if pin.direction is PinDirection.OUTPUT:
                    await self._device.configure_output(pin.id, pin.inverted, pin.initial_value)
                else:
                    await self._device.configure_input(pin.id, pin.inverted)

            if config.interrupt is not None:
                self._device.enable_interrupt(config.interrupt.line)
            elif config.poll_interval is not None:
                self._poller = PeriodicPoller(self._device, config.poll_interval)
                await self._poller.start()
        except Exception:
            await self.close()
            raise

        logger.info(
            "Opened %s %r at %#04x on I2C bus %d",
            config.type.name,
            config.name,
            config.address,
            config.i2c_bus,
        )

    async def close(self) -> None:
        """Stop change detection and release the hardware.

        Safe to call multiple times.
        """
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

        if self._device is not None:
            self._device.close()
            self._device = None
            logger.info("Closed %s %r", self._config.type.name, self._config.name)

        self._close_owned()

    def _close_owned(self) -> None:
        """Close the bus and interrupt source if this instrument created them."""
        if self._owned_source is not None:
            # Another expander may still watch a line acquired through this source
            self._registry.retire(self._owned_source, self._owned_source.close)
            self._owned_source = None
            self._interrupt_source = None

        if self._owned_bus is not None:
            self._owned_bus.close()
            self._owned_bus = None
            self._bus = None

    async def __aenter__(self) -> Pcf857xInstrument:
        """Open on context entry."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Close on context exit."""
        await self.close()

    def _require_open(self) -> Pcf857x[Any]:
        """Return the device or raise if the instrument is not open."""
        if self._device is None:
            raise StateError(f"Expander {self._config.name!r} not opened; call open() first")
        return self._device

    def _resolve_pin(self, channel: str | int) -> int:
        """Resolve a pin name or number to a pin number."""
        if isinstance(channel, int):
            pin_count = self._config.type.pin_count
            if not 0 <= channel < pin_count:
                raise PinRangeError(f"Pin must be 0-{pin_count - 1}, got {channel}")
            return channel
        if channel in self._pins_by_name:
            return self._pins_by_name[channel]
        raise ConfigurationError(f"Unknown pin: {channel}")

    # -- Pin access ------------------------------------------------------------

    def read(self, channel: str | int) -> bool:
        """Return the last known logical value of a pin.

        Args:
            channel: Pin name or number.

        Raises:
            StateError: If the instrument is not open.
            PinRangeError: If the pin number is out of range.
            ConfigurationError: If the pin name is unknown.
        """
        device = self._require_open()
        return device.get_pin_value(self._resolve_pin(channel))

    async def write(self, channel: str | int, value: bool | None = None) -> None:
        """Set an output pin, or toggle it if ``value`` is None.

        Args:
            channel: Pin name or number.
            value: New logical value.

        Raises:
            StateError: If the instrument is not open or the pin is not an output.
            PinRangeError: If the pin number is out of range.
            ConfigurationError: If the pin name is unknown.
        """
        device = self._require_open()
        await device.set_pin(self._resolve_pin(channel), value)

    async def write_all(self, value: bool) -> None:
        """Set every output pin to ``value`` in a single write.

        Raises:
            StateError: If the instrument is not open.
        """
        device = self._require_open()
        await device.set_all_pins(value)

    async def refresh(self) -> None:
        """Poll the inputs now.

        Raises:
            StateError: If the instrument is not open.
            CapacityError: If too many polls are already pending.
        """
        device = self._require_open()
        await device.poll()

    def pin_name(self, pin: int) -> str | None:
        """Return the configured name of ``pin``, if any."""
        for name, pin_id in self._pins_by_name.items():
            if pin_id == pin:
                return name
        return None

    def add_listener(self, listener: InputListener) -> None:
        """Subscribe ``listener`` to input changes of the expander.

        Raises:
            StateError: If the instrument is not open.
        """
        self._require_open().add_listener(listener)

    def remove_listener(self, listener: InputListener) -> None:
        """Unsubscribe ``listener``. Does nothing if the instrument is closed."""
        if self._device is not None:
            self._device.remove_listener(listener)


def create_instrument(
    name: str,
    type: str | ExpanderType,  # pylint: disable=redefined-builtin
    address: int,
    i2c_bus: int = 1,
    initial_state: bool | int = True,
    pins: list[dict[str, Any]] | None = None,
    interrupt: dict[str, Any] | int | None = None,
    poll_interval: float | None = None,
    max_pending_polls: int = DEFAULT_MAX_PENDING_POLLS,
) -> Pcf857xInstrument:
    """Create a PCF857x instrument from configuration parameters.

    Standard factory entry point for configuration loaders and programmatic use.

    Args:
        name: Expander name.
        type: IC type ("pcf8574", "pcf8574a" or "pcf8575").
        address: 7-bit I2C address.
        i2c_bus: Linux I2C bus number.
        initial_state: True/False for all pins or a bitmask.
        pins: List of pin definitions, each with ``id``, ``name``,
            ``direction`` ("input" or "output"), and optional ``inverted``
            and ``initial_value``.
        interrupt: GPIO line number, or a mapping with ``line`` and
            optional ``chip``.
        poll_interval: Seconds between polls when no interrupt line is used.
        max_pending_polls: Maximum number of polls in flight or waiting.

    Returns:
        Configured instrument instance (call ``open()`` to connect).

    Raises:
        ConfigurationError: If any parameter is invalid.
    """
    interrupt_cfg: InterruptConfig | None = None
    if isinstance(interrupt, int):
        interrupt_cfg = InterruptConfig(line=interrupt)
    elif isinstance(interrupt, dict) and "line" in interrupt:
        interrupt_cfg = InterruptConfig(
            line=parse_int(interrupt["line"], "interrupt line"),
            chip=parse_int(interrupt.get("chip", 0), "interrupt chip"),
        )
    elif interrupt is not None:
        raise ConfigurationError(f"Expander {name!r}: interrupt needs a line number")

    config = ExpanderConfig(
        name=name,
        type=parse_type(type),
        address=address,
        i2c_bus=i2c_bus,
        initial_state=initial_state,
        pins=tuple(parse_pin(p) for p in pins or ()),
        interrupt=interrupt_cfg,
        poll_interval=poll_interval,
        max_pending_polls=max_pending_polls,
    )
    return Pcf857xInstrument(config)
