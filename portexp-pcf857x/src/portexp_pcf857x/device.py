"""Common driver for the PCF857x family of I2C port expanders.

The PCF8574/PCF8574A (8 pins) and PCF8575 (16 pins) are quasi-bidirectional
expanders without registers: writing a byte sets the latch of every pin,
reading returns the electrical level of every pin. A pin is used as an input
by writing it high and letting the remote circuit pull it low. When an input
changes, the IC pulls its open-drain INT line low until the next read.

This module holds the state engine shared by both pin widths:

- Bitmasks for the last known logical state, inverted pins and input pins
- Translation of logical state to wire bytes and back
- Poll-and-diff of inputs into :class:`~portexp_core.types.PinChange` events
- Serialization of all bus transactions through a :class:`TaskQueue`
- Interrupt line sharing through an :class:`InterruptRegistry`

Example:
    >>> bus = Smbus2Bus(1)
    >>> bus.open()
    >>> pcf = Pcf8574(bus, 0x38, True, interrupt_source=LgpioInterruptSource())
    >>> pcf.enable_interrupt(17)
    >>> pcf.add_listener(lambda change: print(change))
    >>> await pcf.configure_output(0, inverted=True, initial_value=False)
    >>> await pcf.configure_input(7, inverted=False)
    >>> await pcf.set_pin(0, True)
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Generic, TypeVar

from portexp_core.errors import (
    CapacityError,
    ConfigurationError,
    PinRangeError,
    StateError,
    TransportError,
)
from portexp_core.interfaces.bus import I2cBus
from portexp_core.interfaces.interrupt import GpioInterruptSource
from portexp_core.types.pin import PinChange, PinDirection

from portexp_pcf857x.interrupt import InterruptRegistry, default_registry
from portexp_pcf857x.task_queue import TaskQueue

logger = logging.getLogger(__name__)

PinT = TypeVar("PinT", bound=int)

InputListener = Callable[[PinChange], None]
"""Callback receiving one :class:`PinChange` per detected input change."""

DEFAULT_MAX_PENDING_POLLS = 3
"""One poll in flight plus two waiting."""


class ExpanderType(Enum):
    """Supported IC types.

    Attributes:
        PCF8574: PCF8574/PCF8574A with 8 pins.
        PCF8575: PCF8575 with 16 pins.
    """

    PCF8574 = 8
    PCF8575 = 16

    @property
    def pin_count(self) -> int:
        """Return the number of pins of this IC."""
        return self.value

    @property
    def byte_count(self) -> int:
        """Return the number of bytes per bus transaction."""
        return self.value // 8


def _set_bit(current: int, bit: int, value: bool) -> int:
    """Return ``current`` with ``bit`` set (value=True) or cleared."""
    if value:
        return current | (1 << bit)
    return current & ~(1 << bit)


class Pcf857x(Generic[PinT]):
    """State engine shared by the 8-pin and 16-pin PCF857x drivers.

    Use :class:`~portexp_pcf857x.Pcf8574` or :class:`~portexp_pcf857x.Pcf8575`
    rather than instantiating this class directly.

    If any pin is used as an input, either enable interrupt detection with
    :meth:`enable_interrupt` or call :meth:`poll` often enough to notice
    changes.

    Args:
        bus: Open I2C bus.
        address: 7-bit I2C address of the IC.
        initial_state: Initial level of all pins: True (all high), False
            (all low) or a bitmask with one bit per pin.
        expander_type: The IC type, which fixes the pin count.
        interrupt_source: GPIO interrupt source used by
            :meth:`enable_interrupt`. Optional if interrupts are not used.
        registry: Interrupt line registry. Defaults to the process-wide one.
        max_pending_polls: Maximum number of polls in flight or waiting.

    Raises:
        ConfigurationError: If the address, type, initial state or poll
            bound is invalid.
        Exception: Whatever the bus raised during the initial write.
    """

    DIR_UNDEF = PinDirection.UNDEFINED
    DIR_IN = PinDirection.INPUT
    DIR_OUT = PinDirection.OUTPUT

    def __init__(
        self,
        bus: I2cBus,
        address: int,
        initial_state: bool | int,
        expander_type: ExpanderType,
        *,
        interrupt_source: GpioInterruptSource | None = None,
        registry: InterruptRegistry | None = None,
        max_pending_polls: int = DEFAULT_MAX_PENDING_POLLS,
    ) -> None:
        if not isinstance(expander_type, ExpanderType):
            raise ConfigurationError(f"Unsupported expander type: {expander_type!r}")
        if not 0x00 <= address <= 0x7F:
            raise ConfigurationError(f"address must be 0x00-0x7F, got {address:#x}")
        if max_pending_polls < 1:
            raise ConfigurationError(
                f"max_pending_polls must be at least 1, got {max_pending_polls}"
            )

        self._bus = bus
        self._address = address
        self._type = expander_type
        self._pins = expander_type.pin_count
        self._all_pins_mask = (1 << self._pins) - 1

        if initial_state is True:
            initial_state = self._all_pins_mask
        elif initial_state is False:
            initial_state = 0
        elif not isinstance(initial_state, int) or not 0 <= initial_state <= self._all_pins_mask:
            raise ConfigurationError(
                f"initial_state bitmask out of range for {self._pins} pins: {initial_state!r}"
            )

        self._directions: list[PinDirection] = [PinDirection.UNDEFINED] * self._pins
        self._inverted = 0
        self._input_mask = 0
        self._current_state = initial_state

        self._queue = TaskQueue(name=f"{expander_type.name.lower()}@{address:#04x}")
        self._max_pending_polls = max_pending_polls
        self._pending_polls = 0
        self._currently_polling = False

        self._listeners: list[InputListener] = []

        self._interrupt_source = interrupt_source
        self._registry = registry if registry is not None else default_registry()
        self._interrupt_line: int | None = None
        self._interrupt_tasks: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

        # Establish defined levels on every pin before anyone can use the device
        self._bus.write_bytes_sync(self._address, self._encode(self._current_state))
        logger.debug(
            "%s at %#04x initialized with state %#06x",
            expander_type.name,
            address,
            self._current_state,
        )

    # -- Properties ------------------------------------------------------------

    @property
    def address(self) -> int:
        """Return the I2C address of the IC."""
        return self._address

    @property
    def expander_type(self) -> ExpanderType:
        """Return the IC type."""
        return self._type

    @property
    def pin_count(self) -> int:
        """Return the number of pins of the IC."""
        return self._pins

    @property
    def is_polling(self) -> bool:
        """Return True while a poll read is in flight on the bus."""
        return self._currently_polling

    @property
    def interrupt_line(self) -> int | None:
        """Return the watched interrupt line, or None if interrupts are off."""
        return self._interrupt_line

    def get_direction(self, pin: PinT) -> PinDirection:
        """Return the configured direction of ``pin``.

        Raises:
            PinRangeError: If ``pin`` is out of range.
        """
        self._check_pin(pin)
        return self._directions[pin]

    def is_inverted(self, pin: PinT) -> bool:
        """Return True if ``pin`` is handled inverted.

        Raises:
            PinRangeError: If ``pin`` is out of range.
        """
        self._check_pin(pin)
        return bool(self._inverted >> pin & 1)

    # -- Listeners -------------------------------------------------------------

    def add_listener(self, listener: InputListener) -> None:
        """Subscribe ``listener`` to input change notifications.

        Listeners are called in subscription order, on the event loop, once
        per changed input pin.
        """
        self._listeners.append(listener)

    def remove_listener(self, listener: InputListener) -> None:
        """Unsubscribe ``listener``. Unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def remove_all_listeners(self) -> None:
        """Unsubscribe every listener."""
        self._listeners.clear()

    def _emit(self, change: PinChange) -> None:
        """Deliver ``change`` to every listener."""
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Input listener failed for %s", change)

    # -- Interrupts ------------------------------------------------------------

    def enable_interrupt(self, line_id: int) -> None:
        """Enable interrupt detection on GPIO line ``line_id``.

        The line may be shared with other expanders; it is acquired only
        once. Must be called from within the running event loop that will
        process the polls.

        Args:
            line_id: GPIO line wired to the INT output of the IC.

        Raises:
            StateError: If interrupts are already enabled on this device, or
                no interrupt source was given at construction.
        """
        if self._interrupt_line is not None:
            raise StateError(
                f"GPIO interrupt already enabled on line {self._interrupt_line}"
            )
        if self._interrupt_source is None:
            raise StateError("No GPIO interrupt source configured for this device")

        self._loop = asyncio.get_running_loop()
        self._registry.attach(line_id, self._handle_interrupt, self._interrupt_source)
        self._interrupt_line = line_id
        logger.info(
            "%s at %#04x watching interrupt line %d", self._type.name, self._address, line_id
        )

    def disable_interrupt(self) -> None:
        """Disable interrupt detection.

        The GPIO line is released when no other expander watches it. Does
        nothing if interrupts are not enabled.
        """
        if self._interrupt_line is None:
            return
        self._registry.detach(self._interrupt_line, self._handle_interrupt)
        logger.info(
            "%s at %#04x stopped watching interrupt line %d",
            self._type.name,
            self._address,
            self._interrupt_line,
        )
        self._interrupt_line = None

    def _handle_interrupt(self) -> None:
        """Schedule a poll for a falling edge on the interrupt line."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        task = loop.create_task(self._interrupt_poll())
        self._interrupt_tasks.add(task)
        task.add_done_callback(self._interrupt_tasks.discard)

    async def _interrupt_poll(self) -> None:
        """Poll after an interrupt; nobody is waiting, so failures are logged only."""
        try:
            await self._poll()
        except CapacityError:
            logger.debug(
                "%s at %#04x: interrupt poll dropped, queue full", self._type.name, self._address
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.debug(
                "%s at %#04x: interrupt poll failed: %s", self._type.name, self._address, exc
            )

    def close(self) -> None:
        """Release the interrupt line and drop all listeners.

        A bus transaction already in flight is not aborted; its outcome is
        discarded.
        """
        self.disable_interrupt()
        self.remove_all_listeners()

    async def __aenter__(self) -> Pcf857x[PinT]:
        """Enter async context."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context."""
        self.close()

    # -- Wire encoding ---------------------------------------------------------

    def _encode(self, state: int) -> bytes:
        """Encode a pin bitmask as wire bytes, least-significant byte first."""
        return (state & self._all_pins_mask).to_bytes(self._type.byte_count, "little")

    def _decode(self, data: bytes) -> int:
        """Decode wire bytes into a pin bitmask."""
        return int.from_bytes(data, "little")

    def _check_pin(self, pin: int) -> None:
        """Raise if ``pin`` is not a pin of this IC."""
        if not 0 <= pin < self._pins:
            raise PinRangeError(f"Pin out of range: {pin} (0-{self._pins - 1})")

    # -- State writes ----------------------------------------------------------

    async def _commit(self, update: Callable[[int], int] | None = None) -> None:
        """Write the (updated) current state to the IC.

        The inversion and input masks are captured now so the write reflects
        the configuration in effect when it was requested. ``update`` is
        applied to the current state when the write actually starts.

        Args:
            update: Function mapping the current state to the new state. If
                None, the current state is written again.

        Raises:
            Exception: Whatever the bus raised. The new state is discarded.
        """
        inverted = self._inverted
        input_mask = self._input_mask

        async def write() -> None:
            candidate = update(self._current_state) if update is not None else self._current_state
            # Polarity first, then force every input pin high
            wire = (candidate ^ inverted) | input_mask
            await self._bus.write_bytes(self._address, self._encode(wire))
            self._current_state = candidate & self._all_pins_mask
            logger.debug(
                "%s at %#04x wrote %#06x (state %#06x)",
                self._type.name,
                self._address,
                wire,
                self._current_state,
            )

        await self._queue.run(write)

    # -- Polling ---------------------------------------------------------------

    async def poll(self) -> None:
        """Manually poll the inputs for changes.

        Emits one :class:`PinChange` per changed input pin. Call this often
        enough if no interrupt line is used. Overlapping polls are queued.

        Raises:
            CapacityError: If too many polls are already pending.
            Exception: Whatever the bus raised during the read.
        """
        await self._poll()

    async def do_poll(self) -> None:
        """Alias of :meth:`poll`."""
        await self._poll()

    async def _poll(self, suppress_pin: int | None = None, *, bounded: bool = True) -> None:
        """Read the IC and emit events for changed inputs.

        Args:
            suppress_pin: Pin whose change is recorded but not emitted.
            bounded: Count this poll against ``max_pending_polls``.

        Raises:
            CapacityError: If ``bounded`` and the poll bound is reached.
            TransportError: If the IC returned a short read.
            Exception: Whatever the bus raised during the read.
        """
        if bounded and self._pending_polls >= self._max_pending_polls:
            raise CapacityError(
                f"{self._pending_polls} polls already pending on "
                f"{self._type.name} at {self._address:#04x}"
            )

        started = False

        async def read() -> None:
            nonlocal started
            started = True
            self._currently_polling = True
            try:
                data = await self._bus.read_bytes(self._address, self._type.byte_count)
            finally:
                self._currently_polling = False
                if bounded:
                    self._pending_polls -= 1
            if len(data) != self._type.byte_count:
                raise TransportError(
                    f"Expected {self._type.byte_count} byte(s) from {self._address:#04x}, "
                    f"got {len(data)}"
                )
            self._process_read(self._decode(data), suppress_pin)

        def dropped(future: asyncio.Future[None]) -> None:
            # The queue shut down before the read got its turn
            if future.cancelled() and not started:
                self._pending_polls -= 1

        future = self._queue.submit(read)
        if bounded:
            self._pending_polls += 1
            future.add_done_callback(dropped)
        # A caller that stops waiting leaves the read queued and counted
        await asyncio.shield(future)

    def _process_read(self, read_state: int, suppress_pin: int | None) -> None:
        """Diff a raw read against the current state and emit input changes."""
        read_state ^= self._inverted

        for pin in range(self._pins):
            if self._directions[pin] is not PinDirection.INPUT:
                continue
            value = bool(read_state >> pin & 1)
            if bool(self._current_state >> pin & 1) == value:
                continue
            self._current_state = _set_bit(self._current_state, pin, value)
            if pin != suppress_pin:
                self._emit(PinChange(pin=pin, value=value))

    # -- Pin configuration -----------------------------------------------------

    async def configure_output(
        self, pin: PinT, inverted: bool, initial_value: bool | None = None
    ) -> None:
        """Define ``pin`` as an output.

        Args:
            pin: Pin number.
            inverted: True if the pin is handled inverted (logical True =
                electrical low).
            initial_value: Logical value written immediately. If None, the
                last known value (initially from ``initial_state``) is kept
                and nothing is written.

        Raises:
            PinRangeError: If ``pin`` is out of range.
            Exception: Whatever the bus raised while writing.
        """
        self._check_pin(pin)

        self._inverted = _set_bit(self._inverted, pin, inverted)
        self._input_mask = _set_bit(self._input_mask, pin, False)
        self._directions[pin] = PinDirection.OUTPUT

        if initial_value is None:
            return
        await self._commit(lambda state: _set_bit(state, pin, initial_value))

    async def configure_input(self, pin: PinT, inverted: bool) -> None:
        """Define ``pin`` as an input.

        Drives the pin high so the remote circuit can pull it low, then
        reads the current level of the pin without emitting an event for it.

        Args:
            pin: Pin number.
            inverted: True if the pin is handled inverted (electrical low =
                logical True).

        Raises:
            PinRangeError: If ``pin`` is out of range.
            Exception: Whatever the bus raised. If the write fails the pin
                stays configured as input and the read is skipped.
        """
        self._check_pin(pin)

        self._inverted = _set_bit(self._inverted, pin, inverted)
        self._input_mask = _set_bit(self._input_mask, pin, True)
        self._directions[pin] = PinDirection.INPUT

        await self._commit()
        await self._poll(pin, bounded=False)

    async def set_pin(self, pin: PinT, value: bool | None = None) -> None:
        """Set the value of an output pin.

        Args:
            pin: Pin number.
            value: New logical value. If None, the pin is toggled.

        Raises:
            PinRangeError: If ``pin`` is out of range.
            StateError: If ``pin`` is not configured as an output.
            Exception: Whatever the bus raised while writing.
        """
        self._check_pin(pin)
        if self._directions[pin] is not PinDirection.OUTPUT:
            raise StateError(f"Pin {pin} is not defined as output")

        if value is None:
            await self._commit(lambda state: state ^ (1 << pin))
        else:
            await self._commit(lambda state: _set_bit(state, pin, value))

    async def set_all_pins(self, value: bool) -> None:
        """Set ``value`` on every output pin in a single write.

        Input and undefined pins keep their state.

        Args:
            value: New logical value for all outputs.

        Raises:
            Exception: Whatever the bus raised while writing.
        """
        output_mask = 0
        for pin, direction in enumerate(self._directions):
            if direction is PinDirection.OUTPUT:
                output_mask |= 1 << pin

        if value:
            await self._commit(lambda state: state | output_mask)
        else:
            await self._commit(lambda state: state & ~output_mask)

    def get_pin_value(self, pin: int) -> bool:
        """Return the last known logical value of ``pin``.

        This is the cached state, not a fresh read from the IC; call
        :meth:`poll` first if interrupts are not used. Returns False for
        pins out of range.
        """
        if not 0 <= pin < self._pins:
            return False
        return bool(self._current_state >> pin & 1)
