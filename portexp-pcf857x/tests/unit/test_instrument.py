"""Unit tests for the named-pin PCF857x instrument."""

from __future__ import annotations

import asyncio
import sys
from unittest.mock import MagicMock, patch

import pytest

from portexp_core.errors import (
    ConfigurationError,
    PinRangeError,
    StateError,
    TransportError,
)
from portexp_core.types.pin import PinChange, PinDirection

from portexp_pcf857x.config import ExpanderConfig, InterruptConfig, PinConfig
from portexp_pcf857x.device import ExpanderType
from portexp_pcf857x.instrument import Pcf857xInstrument, create_instrument
from portexp_pcf857x.interrupt import InterruptRegistry


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _panel_config(**overrides: object) -> ExpanderConfig:
    """Return a PCF8574A config with an inverted LED and a button."""
    settings: dict[str, object] = {
        "name": "front_panel",
        "type": ExpanderType.PCF8574,
        "address": 0x38,
        "pins": (
            PinConfig(
                id=0,
                name="status_led",
                direction=PinDirection.OUTPUT,
                inverted=True,
                initial_value=False,
            ),
            PinConfig(id=7, name="start_button", direction=PinDirection.INPUT),
        ),
        "interrupt": InterruptConfig(line=17),
    }
    settings.update(overrides)
    return ExpanderConfig(**settings)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Open / close
# ---------------------------------------------------------------------------


class TestOpenClose:
    async def test_open_configures_pins(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> None:
        panel = Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        )
        await panel.open()

        assert panel.is_open
        mock_bus.write_bytes_sync.assert_called_once_with(0x38, b"\xff")
        mock_bus.read_bytes.assert_awaited_once_with(0x38, 1)
        assert panel.device.get_direction(0) is PinDirection.OUTPUT
        assert panel.device.get_direction(7) is PinDirection.INPUT
        assert panel.device.is_inverted(0)
        assert panel.read("status_led") is False
        assert panel.read("start_button") is True

    async def test_open_enables_interrupt(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> None:
        panel = Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        )
        await panel.open()

        mock_interrupt_source.acquire_line.assert_called_once_with(17)
        assert panel.device.interrupt_line == 17
        assert registry.ref_count(17) == 1

    async def test_open_twice(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> None:
        panel = Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        )
        await panel.open()
        await panel.open()
        mock_bus.write_bytes_sync.assert_called_once()

    async def test_close_releases_interrupt(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> None:
        panel = Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        )
        await panel.open()
        await panel.close()
        await panel.close()

        assert not panel.is_open
        assert 17 not in registry
        mock_interrupt_source.release.assert_called_once()
        # Injected resources stay open
        mock_bus.close.assert_not_called()
        mock_interrupt_source.close.assert_not_called()

    async def test_context_manager(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> None:
        async with Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        ) as panel:
            assert panel.is_open
        assert not panel.is_open

    async def test_open_failure_closes(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> None:
        mock_bus.write_bytes.side_effect = TransportError("nack")
        panel = Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        )

        with pytest.raises(TransportError):
            await panel.open()
        assert not panel.is_open
        mock_interrupt_source.acquire_line.assert_not_called()

    async def test_owned_bus_and_source(
        self, mock_bus: MagicMock, registry: InterruptRegistry
    ) -> None:
        source = MagicMock()
        bus_patch = patch("portexp_pcf857x.instrument.Smbus2Bus", return_value=mock_bus)
        source_patch = patch("portexp_pcf857x.instrument.LgpioInterruptSource", return_value=source)
        with bus_patch as bus_cls, source_patch as source_cls:
            panel = Pcf857xInstrument(_panel_config(i2c_bus=3), registry=registry)
            await panel.open()

            bus_cls.assert_called_once_with(3)
            mock_bus.open.assert_called_once()
            source_cls.assert_called_once_with(chip=0)
            source.acquire_line.assert_called_once_with(17)

            await panel.close()

        mock_bus.close.assert_called_once()
        source.close.assert_called_once()

    async def test_unused_owned_source_closed_while_line_shared(
        self, mock_bus: MagicMock, mock_interrupt_source: MagicMock, registry: InterruptRegistry
    ) -> None:
        other = Pcf857xInstrument(
            _panel_config(name="other", address=0x39, pins=()),
            bus=mock_bus,
            interrupt_source=mock_interrupt_source,
            registry=registry,
        )
        await other.open()

        source = MagicMock()
        with patch("portexp_pcf857x.instrument.LgpioInterruptSource", return_value=source):
            panel = Pcf857xInstrument(_panel_config(), bus=mock_bus, registry=registry)
            await panel.open()
            await panel.close()

        # The line was acquired through the other expander's source
        source.acquire_line.assert_not_called()
        source.close.assert_called_once()
        assert registry.ref_count(17) == 1
        await other.close()

    async def test_owned_source_closed_after_last_watcher(
        self, mock_bus: MagicMock, registry: InterruptRegistry
    ) -> None:
        first_source = MagicMock()
        second_source = MagicMock()
        with patch(
            "portexp_pcf857x.instrument.LgpioInterruptSource",
            side_effect=[first_source, second_source],
        ):
            first = Pcf857xInstrument(_panel_config(), bus=mock_bus, registry=registry)
            second = Pcf857xInstrument(
                _panel_config(name="other", address=0x39, pins=()),
                bus=mock_bus,
                registry=registry,
            )
            await first.open()
            await second.open()

        first_source.acquire_line.assert_called_once_with(17)
        second_source.acquire_line.assert_not_called()

        await first.close()
        # Line 17 is still watched through the first source
        first_source.close.assert_not_called()
        first_source.release.assert_not_called()

        await second.close()
        first_source.release.assert_called_once()
        first_source.close.assert_called_once()
        second_source.close.assert_called_once()
        assert 17 not in registry

    async def test_shared_line_closes_gpio_chip_once(
        self, mock_bus: MagicMock, registry: InterruptRegistry
    ) -> None:
        mock_lgpio = MagicMock()
        mock_lgpio.gpiochip_open.return_value = 42
        with patch.dict(sys.modules, {"lgpio": mock_lgpio}):
            first = Pcf857xInstrument(_panel_config(), bus=mock_bus, registry=registry)
            second = Pcf857xInstrument(
                _panel_config(name="other", address=0x39, pins=()),
                bus=mock_bus,
                registry=registry,
            )
            await first.open()
            await second.open()
            await first.close()
            await second.close()

        mock_lgpio.gpiochip_open.assert_called_once_with(0)
        mock_lgpio.gpio_free.assert_called_once_with(42, 17)
        mock_lgpio.gpiochip_close.assert_called_once_with(42)

    async def test_poll_interval_starts_poller(
        self, mock_bus16: MagicMock, registry: InterruptRegistry
    ) -> None:
        config = ExpanderConfig(
            name="relays",
            type=ExpanderType.PCF8575,
            address=0x20,
            poll_interval=0.01,
            pins=(PinConfig(id=15, name="door", direction=PinDirection.INPUT),),
        )
        panel = Pcf857xInstrument(config, bus=mock_bus16, registry=registry)
        await panel.open()
        await asyncio.sleep(0.035)
        await panel.close()

        count = mock_bus16.read_bytes.await_count
        assert count >= 3
        await asyncio.sleep(0.03)
        assert mock_bus16.read_bytes.await_count == count


# ---------------------------------------------------------------------------
# Pin access
# ---------------------------------------------------------------------------


class TestPinAccess:
    @pytest.fixture
    async def panel(
        self,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
        registry: InterruptRegistry,
    ) -> Pcf857xInstrument:
        instrument = Pcf857xInstrument(
            _panel_config(), bus=mock_bus, interrupt_source=mock_interrupt_source, registry=registry
        )
        await instrument.open()
        return instrument

    async def test_write_by_name(self, panel: Pcf857xInstrument, mock_bus: MagicMock) -> None:
        await panel.write("status_led", True)
        assert panel.read("status_led") is True
        # Inverted pin: logical True is electrical low
        assert mock_bus.write_bytes.await_args.args == (0x38, b"\xfe")

    async def test_write_by_number_toggle(self, panel: Pcf857xInstrument) -> None:
        await panel.write(0)
        assert panel.read(0) is True
        await panel.write(0)
        assert panel.read(0) is False

    async def test_write_input(self, panel: Pcf857xInstrument) -> None:
        with pytest.raises(StateError):
            await panel.write("start_button", True)

    async def test_write_all(self, panel: Pcf857xInstrument, mock_bus: MagicMock) -> None:
        await panel.write_all(True)
        assert panel.read("status_led") is True
        assert mock_bus.write_bytes.await_args.args == (0x38, b"\xfe")

    async def test_unknown_pin(self, panel: Pcf857xInstrument) -> None:
        with pytest.raises(ConfigurationError, match="Unknown pin"):
            panel.read("fan")
        with pytest.raises(PinRangeError):
            await panel.write(8, True)

    async def test_refresh_reports_changes(
        self, panel: Pcf857xInstrument, mock_bus: MagicMock
    ) -> None:
        events: list[PinChange] = []
        panel.add_listener(events.append)

        mock_bus.read_bytes.return_value = b"\x7f"
        await panel.refresh()

        assert events == [PinChange(pin=7, value=False)]
        assert panel.read("start_button") is False
        assert panel.pin_name(7) == "start_button"
        assert panel.pin_name(3) is None

    async def test_interrupt_reports_changes(
        self,
        panel: Pcf857xInstrument,
        mock_bus: MagicMock,
        mock_interrupt_source: MagicMock,
    ) -> None:
        listener = MagicMock()
        panel.add_listener(listener)

        handler = mock_interrupt_source.watch.call_args.args[1]
        mock_bus.read_bytes.return_value = b"\x7f"
        handler()
        await asyncio.sleep(0.01)

        listener.assert_called_once_with(PinChange(pin=7, value=False))

        panel.remove_listener(listener)
        mock_bus.read_bytes.return_value = b"\xff"
        await panel.refresh()
        listener.assert_called_once()

    async def test_access_when_closed(self) -> None:
        panel = Pcf857xInstrument(_panel_config())
        with pytest.raises(StateError, match="not opened"):
            panel.read("status_led")
        with pytest.raises(StateError):
            await panel.write("status_led", True)
        with pytest.raises(StateError):
            await panel.refresh()
        with pytest.raises(StateError):
            panel.add_listener(MagicMock())
        panel.remove_listener(MagicMock())


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateInstrument:
    def test_create(self) -> None:
        panel = create_instrument(
            name="front_panel",
            type="pcf8574a",
            address=0x38,
            pins=[
                {"id": 0, "name": "status_led", "direction": "output", "inverted": True},
                {"id": 7, "name": "start_button", "direction": "input"},
            ],
            interrupt={"line": 17, "chip": 0},
        )

        assert panel.name == "front_panel"
        assert panel.config.type is ExpanderType.PCF8574
        assert panel.config.pins[0].inverted is True
        assert panel.config.interrupt == InterruptConfig(line=17)
        assert not panel.is_open

    def test_create_with_line_number_and_defaults(self) -> None:
        panel = create_instrument("relays", ExpanderType.PCF8575, 0x20, interrupt=4)
        assert panel.config.interrupt == InterruptConfig(line=4)
        assert panel.config.i2c_bus == 1
        assert panel.config.pins == ()

    def test_create_invalid(self) -> None:
        with pytest.raises(ConfigurationError):
            create_instrument(
                "bad", "pcf8574", 0x20, pins=[{"id": 9, "name": "x", "direction": "in"}]
            )

    @pytest.mark.parametrize(
        "interrupt", [{"chip": 0}, {"line": "gpio17"}, "17"], ids=["no-line", "text-line", "text"]
    )
    def test_create_invalid_interrupt(self, interrupt: object) -> None:
        with pytest.raises(ConfigurationError, match="interrupt"):
            create_instrument("bad", "pcf8574", 0x20, interrupt=interrupt)  # type: ignore[arg-type]

    def test_create_invalid_address_and_state(self) -> None:
        with pytest.raises(ConfigurationError, match="address must be an integer"):
            create_instrument("bad", "pcf8574", "0x20")  # type: ignore[arg-type]
        with pytest.raises(ConfigurationError, match="initial_state"):
            create_instrument(
                "bad", "pcf8574", 0x20, initial_state="high"  # type: ignore[arg-type]
            )
