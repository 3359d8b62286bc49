"""Tests against a real PCF857x on the host I2C bus.

Run with ``pytest --run-hardware``. The expander is selected with the
environment variables ``PORTEXP_I2C_BUS`` (default 1), ``PORTEXP_ADDRESS``
(default 0x20) and ``PORTEXP_TYPE`` (``pcf8574`` or ``pcf8575``).
All pins are left high (released) when a test finishes.
"""

from __future__ import annotations

import os
from typing import Iterator

import pytest

from portexp_pcf857x.config import parse_type
from portexp_pcf857x.device import ExpanderType
from portexp_pcf857x.pcf8574 import Pcf8574
from portexp_pcf857x.pcf8575 import Pcf8575
from portexp_pcf857x.smbus_bus import Smbus2Bus

pytestmark = pytest.mark.hardware


@pytest.fixture
def bus() -> Iterator[Smbus2Bus]:
    with Smbus2Bus(int(os.environ.get("PORTEXP_I2C_BUS", "1"))) as i2c:
        yield i2c


@pytest.fixture
def expander_type() -> ExpanderType:
    return parse_type(os.environ.get("PORTEXP_TYPE", "pcf8574"))


@pytest.fixture
def address() -> int:
    return int(os.environ.get("PORTEXP_ADDRESS", "0x20"), 0)


async def test_released_pins_read_high(
    bus: Smbus2Bus, expander_type: ExpanderType, address: int
) -> None:
    facade = Pcf8574 if expander_type is ExpanderType.PCF8574 else Pcf8575
    pcf = facade(bus, address, True)
    await pcf.configure_input(0, inverted=False)

    # Nothing is expected to pull pin 0 low on an idle test board
    assert pcf.get_pin_value(0) is True
    pcf.close()


async def test_write_then_poll(bus: Smbus2Bus, expander_type: ExpanderType, address: int) -> None:
    facade = Pcf8574 if expander_type is ExpanderType.PCF8574 else Pcf8575
    pcf = facade(bus, address, True)
    try:
        await pcf.configure_output(1, inverted=False, initial_value=False)
        await pcf.poll()
        assert pcf.get_pin_value(1) is False
    finally:
        await pcf.set_all_pins(True)
        pcf.close()
