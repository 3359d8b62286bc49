"""Root conftest.py for the portexp monorepo.

Puts every package's src directory on the import path, registers the custom
markers and provides the mock bus and interrupt fixtures shared by the unit
tests of all packages.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Item


# Add all package src directories to path for imports
PROJECT_ROOT = Path(__file__).parent
for pkg_dir in PROJECT_ROOT.glob("portexp-*/src"):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))


def pytest_addoption(parser: Parser) -> None:
    """Add the option enabling tests against a real I2C bus.

    Args:
        parser: pytest argument parser.
    """
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that need a PCF857x on a real I2C bus",
    )


def pytest_configure(config: Config) -> None:
    """Register custom markers.

    Args:
        config: pytest configuration object.
    """
    config.addinivalue_line(
        "markers",
        "hardware: Test requiring a real I2C bus with an expander attached",
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow-running test",
    )


def pytest_collection_modifyitems(config: Config, items: list[Item]) -> None:
    """Skip hardware tests unless ``--run-hardware`` is given.

    Args:
        config: pytest configuration object.
        items: List of collected test items.
    """
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="needs --run-hardware")
    for item in items:
        if item.get_closest_marker("hardware"):
            item.add_marker(skip_hardware)


def pytest_report_header(config: Config) -> list[str]:
    """Add the hardware mode to the pytest header.

    Args:
        config: pytest configuration object.

    Returns:
        List of header lines.
    """
    lines = ["portexp monorepo test suite"]
    if config.getoption("--run-hardware"):
        lines.append("Hardware tests: enabled")
    return lines


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


def make_mock_bus(read_data: bytes = b"\xff") -> MagicMock:
    """Return a mock I2C bus.

    ``write_bytes_sync`` is a plain mock, ``write_bytes`` and ``read_bytes``
    are async mocks; ``read_bytes`` returns ``read_data``.
    """
    bus = MagicMock()
    bus.write_bytes_sync = MagicMock()
    bus.write_bytes = AsyncMock()
    bus.read_bytes = AsyncMock(return_value=read_data)
    return bus


@pytest.fixture
def mock_bus() -> MagicMock:
    """Mock I2C bus answering every read with all pins high (one byte)."""
    return make_mock_bus()


@pytest.fixture
def mock_bus16() -> MagicMock:
    """Mock I2C bus answering every read with all pins high (two bytes)."""
    return make_mock_bus(b"\xff\xff")


@pytest.fixture
def mock_interrupt_source() -> MagicMock:
    """Mock GPIO interrupt source handing out one sentinel handle per line."""
    source = MagicMock()
    source.acquire_line.side_effect = lambda line_id: {"line": line_id}
    return source


@pytest.fixture
def registry() -> Any:
    """Fresh interrupt registry, isolated from the process-wide one."""
    from portexp_pcf857x.interrupt import (  # pylint: disable=import-outside-toplevel
        InterruptRegistry,
    )

    return InterruptRegistry()
