"""
TWIBOOT Test Configuration
==========================

Shared fixtures: device profiles, simulated bootloaders, virtual buses
and connected drivers.
"""

import pytest

from twiboot.chipinfo import get_profile
from twiboot.comms import TwiBootloader, VirtualBus
from twiboot.device import ApplicationStub, Bootloader


@pytest.fixture
def atmega8():
    """ATmega8 profile: page 64, flash_end 0x1C00, eeprom 0x200."""
    return get_profile("atmega8")


@pytest.fixture
def device(atmega8):
    """Simulated ATmega8 in bootloader mode, no application."""
    return Bootloader(atmega8)


@pytest.fixture
def device_with_app(atmega8):
    """Simulated ATmega8 with a resident application."""
    return Bootloader(atmega8, application=ApplicationStub())


@pytest.fixture
def bus(device):
    """Virtual bus wired to the simulated device."""
    return VirtualBus(device, address=device.twi.address)


@pytest.fixture
def progress_log():
    """List collecting progress callback calls."""
    return []


@pytest.fixture
def twb(bus, progress_log):
    """Driver connected to the simulated device, handshake done."""
    driver = TwiBootloader(bus=bus, progress=lambda *args: progress_log.append(args))
    driver.open()
    bus.clear()
    progress_log.clear()
    yield driver
    driver.close()
