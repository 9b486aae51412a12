"""
twiboot - In-Field Programming for AVR Microcontrollers over I2C
================================================================

This package talks to TWIBOOT, a small bootloader that lets an 8-bit AVR
reprogram its own flash and EEPROM over the two-wire (I2C) bus, without
a dedicated programmer.

It contains both participants of the protocol:

Main Components
---------------
- **comms**: host side (twiboot tool)
    Handshake, then block-chunked read, write and verify of flash and
    EEPROM through a Linux I2C adapter

- **device**: device side
    The bootloader's protocol engine as a pure state machine, plus a
    simulated chip (flash, EEPROM, bus controller) that runs it

- **chipinfo**: memory geometry shared by both sides

- **image**: memory images and Intel HEX / binary files

Quick Start
-----------
Program a device:
    >>> from twiboot import TwiBootloader, MemoryType, load_image
    >>> image = load_image("app.hex")
    >>> with TwiBootloader("/dev/i2c-1", 0x21) as twb:
    ...     twb.write(MemoryType.FLASH, image)
    ...     twb.verify(MemoryType.FLASH, image)

Or use the command-line tool:
    $ twiboot -a 0x21 write flash:app.hex

Version History
---------------
2.0.0 - Memory access protocol (ACCESS_MEMORY) with chip info block
"""

__version__ = "2.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from twiboot.chipinfo import (
    DEVICE_PROFILES,
    KNOWN_CHIPS,
    ChipInfo,
    DeviceProfile,
    chip_name,
    get_profile,
)
from twiboot.comms import (
    I2CBus,
    TwiBootloader,
    VirtualBus,
    list_i2c_adapters,
)
from twiboot.device import ApplicationStub, Bootloader
from twiboot.errors import (
    AlignmentError,
    BusTransactionError,
    CommsError,
    DeviceError,
    DeviceUnreachable,
    IllegalBusState,
    ImageFileError,
    ProtocolMismatch,
    SizeError,
    TransferError,
    TwibootError,
    VerifyMismatch,
)
from twiboot.image import MemoryImage, load_image, save_image
from twiboot.protocol import BootType, Command, MemoryType

__all__ = [
    # Version info
    "__version__",
    # Chip model
    "DEVICE_PROFILES",
    "KNOWN_CHIPS",
    "ChipInfo",
    "DeviceProfile",
    "chip_name",
    "get_profile",
    # Protocol
    "BootType",
    "Command",
    "MemoryType",
    # Host
    "I2CBus",
    "TwiBootloader",
    "VirtualBus",
    "list_i2c_adapters",
    # Device
    "ApplicationStub",
    "Bootloader",
    # Images
    "MemoryImage",
    "load_image",
    "save_image",
    # Exception hierarchy
    "TwibootError",
    "CommsError",
    "DeviceUnreachable",
    "ProtocolMismatch",
    "BusTransactionError",
    "TransferError",
    "AlignmentError",
    "SizeError",
    "VerifyMismatch",
    "DeviceError",
    "IllegalBusState",
    "ImageFileError",
]
