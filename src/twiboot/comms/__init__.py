"""
TWIBOOT Communication Module
============================

Host side of the TWIBOOT protocol: a driver that reads, writes and
verifies flash and EEPROM of a target running the bootloader, and the bus
masters it runs on.

Module Structure
----------------
- **driver**: handshake and block-chunked read/write/verify
- **i2c**: Linux ``/dev/i2c-N`` adapters through smbus2
- **virtual**: in-process bus to a simulated device
- **transfer**: ordered queue of read/write operations with files

Quick Start
-----------
    from twiboot.comms import TwiBootloader
    from twiboot.image import load_image
    from twiboot.protocol import MemoryType

    with TwiBootloader("/dev/i2c-1", 0x21) as twb:
        image = load_image("app.hex")
        twb.write(MemoryType.FLASH, image)
        twb.verify(MemoryType.FLASH, image)

Against the device model instead of hardware:

    device = Bootloader(get_profile("atmega8"))
    twb = TwiBootloader(bus=VirtualBus(device))

Error Handling
--------------
All communication errors inherit from ``CommsError`` and all transfer
errors from ``TransferError``, both defined in ``twiboot.errors``.

Thread Safety
-------------
The driver is NOT thread-safe. Use it from a single thread.
"""

from twiboot.comms.driver import (
    DEFAULT_DEVICE,
    EEPROM_WRITE_BLOCK_SIZE,
    READ_BLOCK_SIZE,
    Bus,
    ProgressCallback,
    TwiBootloader,
)
from twiboot.comms.i2c import (
    AdapterInfo,
    I2CBus,
    format_adapter_list,
    list_i2c_adapters,
)
from twiboot.comms.transfer import (
    Operation,
    OperationMode,
    parse_operation,
    run_operation,
    run_operations,
)
from twiboot.comms.virtual import BusTarget, Transaction, VirtualBus

__all__ = [
    # Driver
    "DEFAULT_DEVICE",
    "EEPROM_WRITE_BLOCK_SIZE",
    "READ_BLOCK_SIZE",
    "Bus",
    "ProgressCallback",
    "TwiBootloader",
    # Adapters
    "AdapterInfo",
    "I2CBus",
    "format_adapter_list",
    "list_i2c_adapters",
    # Virtual bus
    "BusTarget",
    "Transaction",
    "VirtualBus",
    # Transfer queue
    "Operation",
    "OperationMode",
    "parse_operation",
    "run_operation",
    "run_operations",
]
