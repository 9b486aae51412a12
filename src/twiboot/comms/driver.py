"""
TWIBOOT Host Driver
===================

Bus master side of the protocol: handshake, then block-chunked read,
write and verify of flash and EEPROM.

Handshake
---------
1. SWITCH_APPLICATION(BOOTLOADER): a running application resets into the
   bootloader, a bootloader stays where it is
2. READ_VERSION: 16 bytes, proves a bootloader answered
3. ACCESS_CHIPINFO: 8 bytes, sizes every later operation

Block Sizes
-----------
Reads and verify move READ_BLOCK_SIZE bytes per transaction. Flash writes
move exactly one page per transaction, page aligned, with the last page
padded with 0xFF. EEPROM writes move EEPROM_WRITE_BLOCK_SIZE bytes.

Progress
--------
The optional progress callback is called as ``(label, position, total)``
before every block and once more with ``position == total`` on
completion. ``(label, -1, -1)`` reports an abort.

Example:
    with TwiBootloader("/dev/i2c-1", 0x21) as twb:
        print(twb.version, twb.chip_name)
        twb.write(MemoryType.FLASH, load_image("app.hex"))
        twb.verify(MemoryType.FLASH, load_image("app.hex"))
"""

import logging
from typing import Callable, Final, Optional, Protocol

from twiboot.chipinfo import ChipInfo
from twiboot.errors import (
    AlignmentError,
    BusTransactionError,
    DeviceUnreachable,
    ProtocolMismatch,
    SizeError,
    VerifyMismatch,
)
from twiboot.image import MemoryImage
from twiboot.protocol import (
    ACCESS_HEADER_LENGTH,
    BootType,
    CHIPINFO_LENGTH,
    DEFAULT_ADDRESS,
    ERASED_BYTE,
    MemoryType,
    VERSION_LENGTH,
    access_frame,
    decode_version,
    read_version_frame,
    switch_application_frame,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Bytes per flash/eeprom read request
READ_BLOCK_SIZE: Final[int] = 128

# Bytes per eeprom write request
EEPROM_WRITE_BLOCK_SIZE: Final[int] = 16

DEFAULT_DEVICE: Final[str] = "/dev/i2c-0"

# Type alias for progress callback: (label, position, total) -> None
ProgressCallback = Callable[[str, int, int], None]


class Bus(Protocol):
    """Bus master bound to one target address."""

    def write(self, data: bytes) -> int: ...

    def read(self, length: int) -> bytes: ...

    def close(self) -> None: ...


# =============================================================================
# Driver
# =============================================================================

class TwiBootloader:
    """
    Host driver for one TWIBOOT target.

    The driver is not thread-safe; operations run one at a time and each
    bus transaction blocks until the adapter completes it.

    Attributes:
        device: Adapter device path
        address: Target bus address
        progress: Optional progress callback
        version: Bootloader version string (after open)
        chip_info: Chip geometry (after open)
    """

    def __init__(
        self,
        device: str = DEFAULT_DEVICE,
        address: int = DEFAULT_ADDRESS,
        bus: Optional[Bus] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            device: Adapter device path, used when no bus is given.
            address: 7-bit target address.
            bus: Already opened bus master (e.g. a VirtualBus); when None
                open() opens ``device`` through the Linux I2C adapter.
            progress: Progress callback for read/write/verify.
        """
        self.device = device
        self.address = address
        self.progress = progress
        self._bus = bus
        self._owns_bus = bus is None
        self.connected = False
        self.version: Optional[str] = None
        self.chip_info: Optional[ChipInfo] = None

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def open(self) -> None:
        """
        Open the bus and run the bootloader handshake.

        Raises:
            DeviceUnreachable: If the bus cannot be opened or a handshake
                transaction does not complete.
            ProtocolMismatch: If the version or chip info read is short
                or invalid.
        """
        if self.connected:
            return

        if self._bus is None:
            from twiboot.comms.i2c import I2CBus
            self._bus = I2CBus.open(self.device, self.address)
        self.connected = True

        try:
            self._handshake()
        except (DeviceUnreachable, ProtocolMismatch):
            self.close()
            raise

        logger.info("Connected to %s, %s", self.version, self.chip_name)
        logger.debug(
            "Page size %d, flash 0x%04X, eeprom 0x%04X",
            self.chip_info.page_size, self.chip_info.flash_end, self.chip_info.eeprom_size,
        )

    def _handshake(self) -> None:
        try:
            if self._bus.write(switch_application_frame(BootType.BOOTLOADER)) != 2:
                raise DeviceUnreachable(
                    f"failed to switch to bootloader (invalid address 0x{self.address:02X}?)"
                )

            if self._bus.write(read_version_frame()) != 1:
                raise DeviceUnreachable("failed to get bootloader version")
            raw = self._bus.read(VERSION_LENGTH)
            if len(raw) != VERSION_LENGTH:
                raise ProtocolMismatch(
                    f"short version read: {len(raw)} of {VERSION_LENGTH} bytes"
                )
            self.version = decode_version(raw)

            if self._bus.write(access_frame(MemoryType.CHIPINFO, 0)) != ACCESS_HEADER_LENGTH:
                raise DeviceUnreachable("failed to get chipinfo")
            self.chip_info = ChipInfo.from_bytes(self._bus.read(CHIPINFO_LENGTH))

        except BusTransactionError as e:
            raise DeviceUnreachable(f"handshake failed: {e}") from e

    def close(self) -> None:
        """
        Start the application and release the bus.

        The switch is best effort: the target does not answer it, and a
        failure is only logged.
        """
        if self._bus is None:
            return

        if self.connected:
            try:
                self._bus.write(switch_application_frame(BootType.APPLICATION))
            except BusTransactionError as e:
                logger.warning("Failed to start application: %s", e)
            self.connected = False

        if self._owns_bus:
            self._bus.close()
            self._bus = None

    def __enter__(self) -> "TwiBootloader":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def chip_name(self) -> str:
        if self.chip_info is None:
            return "unknown"
        return self.chip_info.name

    @property
    def page_size(self) -> int:
        return self.chip_info.page_size if self.chip_info else 0

    @staticmethod
    def get_memtype(name: str) -> Optional[MemoryType]:
        """Map 'flash' or 'eeprom' to a memory type; None for anything else."""
        try:
            memory = MemoryType[name.upper()]
        except KeyError:
            return None
        return memory if memory in (MemoryType.FLASH, MemoryType.EEPROM) else None

    def get_memsize(self, memtype: MemoryType) -> int:
        """Writable size of a memory as reported by the handshake (0 before open)."""
        if self.chip_info is None:
            return 0
        if memtype is MemoryType.FLASH:
            return self.chip_info.flash_end
        if memtype is MemoryType.EEPROM:
            return self.chip_info.eeprom_size
        return 0

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def read(self, memtype: MemoryType, length: Optional[int] = None, address: int = 0) -> MemoryImage:
        """
        Read a memory range.

        Args:
            memtype: FLASH or EEPROM.
            length: Bytes to read; defaults to the rest of the memory.
            address: Start address.

        Returns:
            Image of exactly ``length`` bytes.

        Raises:
            SizeError: If the range exceeds the memory.
            BusTransactionError: If a block read fails; nothing is returned.
        """
        size = self._checked_size(memtype)
        if length is None:
            length = max(size - address, 0)
        self._check_range(memtype, address, length, size)

        label = f"reading {memtype.label}"
        data = bytearray()
        pos = 0
        while pos < length:
            self._report(label, pos, length)
            block = min(READ_BLOCK_SIZE, length - pos)
            try:
                data += self._read_block(memtype, address + pos, block, "read")
            except BusTransactionError:
                self._report(label, -1, -1)
                raise
            pos += block

        self._report(label, pos, length)
        logger.debug("Read %d bytes of %s from 0x%04X", length, memtype.label, address)
        return MemoryImage(bytes(data), address)

    def write(self, memtype: MemoryType, image: MemoryImage) -> None:
        """
        Write an image at ``image.address``.

        Flash is written page by page; the image must start on a page
        boundary and its last page is padded with 0xFF.

        Raises:
            AlignmentError: Flash image not page aligned (no bus traffic).
            SizeError: Image exceeds the memory (no bus traffic).
            BusTransactionError: If a block write fails.
        """
        size = self._checked_size(memtype)
        self._check_range(memtype, image.address, len(image), size)

        if memtype is MemoryType.FLASH:
            block_size = self.chip_info.page_size
            if image.address % block_size:
                raise AlignmentError(image.address, block_size)
        else:
            block_size = EEPROM_WRITE_BLOCK_SIZE

        label = f"writing {memtype.label}"
        total = len(image)
        pos = 0
        while pos < total:
            self._report(label, pos, total)
            chunk = image.data[pos:pos + block_size]
            if memtype is MemoryType.FLASH:
                chunk = chunk.ljust(block_size, bytes([ERASED_BYTE]))
            try:
                self._write_block(memtype, image.address + pos, chunk)
            except BusTransactionError:
                self._report(label, -1, -1)
                raise
            pos += block_size

        self._report(label, total, total)
        logger.debug("Wrote %d bytes of %s at 0x%04X", total, memtype.label, image.address)

    def verify(self, memtype: MemoryType, image: MemoryImage) -> None:
        """
        Read back the image's range and compare it.

        Raises:
            SizeError: Image exceeds the memory.
            VerifyMismatch: At the first block that differs.
            BusTransactionError: If a block read fails.
        """
        size = self._checked_size(memtype)
        self._check_range(memtype, image.address, len(image), size)

        label = f"verifying {memtype.label}"
        total = len(image)
        pos = 0
        while pos < total:
            self._report(label, pos, total)
            block = min(READ_BLOCK_SIZE, total - pos)
            offset = image.address + pos
            try:
                data = self._read_block(memtype, offset, block, "verify")
            except BusTransactionError:
                self._report(label, -1, -1)
                raise
            if data != image.data[pos:pos + block]:
                self._report(label, -1, -1)
                raise VerifyMismatch(memtype.label, offset)
            pos += block

        self._report(label, total, total)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _checked_size(self, memtype: MemoryType) -> int:
        if not self.connected or self.chip_info is None:
            raise DeviceUnreachable("not connected")
        if memtype not in (MemoryType.FLASH, MemoryType.EEPROM):
            raise ValueError(f"not a readable/writable memory: {memtype!r}")
        return self.get_memsize(memtype)

    @staticmethod
    def _check_range(memtype: MemoryType, address: int, length: int, size: int) -> None:
        if address < 0 or length < 0 or address + length > size:
            raise SizeError(memtype.label, address + length, size)

    def _report(self, label: str, pos: int, total: int) -> None:
        if self.progress:
            self.progress(label, pos, total)

    def _read_block(self, memtype: MemoryType, address: int, length: int, operation: str) -> bytes:
        self._transfer_write(access_frame(memtype, address), operation, memtype, address)
        try:
            data = self._bus.read(length)
        except BusTransactionError as e:
            raise BusTransactionError(
                "read transaction failed", operation, memtype.label, address, length, 0
            ) from e
        if len(data) != length:
            raise BusTransactionError(
                "short read", operation, memtype.label, address, length, len(data)
            )
        return data

    def _write_block(self, memtype: MemoryType, address: int, data: bytes) -> None:
        self._transfer_write(access_frame(memtype, address, data), "write", memtype, address)

    def _transfer_write(self, frame: bytes, operation: str, memtype: MemoryType, address: int) -> None:
        try:
            count = self._bus.write(frame)
        except BusTransactionError as e:
            raise BusTransactionError(
                "write transaction failed", operation, memtype.label, address, len(frame), 0
            ) from e
        if count != len(frame):
            raise BusTransactionError(
                "write not acknowledged", operation, memtype.label, address, len(frame), count
            )
