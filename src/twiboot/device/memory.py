"""
Device Memories
===============

Flash and EEPROM models used by the simulated bootloader.

Flash is organised in pages. Programming a page is always erase (all
bytes back to 0xFF) followed by program from the page buffer, and the
region at and above ``writable_end`` (the bootloader section) refuses
both. While a page operation runs, reads from the application section
are disabled; the model re-enables them when the operation completes,
as the firmware does after its busy-wait.

EEPROM is byte addressed. Reads beyond the end return 0xFF and writes
beyond the end are ignored.
"""

import logging
from typing import Optional

from twiboot.protocol import ERASED_BYTE

logger = logging.getLogger(__name__)


class FlashMemory:
    """
    Paged program memory.

    Attributes:
        size: Total flash size in bytes (including the bootloader section)
        page_size: Erase/program unit in bytes
        writable_end: First address of the protected bootloader section
        erase_count: Pages erased so far
        program_count: Pages programmed so far
        rww_enabled: Application section readable (False during a page operation)
    """

    def __init__(self, size: int, page_size: int, writable_end: Optional[int] = None):
        """
        Initialize erased flash.

        Args:
            size: Flash size in bytes, a multiple of page_size
            page_size: Page size in bytes (power of two)
            writable_end: Protected boundary; defaults to the whole flash
        """
        if size % page_size:
            raise ValueError(f"flash size 0x{size:X} is not a multiple of page size {page_size}")
        self.size = size
        self.page_size = page_size
        self.writable_end = size if writable_end is None else writable_end
        self._data = bytearray([ERASED_BYTE]) * size
        self.erase_count = 0
        self.program_count = 0
        self.rww_enabled = True

    def read(self, address: int) -> int:
        """Read one byte; 0xFF outside the array."""
        if 0 <= address < self.size:
            return self._data[address]
        return ERASED_BYTE

    def page_base(self, address: int) -> int:
        """Start address of the page containing ``address``."""
        return address & ~(self.page_size - 1)

    def commit_page(self, address: int, data: bytes) -> bool:
        """
        Erase the page at ``address`` and program it from ``data``.

        Args:
            address: Any address inside the target page
            data: Page contents; shorter data leaves the rest erased

        Returns:
            True if the page was written, False if it lies in the
            protected bootloader section.
        """
        base = self.page_base(address)
        if base >= self.writable_end:
            logger.debug("Refusing page write at 0x%04X (bootloader section)", base)
            return False
        if len(data) > self.page_size:
            raise ValueError(f"page data too long: {len(data)} > {self.page_size}")

        self.rww_enabled = False
        self._data[base:base + self.page_size] = bytes([ERASED_BYTE]) * self.page_size
        self.erase_count += 1
        self._data[base:base + len(data)] = data
        self.program_count += 1
        self.rww_enabled = True

        logger.debug("Programmed flash page 0x%04X (%d bytes)", base, len(data))
        return True

    def load(self, data: bytes, offset: int = 0) -> None:
        """Preload contents (e.g. an application image) without page semantics."""
        if offset + len(data) > self.size:
            raise ValueError("image does not fit into flash")
        self._data[offset:offset + len(data)] = data

    def snapshot(self) -> bytes:
        """Copy of the whole array."""
        return bytes(self._data)


class EepromMemory:
    """
    Byte-addressed data memory.

    Attributes:
        size: EEPROM size in bytes
        write_count: Cell writes performed so far
    """

    def __init__(self, size: int):
        self.size = size
        self._data = bytearray([ERASED_BYTE]) * size
        self.write_count = 0

    def read(self, address: int) -> int:
        """Read one byte; 0xFF outside the array."""
        if 0 <= address < self.size:
            return self._data[address]
        return ERASED_BYTE

    def write(self, address: int, value: int) -> None:
        """Write one byte; ignored outside the array."""
        if 0 <= address < self.size:
            self._data[address] = value & 0xFF
            self.write_count += 1

    def write_block(self, address: int, data: bytes) -> None:
        """Write consecutive bytes starting at ``address``."""
        for offset, value in enumerate(data):
            self.write((address + offset) & 0xFFFF, value)

    def snapshot(self) -> bytes:
        """Copy of the whole array."""
        return bytes(self._data)
