"""
TWIBOOT Wire Protocol
=====================

Constants shared by the device model and the host driver. Every
transaction starts with a single command byte written after SLA+W; the
meaning of the following bytes depends on that command.

Transaction Layout
------------------
    SLA+W 0x00 STO                                   WAIT (abort boot timeout)
    SLA+W 0x01 SLA+R {16 bytes} STO                  READ_VERSION
    SLA+W 0x01 0x80 STO                              SWITCH_APPLICATION -> app
    SLA+W 0x01 0x00 STO                              SWITCH_APPLICATION -> boot
    SLA+W 0x02 0x00 ah al SLA+R {8 bytes} STO        read chip info
    SLA+W 0x02 0x01 ah al SLA+R {n bytes} STO        read flash
    SLA+W 0x02 0x01 ah al {page bytes} STO           write one flash page
    SLA+W 0x02 0x02 ah al SLA+R {n bytes} STO        read eeprom
    SLA+W 0x02 0x02 ah al {n bytes} STO              write eeprom

Any other leading byte makes the bootloader start the application.

Commands on the wire only use the low nibble. After the second byte the
device refines the command into an internal value with the selector in the
high nibble (0x12 = chip info, 0x22 = flash, ...); ``Command`` holds both.
"""

from enum import IntEnum
from typing import Final, Optional


# =============================================================================
# Commands
# =============================================================================

class Command(IntEnum):
    """
    Protocol commands, wire values and internal refinements.

    SWITCH_APPLICATION and READ_VERSION share 0x01: written alone and
    followed by SLA+R it reads the version, followed by a boot type byte
    it switches. ACCESS_MEMORY is the common prefix of all memory access.
    """

    WAIT = 0x00
    SWITCH_APPLICATION = 0x01
    READ_VERSION = 0x01
    ACCESS_MEMORY = 0x02

    # Refined by the boot type byte
    BOOT_BOOTLOADER = 0x11      # only understood by the application
    BOOT_APPLICATION = 0x21

    # Refined by the memory type byte
    ACCESS_CHIPINFO = 0x12
    ACCESS_FLASH = 0x22
    ACCESS_EEPROM = 0x32

    # Data phase of a memory write
    WRITE_FLASH_PAGE = 0x42
    WRITE_EEPROM_PAGE = 0x52


# Commands accepted as the first byte of a transaction
WIRE_COMMANDS: Final[frozenset] = frozenset(
    {Command.WAIT, Command.SWITCH_APPLICATION, Command.ACCESS_MEMORY}
)


class BootType(IntEnum):
    """Parameter of SWITCH_APPLICATION."""

    BOOTLOADER = 0x00
    APPLICATION = 0x80


class MemoryType(IntEnum):
    """Selector byte following ACCESS_MEMORY."""

    CHIPINFO = 0x00
    FLASH = 0x01
    EEPROM = 0x02

    @property
    def label(self) -> str:
        """Lower-case name used in messages and progress labels."""
        return self.name.lower()


# Memory selector -> refined access command
ACCESS_COMMANDS: Final[dict] = {
    MemoryType.CHIPINFO: Command.ACCESS_CHIPINFO,
    MemoryType.FLASH: Command.ACCESS_FLASH,
    MemoryType.EEPROM: Command.ACCESS_EEPROM,
}


# =============================================================================
# Sizes and Fill Values
# =============================================================================

VERSION_LENGTH: Final[int] = 16
CHIPINFO_LENGTH: Final[int] = 8

# Bytes in front of the data of a memory access: cmd, memtype, addr_hi, addr_lo
ACCESS_HEADER_LENGTH: Final[int] = 4

# Value returned for commands without readable data
NO_DATA: Final[int] = 0xFF

# State of erased flash, used to pad partial pages
ERASED_BYTE: Final[int] = 0xFF

DEFAULT_ADDRESS: Final[int] = 0x21


# =============================================================================
# Frame Builders
# =============================================================================

def switch_application_frame(boot_type: BootType) -> bytes:
    """Build SWITCH_APPLICATION with the given boot type."""
    return bytes([Command.SWITCH_APPLICATION, boot_type])


def read_version_frame() -> bytes:
    """Build the write half of READ_VERSION."""
    return bytes([Command.READ_VERSION])


def access_frame(memory: MemoryType, address: int, data: bytes = b"") -> bytes:
    """
    Build an ACCESS_MEMORY frame.

    Args:
        memory: Memory selector.
        address: 16-bit start address, sent high byte first.
        data: Payload for writes; empty for the write half of a read.

    Returns:
        Frame bytes ready for a single bus write.
    """
    if not 0 <= address <= 0xFFFF:
        raise ValueError(f"address out of range: 0x{address:X}")
    header = bytes([Command.ACCESS_MEMORY, memory, (address >> 8) & 0xFF, address & 0xFF])
    return header + bytes(data)


def decode_version(raw: bytes) -> str:
    """
    Decode the 16-byte version block.

    The high bit of every byte is cleared (older firmware used it as a
    flag) and trailing NULs are dropped.
    """
    return bytes(b & 0x7F for b in raw).split(b"\x00", 1)[0].decode("ascii")


def refine_access(selector: int) -> Optional[Command]:
    """Map a memory selector byte to its access command, or None."""
    try:
        return ACCESS_COMMANDS[MemoryType(selector)]
    except ValueError:
        return None
