"""
Chip Memory Model
=================

Read-only description of a target: signature, flash page size, end of
writable flash and EEPROM size. The bootloader compiles this into its
image and reports it as an 8-byte block; the host reads it during the
handshake and sizes every later operation from it.

Chip Info Block
---------------
    ┌───────────────┬──────────┬──────────────┬───────────────┐
    │ signature[3]  │ pagesize │ flash_end BE │ eeprom_size BE│
    └───────────────┴──────────┴──────────────┴───────────────┘

``flash_end`` is the exclusive upper bound of writable flash, which is also
where the bootloader itself starts. Nothing below ``flash_end`` belongs to
the bootloader, so no protocol operation can overwrite it.
"""

from dataclasses import dataclass
from typing import Final

from twiboot.errors import ProtocolMismatch
from twiboot.protocol import CHIPINFO_LENGTH, VERSION_LENGTH


# =============================================================================
# Chip Info
# =============================================================================

@dataclass(frozen=True)
class ChipInfo:
    """
    Memory geometry reported by the bootloader.

    Attributes:
        signature: Three device signature bytes
        page_size: Flash page size in bytes
        flash_end: First address of the bootloader (exclusive end of app flash)
        eeprom_size: EEPROM size in bytes
    """

    signature: bytes
    page_size: int
    flash_end: int
    eeprom_size: int

    def __post_init__(self) -> None:
        if len(self.signature) != 3:
            raise ValueError(f"signature must be 3 bytes, got {len(self.signature)}")
        if not 0 < self.page_size <= 0xFF or self.page_size & (self.page_size - 1):
            raise ValueError(f"page size must be a power of two below 256: {self.page_size}")
        if not 0 <= self.flash_end <= 0xFFFF:
            raise ValueError(f"flash end out of range: 0x{self.flash_end:X}")
        if not 0 <= self.eeprom_size <= 0xFFFF:
            raise ValueError(f"eeprom size out of range: 0x{self.eeprom_size:X}")

    def to_bytes(self) -> bytes:
        """Encode as the 8-byte wire block (16-bit fields big-endian)."""
        return bytes([
            *self.signature,
            self.page_size,
            (self.flash_end >> 8) & 0xFF,
            self.flash_end & 0xFF,
            (self.eeprom_size >> 8) & 0xFF,
            self.eeprom_size & 0xFF,
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> "ChipInfo":
        """
        Decode the 8-byte wire block.

        Raises:
            ProtocolMismatch: If the block is short or describes an
                impossible device (e.g. a page size of zero).
        """
        if len(data) != CHIPINFO_LENGTH:
            raise ProtocolMismatch(
                f"chip info must be {CHIPINFO_LENGTH} bytes, got {len(data)}"
            )
        try:
            return cls(
                signature=bytes(data[0:3]),
                page_size=data[3],
                flash_end=(data[4] << 8) | data[5],
                eeprom_size=(data[6] << 8) | data[7],
            )
        except ValueError as e:
            raise ProtocolMismatch(f"invalid chip info {bytes(data).hex()}: {e}") from e

    @property
    def signature_text(self) -> str:
        """Signature formatted as '0x1e 0x93 0x07'."""
        return " ".join(f"0x{b:02x}" for b in self.signature)

    @property
    def name(self) -> str:
        """Device name for the signature, or 'unknown'."""
        return chip_name(self.signature)


# =============================================================================
# Signature Table
# =============================================================================

KNOWN_CHIPS: Final[dict[bytes, str]] = {
    bytes([0x1E, 0x93, 0x07]): "AVR Mega 8",
    bytes([0x1E, 0x93, 0x0A]): "AVR Mega 88",
    bytes([0x1E, 0x94, 0x06]): "AVR Mega 168",
    bytes([0x1E, 0x95, 0x02]): "AVR Mega 32",
}


def chip_name(signature: bytes) -> str:
    """Look up a device name by signature."""
    return KNOWN_CHIPS.get(bytes(signature), "unknown")


# =============================================================================
# Device Profiles
# =============================================================================

@dataclass(frozen=True)
class DeviceProfile:
    """
    Build-time constants of one bootloader image.

    Attributes:
        name: Short profile name used on the command line
        version: Version string answered to READ_VERSION (max 16 chars)
        chip: Chip info block compiled into the image
        flash_size: Total flash including the bootloader section
        address: Bus address the bootloader listens on
        boot_timeout: Timer ticks before the application is started
    """

    name: str
    version: str
    chip: ChipInfo
    flash_size: int
    address: int = 0x21
    boot_timeout: int = 40

    def __post_init__(self) -> None:
        if len(self.version) > VERSION_LENGTH:
            raise ValueError(f"version string longer than {VERSION_LENGTH}: {self.version!r}")
        if self.chip.flash_end > self.flash_size:
            raise ValueError("flash end beyond flash size")

    @property
    def version_block(self) -> bytes:
        """Version string NUL-padded to the 16-byte wire block."""
        return self.version.encode("ascii").ljust(VERSION_LENGTH, b"\x00")


# 512 words of bootloader section on all supported parts
DEVICE_PROFILES: Final[dict[str, DeviceProfile]] = {
    "atmega8": DeviceProfile(
        name="atmega8",
        version="TWIBOOT m8v2.0",
        chip=ChipInfo(bytes([0x1E, 0x93, 0x07]), 64, 0x1C00, 0x0200),
        flash_size=0x2000,
    ),
    "atmega88": DeviceProfile(
        name="atmega88",
        version="TWIBOOT m88v2.0",
        chip=ChipInfo(bytes([0x1E, 0x93, 0x0A]), 64, 0x1C00, 0x0200),
        flash_size=0x2000,
    ),
    "atmega168": DeviceProfile(
        name="atmega168",
        version="TWIBOOT m168v2.0",
        chip=ChipInfo(bytes([0x1E, 0x94, 0x06]), 128, 0x3C00, 0x0200),
        flash_size=0x4000,
    ),
}


def get_profile(name: str) -> DeviceProfile:
    """
    Look up a device profile by name (case-insensitive).

    Raises:
        KeyError: If no profile has that name.
    """
    try:
        return DEVICE_PROFILES[name.lower()]
    except KeyError:
        known = ", ".join(sorted(DEVICE_PROFILES))
        raise KeyError(f"unknown device profile '{name}' (known: {known})") from None
