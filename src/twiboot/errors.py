"""
TWIBOOT Error Hierarchy
=======================

This module defines the exception hierarchy for the whole package.
All exceptions inherit from TwibootError, allowing callers to catch every
bootloader-related failure with a single except clause if desired.

Exception Hierarchy
-------------------
TwibootError (base)
├── CommsError (bus communication)
│   ├── DeviceUnreachable - bus open or handshake failure
│   ├── ProtocolMismatch - unexpected response length/content in handshake
│   └── BusTransactionError - a transaction moved the wrong byte count
├── TransferError (high-level read/write/verify)
│   ├── AlignmentError - flash write not starting on a page boundary
│   ├── SizeError - range exceeds the target memory
│   └── VerifyMismatch - readback differs from the written image
├── DeviceError (device model)
│   └── IllegalBusState - bus controller entered an unrecoverable state
└── ImageFileError - memory image file cannot be loaded or saved

Error Policy
------------
On the host every error aborts the current operation immediately; there is
no automatic retry. Errors raised by the driver carry enough context
(operation, memory type, offset) for the caller to report precisely.
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class TwibootError(Exception):
    """
    Base exception for all twiboot errors.

    Example:
        try:
            twb.write(MemoryType.FLASH, image)
        except TwibootError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(TwibootError):
    """Base exception for bus communication errors."""
    pass


class DeviceUnreachable(CommsError):
    """
    Cannot reach the bootloader.

    Raised when:
    - The bus character device cannot be opened
    - The adapter does not support raw I2C transactions
    - The target does not acknowledge its address during the handshake
    """
    pass


class ProtocolMismatch(CommsError):
    """
    The target answered, but not like a TWIBOOT bootloader.

    Raised when the version or chip info read during the handshake is
    short or carries values that cannot describe a real device.
    """
    pass


class BusTransactionError(CommsError):
    """
    A single bus transaction did not transfer the expected byte count.

    Attributes:
        operation: High-level operation in progress ("read", "write", ...)
        memory: Memory name ("flash", "eeprom") or None
        offset: Memory offset of the failing block, or None
        expected: Number of bytes the transaction should have moved
        actual: Number of bytes it actually moved
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        memory: Optional[str] = None,
        offset: Optional[int] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ):
        self.operation = operation
        self.memory = memory
        self.offset = offset
        self.expected = expected
        self.actual = actual
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        parts = []
        if self.operation:
            parts.append(self.operation)
        if self.memory:
            parts.append(self.memory)
        if self.offset is not None:
            parts.append(f"at 0x{self.offset:04X}")
        prefix = " ".join(parts)
        if self.expected is not None and self.actual is not None:
            message = f"{message} ({self.actual} of {self.expected} bytes)"
        return f"{prefix}: {message}" if prefix else message


# =============================================================================
# Transfer Exceptions
# =============================================================================

class TransferError(TwibootError):
    """Base exception for high-level read/write/verify failures."""
    pass


class AlignmentError(TransferError):
    """
    Flash write does not start on a page boundary.

    The bootloader erases and programs whole pages, so every flash write
    must start at a multiple of the page size. Raised before any bus
    traffic occurs.
    """

    def __init__(self, address: int, page_size: int):
        self.address = address
        self.page_size = page_size
        super().__init__(
            f"address 0x{address:04X} not aligned to page size 0x{page_size:02X}"
        )


class SizeError(TransferError):
    """
    Requested range does not fit into the target memory.

    Raised before any bus traffic occurs.
    """

    def __init__(self, memory: str, end: int, size: int):
        self.memory = memory
        self.end = end
        self.size = size
        super().__init__(f"invalid {memory} size: 0x{end:04X} > 0x{size:04X}")


class VerifyMismatch(TransferError):
    """
    Readback after write differs from the image.

    Attributes:
        memory: Memory name
        offset: Start offset of the first block that differs
    """

    def __init__(self, memory: str, offset: int):
        self.memory = memory
        self.offset = offset
        super().__init__(f"verify failed at {memory} page 0x{offset:04X}")


# =============================================================================
# Device Model Exceptions
# =============================================================================

class DeviceError(TwibootError):
    """Base exception for errors inside the device model."""
    pass


class IllegalBusState(DeviceError):
    """
    The bus controller entered an unrecoverable protocol state.

    The device answers this by resetting its bus peripheral; the
    exception is only raised to a caller that drives the model directly
    and asked to be told about it.
    """
    pass


# =============================================================================
# File Exceptions
# =============================================================================

class ImageFileError(TwibootError):
    """
    Memory image file cannot be read or written.

    Raised for unreadable files, malformed Intel HEX records, and
    unsupported output targets.
    """

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"{filename}: {reason}")
