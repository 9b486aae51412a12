"""
Memory Images
=============

A ``MemoryImage`` is the unit the host driver reads into and writes from:
a contiguous byte sequence and the memory address of its first byte.

Files
-----
Images are loaded from and saved to:

- Intel HEX (``.hex``, ``.ihx``), via the intelhex package; gaps and the
  region below the first record are filled with 0xFF
- raw binary (any other name)
- ``-`` (save only): hex dump on standard output

Loaded images always start at address 0, so a HEX file is placed at the
addresses its records name.
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Final, Optional, TextIO

from intelhex import IntelHex, IntelHexError

from twiboot.errors import ImageFileError
from twiboot.protocol import ERASED_BYTE

logger = logging.getLogger(__name__)


HEX_EXTENSIONS: Final[tuple[str, ...]] = (".hex", ".ihx")

STDOUT_NAME: Final[str] = "-"


@dataclass(frozen=True)
class MemoryImage:
    """
    Bytes destined for (or read from) one memory.

    Attributes:
        data: Image contents
        address: Memory address of the first byte
    """

    data: bytes
    address: int = 0

    def __post_init__(self) -> None:
        if self.address < 0:
            raise ValueError(f"negative image address: {self.address}")

    def __len__(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        """Exclusive end address."""
        return self.address + len(self.data)

    def __repr__(self) -> str:
        return f"MemoryImage(address=0x{self.address:04X}, size={len(self.data)})"


def is_hex_file(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in HEX_EXTENSIONS


def load_image(filename: str) -> MemoryImage:
    """
    Load an image from a HEX or binary file.

    Raises:
        ImageFileError: If the file cannot be read or parsed.
    """
    if filename == STDOUT_NAME:
        raise ImageFileError(filename, "cannot load an image from standard output")

    try:
        if is_hex_file(filename):
            ih = IntelHex()
            ih.padding = ERASED_BYTE
            ih.fromfile(filename, format="hex")
            if len(ih) == 0:
                data = b""
            else:
                data = ih.tobinarray(start=0, end=ih.maxaddr()).tobytes()
        else:
            with open(filename, "rb") as f:
                data = f.read()
    except OSError as e:
        raise ImageFileError(filename, e.strerror or str(e)) from e
    except IntelHexError as e:
        raise ImageFileError(filename, f"invalid Intel HEX: {e}") from e

    logger.debug("Loaded %d bytes from %s", len(data), filename)
    return MemoryImage(bytes(data))


def save_image(image: MemoryImage, filename: str, stdout: Optional[TextIO] = None) -> None:
    """
    Save an image to a HEX file, a binary file, or as a dump to stdout.

    Args:
        image: Image to save.
        filename: Target file name, or '-' for a hex dump.
        stdout: Stream used for '-' (defaults to sys.stdout).

    Raises:
        ImageFileError: If the file cannot be written.
    """
    try:
        if filename == STDOUT_NAME:
            ih = IntelHex()
            ih.frombytes(image.data, offset=image.address)
            ih.dump(tofile=stdout or sys.stdout)
        elif is_hex_file(filename):
            ih = IntelHex()
            ih.frombytes(image.data, offset=image.address)
            ih.write_hex_file(filename)
        else:
            with open(filename, "wb") as f:
                f.write(image.data)
    except OSError as e:
        raise ImageFileError(filename, e.strerror or str(e)) from e

    logger.debug("Saved %d bytes to %s", len(image), filename)
