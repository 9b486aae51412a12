"""
Transfer Queue
==============

Runs a list of requested read/write operations against a connected
driver, strictly in the order given:

    read   memory -> image -> file
    write  file -> image -> size check -> memory [-> verify]

The first failure abandons the rest of the queue and propagates to the
caller, which decides how to report it.

Operations are written on the command line as ``MEM:FILE``:

    flash:app.hex      eeprom:settings.bin      flash:-
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, TextIO

from twiboot.comms.driver import TwiBootloader
from twiboot.errors import SizeError
from twiboot.image import MemoryImage, load_image, save_image
from twiboot.protocol import MemoryType

logger = logging.getLogger(__name__)


class OperationMode(Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class Operation:
    """
    One queued transfer.

    Attributes:
        mode: READ (memory to file) or WRITE (file to memory)
        memory: FLASH or EEPROM
        filename: Image file, '-' for a hex dump (read only)
    """

    mode: OperationMode
    memory: MemoryType
    filename: str

    def __str__(self) -> str:
        return f"{self.mode.value} {self.memory.label}:{self.filename}"


def parse_operation(mode: OperationMode, spec: str) -> Operation:
    """
    Parse ``MEM:FILE``.

    Raises:
        ValueError: If the memory name is not 'flash' or 'eeprom' or the
            file name is missing.
    """
    name, sep, filename = spec.partition(":")
    memory = TwiBootloader.get_memtype(name)
    if not sep or memory is None:
        raise ValueError(f"invalid memtype: '{spec}'")
    if not filename:
        raise ValueError(f"missing file name: '{spec}'")
    if mode is OperationMode.WRITE and filename == "-":
        raise ValueError(f"cannot write {memory.label} from standard output")
    return Operation(mode, memory, filename)


def run_operation(
    twb: TwiBootloader,
    operation: Operation,
    verify: bool = True,
    stdout: Optional[TextIO] = None,
) -> MemoryImage:
    """
    Execute one operation on an open driver.

    Returns:
        The image read from the device or written to it.
    """
    memory = operation.memory

    if operation.mode is OperationMode.READ:
        image = twb.read(memory)
        save_image(image, operation.filename, stdout=stdout)
        logger.debug("Saved %s to %s", memory.label, operation.filename)
        return image

    image = load_image(operation.filename)
    size = twb.get_memsize(memory)
    if image.end > size:
        raise SizeError(memory.label, image.end, size)

    twb.write(memory, image)
    if verify:
        twb.verify(memory, image)
    logger.debug("Wrote %s from %s (%d bytes)", memory.label, operation.filename, len(image))
    return image


def run_operations(
    twb: TwiBootloader,
    operations: Iterable[Operation],
    verify: bool = True,
    stdout: Optional[TextIO] = None,
) -> int:
    """
    Execute operations in order, stopping at the first failure.

    Returns:
        Number of operations completed.
    """
    done = 0
    for operation in operations:
        logger.debug("Running %s", operation)
        run_operation(twb, operation, verify=verify, stdout=stdout)
        done += 1
    return done
