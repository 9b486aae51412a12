"""
Linux I2C Adapter
=================

Bus master for real hardware: a Linux ``/dev/i2c-N`` character device
driven through smbus2. Every protocol transaction is one ``i2c_rdwr``
call carrying a single message, so the adapter generates START, the
address byte, the data and STOP exactly as the bootloader expects.

Adapter Requirements
--------------------
The adapter must support plain I2C messages (``I2C_FUNC_I2C``); SMBus-only
adapters cannot issue reads of arbitrary length and are rejected on open.

Access to ``/dev/i2c-*`` usually needs membership in the ``i2c`` group:

    sudo usermod -a -G i2c $USER
"""

import errno
import glob
import logging
import os
import re
from dataclasses import dataclass
from typing import Final, Optional

from smbus2 import I2cFunc, SMBus, i2c_msg

from twiboot.errors import BusTransactionError, DeviceUnreachable

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Adapter names exported by the i2c-dev driver
SYSFS_I2C_DEV: Final[str] = "/sys/class/i2c-dev"


# =============================================================================
# Adapter Enumeration
# =============================================================================

@dataclass(frozen=True)
class AdapterInfo:
    """
    An I2C adapter visible through i2c-dev.

    Attributes:
        device: Character device path (e.g. '/dev/i2c-1')
        number: Adapter number
        name: Driver-supplied adapter name, if known
    """

    device: str
    number: int
    name: Optional[str]

    def __str__(self) -> str:
        if self.name:
            return f"{self.device} - {self.name}"
        return self.device


def _adapter_name(number: int) -> Optional[str]:
    try:
        with open(os.path.join(SYSFS_I2C_DEV, f"i2c-{number}", "name")) as f:
            return f.read().strip() or None
    except OSError:
        return None


def list_i2c_adapters() -> list[AdapterInfo]:
    """
    List the I2C adapters available on this system.

    Returns:
        AdapterInfo per ``/dev/i2c-N`` node, sorted by adapter number.
    """
    adapters = []
    for device in glob.glob("/dev/i2c-*"):
        match = re.fullmatch(r"/dev/i2c-(\d+)", device)
        if not match:
            continue
        number = int(match.group(1))
        adapters.append(AdapterInfo(device, number, _adapter_name(number)))
        logger.debug("Found adapter: %s", device)

    return sorted(adapters, key=lambda a: a.number)


def format_adapter_list(adapters: list[AdapterInfo]) -> str:
    """Format adapters for display, one per line."""
    if not adapters:
        return "No I2C adapters found."
    return "\n".join(f"  {adapter}" for adapter in adapters)


# =============================================================================
# Bus Master
# =============================================================================

class I2CBus:
    """
    Bus master on a Linux I2C adapter, bound to one target address.

    Both transfer methods return what actually moved over the bus; the
    kernel either completes a message or fails it, so a failure surfaces
    as BusTransactionError with the OSError chained.

    Example:
        >>> bus = I2CBus.open("/dev/i2c-1", 0x21)
        >>> bus.write(bytes([0x00]))
        1
        >>> bus.close()
    """

    def __init__(self, smbus: SMBus, address: int, device: str = ""):
        self._smbus = smbus
        self.address = address
        self.device = device

    @classmethod
    def open(cls, device: str, address: int) -> "I2CBus":
        """
        Open an adapter and select the target.

        Args:
            device: Character device path.
            address: 7-bit target address.

        Raises:
            DeviceUnreachable: If the device cannot be opened or does not
                support raw I2C transactions.
        """
        logger.info("Opening %s, target address 0x%02X", device, address)

        try:
            smbus = SMBus(device)
        except OSError as e:
            if e.errno == errno.EACCES:
                raise DeviceUnreachable(
                    f"Permission denied accessing {device}. "
                    "You may need to add your user to the 'i2c' group: "
                    "sudo usermod -a -G i2c $USER"
                ) from e
            if e.errno == errno.ENOENT:
                raise DeviceUnreachable(
                    f"I2C adapter not found: {device}. "
                    "Use 'twiboot adapters' to list available adapters."
                ) from e
            raise DeviceUnreachable(f"failed to open '{device}': {e}") from e

        if not smbus.funcs & I2cFunc.I2C:
            smbus.close()
            raise DeviceUnreachable(f"I2C_FUNC_I2C not supported on '{device}'")

        return cls(smbus, address, device)

    def close(self) -> None:
        if self._smbus is None:
            return
        try:
            self._smbus.close()
            logger.debug("Adapter %s closed", self.device)
        except OSError as e:
            logger.warning("Error closing %s: %s", self.device, e)
        self._smbus = None

    def write(self, data: bytes) -> int:
        """
        One write transaction: START, SLA+W, data, STOP.

        Returns:
            Number of bytes written.
        """
        msg = i2c_msg.write(self.address, data)
        try:
            self._smbus.i2c_rdwr(msg)
        except OSError as e:
            raise BusTransactionError(
                f"write failed: {e}", expected=len(data), actual=0
            ) from e

        logger.debug("TX %s", bytes(data).hex(" "))
        return len(data)

    def read(self, length: int) -> bytes:
        """
        One read transaction: START, SLA+R, ``length`` bytes, STOP.

        The adapter ACKs every byte but the last, which it NACKs.
        """
        msg = i2c_msg.read(self.address, length)
        try:
            self._smbus.i2c_rdwr(msg)
        except OSError as e:
            raise BusTransactionError(
                f"read failed: {e}", expected=length, actual=0
            ) from e

        data = bytes(list(msg))
        logger.debug("RX %s", data.hex(" "))
        return data

    def __enter__(self) -> "I2CBus":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
