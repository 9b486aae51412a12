"""
Virtual Bus
===========

In-process bus master wired to a simulated device. Host transactions are
replayed as the individual bus phases the target would see on a real
wire, with the same ACK/NACK accounting:

- a write stops at the first data byte the target NACKs, and the STOP
  that ends it is still delivered
- a read ACKs every byte but the last, which the master NACKs

``write`` and ``read`` return what actually moved, so the driver sees
short transfers exactly as it would on hardware. ``log`` records every
transaction for tests.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol


logger = logging.getLogger(__name__)


class BusTarget(Protocol):
    """Slave side of the bus, as implemented by the device model."""

    def select(self, address: int, read: bool) -> bool: ...

    def receive(self, value: int) -> bool: ...

    def transmit(self) -> int: ...

    def acknowledge(self, more: bool) -> None: ...

    def stop(self) -> None: ...


@dataclass
class Transaction:
    """One recorded bus transaction."""

    kind: str           # "write" or "read"
    data: bytes
    requested: int


@dataclass
class VirtualBus:
    """
    Bus master for a simulated target.

    Attributes:
        target: Device answering on the bus
        address: Target address, informational
        log: Every transaction issued, in order
    """

    target: BusTarget
    address: int = 0x21
    log: list[Transaction] = field(default_factory=list)
    closed: bool = False

    def write(self, data: bytes) -> int:
        """Write transaction; returns the number of bytes the target ACKed."""
        count = 0
        if self.target.select(self.address, read=False):
            for value in data:
                if not self.target.receive(value):
                    break
                count += 1
            self.target.stop()
        else:
            logger.debug("Address 0x%02X not acknowledged", self.address)

        self.log.append(Transaction("write", bytes(data[:count]), len(data)))
        logger.debug("TX %s (%d/%d)", bytes(data).hex(" "), count, len(data))
        return count

    def read(self, length: int) -> bytes:
        """Read transaction; returns the bytes received (empty on address NACK)."""
        data = bytearray()
        if self.target.select(self.address, read=True):
            for index in range(length):
                data.append(self.target.transmit())
                self.target.acknowledge(more=index < length - 1)
        else:
            logger.debug("Address 0x%02X not acknowledged", self.address)

        self.log.append(Transaction("read", bytes(data), length))
        logger.debug("RX %s", bytes(data).hex(" "))
        return bytes(data)

    def close(self) -> None:
        self.closed = True

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def writes(self) -> list[bytes]:
        """Payloads of all write transactions."""
        return [t.data for t in self.log if t.kind == "write"]

    def reads(self) -> list[bytes]:
        """Payloads of all read transactions."""
        return [t.data for t in self.log if t.kind == "read"]

    def clear(self) -> None:
        self.log.clear()
