"""
Resident Application Stub
=========================

The application a bootloader hands over to. Real applications that want
to be updatable in the field keep listening on the bootloader's bus
address and understand one command: SWITCH_APPLICATION with boot type
BOOTLOADER, answered by resetting the chip (typically through the
watchdog) so the bootloader runs again.

This stub implements exactly that and nothing else, so the host's
"force bootloader mode" step can be exercised against a device that is
already running its application.
"""

import logging
from typing import Callable, Optional

from twiboot.protocol import BootType, Command, NO_DATA

logger = logging.getLogger(__name__)


class ApplicationStub:
    """
    Minimal application side of the protocol.

    Attributes:
        running: True between start() and the reset it requests
        start_count: How many times the bootloader handed over
        reset_requested: A reboot into the bootloader is scheduled for
            the end of the current transaction
    """

    def __init__(self) -> None:
        self.running = False
        self.start_count = 0
        self._reset: Optional[Callable[[], None]] = None
        self._position = 0
        self._command: Optional[int] = None

    @property
    def reset_requested(self) -> bool:
        """A reboot into the bootloader is scheduled for the end of the transaction."""
        return self._command is Command.BOOT_BOOTLOADER

    def start(self, reset: Callable[[], None]) -> None:
        """Entry point, called by the bootloader's handoff."""
        self.running = True
        self.start_count += 1
        self._reset = reset
        self._position = 0
        self._command = None
        logger.info("Application started")

    # -------------------------------------------------------------------------
    # Bus Target
    # -------------------------------------------------------------------------

    def select(self, read: bool) -> bool:
        self._position = 0
        return self.running

    def receive(self, value: int) -> bool:
        if not self.running:
            return False

        if self._position == 0:
            self._command = value
        elif self._position == 1 and self._command == Command.SWITCH_APPLICATION:
            if value == BootType.BOOTLOADER:
                logger.info("Bootloader requested, resetting")
                self._command = Command.BOOT_BOOTLOADER
        self._position += 1
        return True

    def transmit(self) -> int:
        return NO_DATA

    def acknowledge(self, more: bool) -> None:
        pass

    def stop(self) -> None:
        self._position = 0
        if self.reset_requested and self._reset is not None:
            self.running = False
            self._command = None
            self._reset()
