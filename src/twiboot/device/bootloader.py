"""
Simulated TWIBOOT Device
========================

A whole target chip running the bootloader: bus controller, flash,
EEPROM, status indicators and the protocol engine from fsm.py. This is
the "interrupt handler" half of the engine: it turns bus activity into
events, asks ``transition`` what to do and applies the returned action
to the hardware model.

Bus Target Interface
--------------------
The virtual bus drives a target through five calls, one per bus phase:

    select(addr, read) SLA+W / SLA+R, returns True if the address is ACKed
    receive(value)     one data byte from the master, returns ACK/NACK
    transmit()         current contents of the transmit register
    acknowledge(more)  master ACK (more=True) or NACK after a sent byte
    stop()             STOP condition ending a write transaction

``ApplicationStub`` implements the same calls, so once the bootloader
hands off the device keeps answering on the same address.

Handoff
-------
When the engine requests the application (SWITCH_APPLICATION with boot
type APPLICATION, an unknown command byte, or the boot timeout) the
device disables its bus controller, keeping the configured address,
moves the interrupt vectors back to the application and calls the
application entry point.

A handoff triggered by a byte leaves the rest of that transaction
refused; the application only sees traffic from the next START on.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from twiboot.chipinfo import DeviceProfile
from twiboot.errors import IllegalBusState
from twiboot.protocol import MemoryType, NO_DATA
from twiboot.device.application import ApplicationStub
from twiboot.device.fsm import (
    Action,
    BootMode,
    BusEvent,
    BUS_ERROR,
    BYTE_REQUESTED,
    EngineConfig,
    EngineState,
    EventType,
    READ_NACKED,
    READ_START,
    STOP,
    TIMER_TICK,
    WRITE_START,
    byte_received,
    initial_state,
    transition,
)
from twiboot.device.memory import EepromMemory, FlashMemory

logger = logging.getLogger(__name__)


@dataclass
class TwiPeripheral:
    """
    Slave-side bus controller registers.

    Attributes:
        address: Own 7-bit slave address
        enabled: Controller answers its address
        ack_armed: Next received byte will be ACKed
        data: Transmit register
        resets: Number of controller resets after bus errors
    """

    address: int
    enabled: bool = True
    ack_armed: bool = True
    data: int = NO_DATA
    resets: int = 0


class Bootloader:
    """
    Target chip with the bootloader resident.

    Memory contents survive ``reset()``; everything else returns to its
    power-on state.

    Example:
        >>> device = Bootloader(get_profile("atmega8"))
        >>> device.select(0x21, read=False)
        True
    """

    def __init__(
        self,
        profile: DeviceProfile,
        application: Optional[ApplicationStub] = None,
        buffered_eeprom: bool = False,
        raise_on_bus_error: bool = False,
    ):
        """
        Build the device and power it on.

        Args:
            profile: Chip geometry, version string and bus address
            application: Resident application started on handoff; without
                one the device falls silent after leaving the bootloader
            buffered_eeprom: Write EEPROM data per transaction, not per byte
            raise_on_bus_error: Raise IllegalBusState after handling a bus
                error instead of only recovering from it
        """
        self.profile = profile
        self.config = EngineConfig.from_profile(profile, buffered_eeprom=buffered_eeprom)
        self.application = application
        self.raise_on_bus_error = raise_on_bus_error

        chip = profile.chip
        self.flash = FlashMemory(profile.flash_size, chip.page_size, writable_end=chip.flash_end)
        self.eeprom = EepromMemory(chip.eeprom_size)
        self.twi = TwiPeripheral(address=profile.address)

        self.reset()

    def reset(self) -> None:
        """Power-on (or watchdog) reset into the bootloader."""
        self.state: EngineState = initial_state(self.config)
        self.mode = BootMode.BOOTLOADER_ACTIVE
        self.vectors_in_bootloader = True
        self.twi.enabled = True
        self.twi.ack_armed = True
        self.twi.data = NO_DATA
        self.activity_led = False
        self.status_led = True
        self.handoff_pending = False
        logger.debug("Device reset, bootloader at 0x%02X", self.twi.address)

    @property
    def in_bootloader(self) -> bool:
        return self.mode is BootMode.BOOTLOADER_ACTIVE

    # -------------------------------------------------------------------------
    # Event Handling
    # -------------------------------------------------------------------------

    def handle(self, event: BusEvent) -> Optional[Action]:
        """
        Run one event through the engine and apply the result.

        Returns:
            The applied action, or None when the bootloader is no longer
            running.

        Raises:
            IllegalBusState: For BUS_ERROR when raise_on_bus_error is set.
        """
        if not self.in_bootloader:
            return None

        self.state, action = transition(self.state, event, self.config)
        logger.debug("%s -> %s pos=%d addr=0x%04X", event, self.state.command.name,
                     self.state.position, self.state.address)
        self._apply(action)

        if self.state.boot_requested:
            self._start_application()

        if event.type is EventType.BUS_ERROR and self.raise_on_bus_error:
            raise IllegalBusState("bus error, controller reset")
        return action

    def handle_status(self, status: int, data: int = 0) -> Optional[Action]:
        """
        Handle a raw controller status code, as the interrupt handler does.

        Status codes outside the handled set are ignored.
        """
        event_type = EventType.from_status(status)
        if event_type is None or event_type is EventType.TIMER_TICK:
            logger.debug("Ignoring controller status 0x%02X", status)
            return None
        return self.handle(BusEvent(event_type, data & 0xFF))

    def tick(self, count: int = 1) -> None:
        """Deliver boot timer ticks."""
        for _ in range(count):
            self.handle(TIMER_TICK)

    def bus_error(self) -> None:
        self.handle(BUS_ERROR)

    def _apply(self, action: Action) -> None:
        if action.store is not None:
            self.eeprom.write(action.store.address, action.store.value)

        if action.commit is not None:
            commit = action.commit
            if commit.memory is MemoryType.FLASH:
                self.flash.commit_page(commit.address, commit.data)
            else:
                self.eeprom.write_block(commit.address, commit.data)

        if action.fetch is not None:
            if action.fetch.memory is MemoryType.FLASH:
                self.twi.data = self.flash.read(action.fetch.address)
            else:
                self.twi.data = self.eeprom.read(action.fetch.address)
        elif action.transmit is not None:
            self.twi.data = action.transmit

        if action.reset_bus:
            self.twi.resets += 1
            self.twi.data = NO_DATA

        if action.ack is not None:
            self.twi.ack_armed = action.ack

        if action.activity is not None:
            self.activity_led = action.activity

        if action.toggle_status:
            self.status_led = not self.status_led

    def _start_application(self) -> None:
        logger.info("Leaving bootloader, starting application")
        self.mode = BootMode.APPLICATION_ACTIVE
        self.twi.enabled = False
        self.vectors_in_bootloader = False
        self.activity_led = False
        self.status_led = False

        # The rest of the current transaction still gets the bootloader's NACK
        self.handoff_pending = True

        if self.application is not None:
            self.twi.enabled = True
            self.application.start(reset=self.reset)

    # -------------------------------------------------------------------------
    # Bus Target
    # -------------------------------------------------------------------------

    def select(self, address: int, read: bool) -> bool:
        """Address phase; True if the device ACKs ``address``."""
        if not self.twi.enabled or address != self.twi.address:
            return False
        if not self.in_bootloader:
            # A new START: the transaction that caused the handoff is over
            self.handoff_pending = False
            return self.application.select(read)

        self.handle(READ_START if read else WRITE_START)
        return True

    def receive(self, value: int) -> bool:
        """Data byte from the master; True if ACKed."""
        if not self.in_bootloader:
            return self._application_on_bus and self.application.receive(value)

        # NACK was decided on the previous byte; this one never reaches the engine
        if not self.twi.ack_armed:
            return False

        self.handle(byte_received(value))
        return True

    def transmit(self) -> int:
        """Byte the device drives onto the bus in the current read slot."""
        if not self.in_bootloader:
            return self.application.transmit() if self._application_on_bus else NO_DATA
        return self.twi.data

    def acknowledge(self, more: bool) -> None:
        """Master response to the byte just sent."""
        if not self.in_bootloader:
            if self._application_on_bus:
                self.application.acknowledge(more)
            return
        self.handle(BYTE_REQUESTED if more else READ_NACKED)

    def stop(self) -> None:
        """STOP condition after a write."""
        if not self.in_bootloader:
            if self.handoff_pending:
                self.handoff_pending = False
            elif self.twi.enabled:
                self.application.stop()
            return
        self.handle(STOP)

    @property
    def _application_on_bus(self) -> bool:
        return self.twi.enabled and not self.handoff_pending
