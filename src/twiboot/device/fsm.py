"""
Bootloader Protocol Engine
==========================

The device side of the protocol as a pure finite-state machine. The real
firmware runs this inside the two-wire controller's interrupt handler,
switching on raw status codes; here the handler is split in two:

- ``transition(state, event, config)`` decides. It never touches memory or
  hardware and returns the next ``EngineState`` plus an ``Action``.
- ``Bootloader`` (bootloader.py) applies the action to the simulated
  hardware: ACK/NACK, transmit register, EEPROM cell, page commit, bus reset.

Events
------
Events are named after the controller status that raises them:

    WRITE_START     0x60  own SLA+W received
    BYTE_RECEIVED   0x80  data byte received after SLA+W
    READ_START      0xA8  own SLA+R received, first byte requested
    BYTE_REQUESTED  0xB8  byte sent and ACKed, next byte requested
    STOP            0xA0  STOP or repeated START
    READ_NACKED     0xC0  byte sent, master answered NACK (end of read)
    BUS_ERROR       0xF8  illegal bus state
    TIMER_TICK            periodic boot timeout tick (not a bus status)

Byte Positions
--------------
Within a write transaction the cursor position selects the meaning of
each byte: 0 command, 1 boot type or memory selector, 2-3 address (high
byte first), 4+ data. The ACK decision returned for a byte applies to the
*next* byte: a NACK means the engine will not accept more data.

Page Writes
-----------
Flash data is collected into the page buffer. When the buffer is full the
engine NACKs further data and marks the page for commit; the commit itself
is issued on the STOP (or repeated START) that ends the transaction, since
an erase/program cycle is far longer than one byte slot on the bus.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Callable, Final, NamedTuple, Optional

from twiboot.chipinfo import DeviceProfile
from twiboot.protocol import (
    BootType,
    Command,
    MemoryType,
    NO_DATA,
    WIRE_COMMANDS,
    refine_access,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

class EventType(IntEnum):
    """Engine inputs, valued by the controller status code that raises them."""

    WRITE_START = 0x60
    BYTE_RECEIVED = 0x80
    READ_START = 0xA8
    BYTE_REQUESTED = 0xB8
    STOP = 0xA0
    READ_NACKED = 0xC0
    BUS_ERROR = 0xF8
    TIMER_TICK = 0x100

    @classmethod
    def from_status(cls, status: int) -> Optional["EventType"]:
        """Map a raw status register value (prescaler bits masked), or None."""
        try:
            return cls(status & 0xF8)
        except ValueError:
            return None


@dataclass(frozen=True)
class BusEvent:
    """One engine input; ``value`` is the received byte for BYTE_RECEIVED."""

    type: EventType
    value: int = 0

    def __str__(self) -> str:
        if self.type is EventType.BYTE_RECEIVED:
            return f"{self.type.name}(0x{self.value:02X})"
        return self.type.name


def byte_received(value: int) -> BusEvent:
    """Build a BYTE_RECEIVED event."""
    return BusEvent(EventType.BYTE_RECEIVED, value & 0xFF)


WRITE_START: Final[BusEvent] = BusEvent(EventType.WRITE_START)
READ_START: Final[BusEvent] = BusEvent(EventType.READ_START)
BYTE_REQUESTED: Final[BusEvent] = BusEvent(EventType.BYTE_REQUESTED)
STOP: Final[BusEvent] = BusEvent(EventType.STOP)
READ_NACKED: Final[BusEvent] = BusEvent(EventType.READ_NACKED)
BUS_ERROR: Final[BusEvent] = BusEvent(EventType.BUS_ERROR)
TIMER_TICK: Final[BusEvent] = BusEvent(EventType.TIMER_TICK)


# =============================================================================
# State
# =============================================================================

class BootMode(Enum):
    """Top-level device state: bootloader or handed off to the application."""

    BOOTLOADER_ACTIVE = "bootloader"
    APPLICATION_ACTIVE = "application"


@dataclass(frozen=True)
class EngineConfig:
    """
    Constants compiled into the bootloader.

    Attributes:
        version: 16-byte version block
        chipinfo: 8-byte chip info block
        page_size: Flash page size (size of the page buffer)
        boot_timeout: Ticks before the application is started
        buffered_eeprom: Collect EEPROM data like flash and write it on
            transaction end instead of writing each byte as it arrives
    """

    version: bytes
    chipinfo: bytes
    page_size: int
    boot_timeout: int = 40
    buffered_eeprom: bool = False

    @classmethod
    def from_profile(cls, profile: DeviceProfile, buffered_eeprom: bool = False) -> "EngineConfig":
        return cls(
            version=profile.version_block,
            chipinfo=profile.chip.to_bytes(),
            page_size=profile.chip.page_size,
            boot_timeout=profile.boot_timeout,
            buffered_eeprom=buffered_eeprom,
        )


@dataclass(frozen=True)
class EngineState:
    """
    Transaction cursor, page buffer and boot timeout.

    Attributes:
        command: Active (possibly refined) command
        position: Byte position within the current transaction phase
        address: 16-bit address register
        page: Data collected for the pending page write
        commit_pending: Page buffer is full and waits for transaction end
        boot_timeout: Remaining ticks; 0 means the countdown is cancelled
    """

    command: Command = Command.WAIT
    position: int = 0
    address: int = 0
    page: bytes = b""
    commit_pending: bool = False
    boot_timeout: int = 0

    @property
    def boot_requested(self) -> bool:
        """True once the engine decided to start the application."""
        return self.command is Command.BOOT_APPLICATION


def initial_state(config: EngineConfig) -> EngineState:
    """State right after power-on reset of the bootloader stage."""
    return EngineState(boot_timeout=config.boot_timeout)


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class MemoryRead:
    """Load the transmit register from memory."""

    memory: MemoryType
    address: int


@dataclass(frozen=True)
class MemoryWrite:
    """Write one EEPROM cell immediately."""

    address: int
    value: int


@dataclass(frozen=True)
class PageCommit:
    """Erase and program (flash) or write (EEPROM) a buffered block."""

    memory: MemoryType
    address: int
    data: bytes


@dataclass(frozen=True)
class Action:
    """
    What the interrupt handler must do after a transition.

    Attributes:
        ack: ACK (True) or NACK (False) the next byte; None leaves the
            controller untouched (timer ticks)
        transmit: Byte to load into the transmit register
        fetch: Load the transmit register from memory instead
        store: EEPROM cell to write now
        commit: Buffered block to commit now
        reset_bus: Reset the bus controller
        activity: Switch the bus activity indicator on/off
        toggle_status: Toggle the "bootloader running" indicator
    """

    ack: Optional[bool] = None
    transmit: Optional[int] = None
    fetch: Optional[MemoryRead] = None
    store: Optional[MemoryWrite] = None
    commit: Optional[PageCommit] = None
    reset_bus: bool = False
    activity: Optional[bool] = None
    toggle_status: bool = False


ACK: Final[Action] = Action(ack=True)
NACK: Final[Action] = Action(ack=False)


class Transition(NamedTuple):
    state: EngineState
    action: Action


# =============================================================================
# Transition Function
# =============================================================================

def transition(state: EngineState, event: BusEvent, config: EngineConfig) -> Transition:
    """
    Compute the engine's reaction to one event.

    Pure: the same (state, event, config) always gives the same result and
    nothing outside the returned values is changed.

    Once the application has been requested the engine is terminal: bytes
    are refused and everything else is ignored until the handoff.
    """
    if state.boot_requested:
        if event.type is EventType.TIMER_TICK:
            return Transition(state, Action())
        return Transition(state, NACK)

    return _HANDLERS[event.type](state, event.value, config)


def _on_write_start(state: EngineState, value: int, config: EngineConfig) -> Transition:
    return Transition(replace(state, position=0), Action(ack=True, activity=True))


def _on_byte_received(state: EngineState, value: int, config: EngineConfig) -> Transition:
    position = state.position

    if position == 0:
        return _command_byte(state, value)

    if position == 1:
        return _parameter_byte(state, value)

    if position in (2, 3):
        address = ((state.address << 8) | value) & 0xFFFF
        return Transition(replace(state, address=address, position=position + 1), ACK)

    if state.command in (Command.ACCESS_FLASH, Command.WRITE_FLASH_PAGE):
        return _buffer_byte(state, value, config, Command.WRITE_FLASH_PAGE)

    if state.command in (Command.ACCESS_EEPROM, Command.WRITE_EEPROM_PAGE):
        if config.buffered_eeprom:
            return _buffer_byte(state, value, config, Command.WRITE_EEPROM_PAGE)
        next_state = replace(
            state,
            command=Command.WRITE_EEPROM_PAGE,
            address=(state.address + 1) & 0xFFFF,
            position=position + 1,
        )
        return Transition(next_state, Action(ack=True, store=MemoryWrite(state.address, value)))

    # Chip info and the switch commands take no data
    return Transition(replace(state, position=0), NACK)


def _command_byte(state: EngineState, value: int) -> Transition:
    if value not in WIRE_COMMANDS:
        # Not our protocol: whoever is talking wants the application
        logger.debug("Unknown command 0x%02X, starting application", value)
        return Transition(replace(state, command=Command.BOOT_APPLICATION, position=0), NACK)

    command = Command(value)
    if command is Command.WAIT:
        return Transition(replace(state, command=command, boot_timeout=0), ACK)

    return Transition(replace(state, command=command, position=1, boot_timeout=0), ACK)


def _parameter_byte(state: EngineState, value: int) -> Transition:
    if state.command is Command.SWITCH_APPLICATION:
        command = Command.BOOT_APPLICATION if value == BootType.APPLICATION else state.command
        return Transition(replace(state, command=command, position=0), NACK)

    if state.command is Command.ACCESS_MEMORY:
        refined = refine_access(value)
        if refined is None:
            return Transition(replace(state, position=0), NACK)
        return Transition(replace(state, command=refined, position=2), ACK)

    return Transition(replace(state, position=0), NACK)


def _buffer_byte(
    state: EngineState,
    value: int,
    config: EngineConfig,
    write_command: Command,
) -> Transition:
    if state.commit_pending:
        return Transition(state, NACK)

    page = state.page + bytes([value])
    if len(page) < config.page_size:
        next_state = replace(state, command=write_command, page=page, position=state.position + 1)
        return Transition(next_state, ACK)

    # Buffer full: refuse more data, commit on transaction end
    next_state = replace(
        state, command=write_command, page=page, position=state.position + 1, commit_pending=True
    )
    return Transition(next_state, NACK)


def _on_read_start(state: EngineState, value: int, config: EngineConfig) -> Transition:
    next_state, action = _on_byte_requested(replace(state, position=0), value, config)
    return Transition(next_state, replace(action, activity=True))


def _on_byte_requested(state: EngineState, value: int, config: EngineConfig) -> Transition:
    command = state.command

    if command is Command.READ_VERSION:
        data = config.version[state.position]
        position = (state.position + 1) % len(config.version)
        return Transition(replace(state, position=position), Action(ack=True, transmit=data))

    if command is Command.ACCESS_CHIPINFO:
        data = config.chipinfo[state.position]
        position = (state.position + 1) % len(config.chipinfo)
        return Transition(replace(state, position=position), Action(ack=True, transmit=data))

    if command in (Command.ACCESS_FLASH, Command.ACCESS_EEPROM):
        memory = MemoryType.FLASH if command is Command.ACCESS_FLASH else MemoryType.EEPROM
        next_state = replace(state, address=(state.address + 1) & 0xFFFF)
        return Transition(next_state, Action(ack=True, fetch=MemoryRead(memory, state.address)))

    return Transition(state, Action(ack=True, transmit=NO_DATA))


def _on_stop(state: EngineState, value: int, config: EngineConfig) -> Transition:
    commit = None
    command = state.command
    address = state.address

    if command is Command.WRITE_FLASH_PAGE:
        command = Command.ACCESS_FLASH
        if state.commit_pending:
            commit = PageCommit(MemoryType.FLASH, state.address, state.page)
        elif state.page:
            logger.debug("Dropping partial flash page (%d bytes)", len(state.page))

    elif command is Command.WRITE_EEPROM_PAGE:
        command = Command.ACCESS_EEPROM
        if state.page:
            commit = PageCommit(MemoryType.EEPROM, state.address, state.page)

    if commit is not None:
        address = (state.address + len(commit.data)) & 0xFFFF

    next_state = replace(
        state,
        command=command,
        address=address,
        page=b"",
        commit_pending=False,
    )
    return Transition(next_state, Action(ack=True, commit=commit, activity=False))


def _on_bus_error(state: EngineState, value: int, config: EngineConfig) -> Transition:
    logger.warning("Illegal bus state, resetting bus controller")
    next_state = replace(
        state,
        command=Command.WAIT,
        position=0,
        page=b"",
        commit_pending=False,
    )
    return Transition(next_state, Action(ack=True, reset_bus=True, activity=False))


def _on_timer_tick(state: EngineState, value: int, config: EngineConfig) -> Transition:
    if state.boot_timeout > 1:
        return Transition(replace(state, boot_timeout=state.boot_timeout - 1), Action(toggle_status=True))

    if state.boot_timeout == 1:
        logger.debug("Boot timeout expired")
        next_state = replace(state, command=Command.BOOT_APPLICATION, boot_timeout=0)
        return Transition(next_state, Action(toggle_status=True))

    return Transition(state, Action(toggle_status=True))


_HANDLERS: Final[dict[EventType, Callable[[EngineState, int, EngineConfig], Transition]]] = {
    EventType.WRITE_START: _on_write_start,
    EventType.BYTE_RECEIVED: _on_byte_received,
    EventType.READ_START: _on_read_start,
    EventType.BYTE_REQUESTED: _on_byte_requested,
    EventType.STOP: _on_stop,
    EventType.READ_NACKED: _on_stop,
    EventType.BUS_ERROR: _on_bus_error,
    EventType.TIMER_TICK: _on_timer_tick,
}
