"""
Device Model
============

Simulated target running the TWIBOOT bootloader.

- fsm: pure protocol engine (state, event) -> (state, action)
- memory: paged flash and byte-addressed EEPROM
- bootloader: the chip, applying engine actions to its hardware
- application: resident application that can request the bootloader
"""

from twiboot.device.application import ApplicationStub
from twiboot.device.bootloader import Bootloader, TwiPeripheral
from twiboot.device.fsm import (
    Action,
    BootMode,
    BusEvent,
    EngineConfig,
    EngineState,
    EventType,
    initial_state,
    transition,
)
from twiboot.device.memory import EepromMemory, FlashMemory

__all__ = [
    "Action",
    "ApplicationStub",
    "Bootloader",
    "BootMode",
    "BusEvent",
    "EepromMemory",
    "EngineConfig",
    "EngineState",
    "EventType",
    "FlashMemory",
    "TwiPeripheral",
    "initial_state",
    "transition",
]
