"""
TWIBOOT Command-Line Interface
==============================

- **twiboot**: read, write and verify flash/EEPROM of a target running
  the TWIBOOT bootloader

The tool is a Click-based CLI application.
"""

__all__ = ["twiboot"]
