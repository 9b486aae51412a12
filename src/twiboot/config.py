"""
Tool Configuration
==================

Settings of the ``twiboot`` command line tool. Values come from, in
increasing priority:

- defaults (defined here)
- environment variables
- command-line options

Environment variables (all optional):
    TWIBOOT_DEVICE: I2C adapter device path
    TWIBOOT_ADDRESS: Target address, decimal or 0x-prefixed hex
    TWIBOOT_PROGRESS: Progress bar mode 0, 1 or 2
    TWIBOOT_VERIFY: 0/no/false disables verify after write
"""

import os
from dataclasses import dataclass
from typing import Final, Optional

from twiboot.comms.driver import DEFAULT_DEVICE

# Valid 7-bit target addresses
MIN_ADDRESS: Final[int] = 0x01
MAX_ADDRESS: Final[int] = 0x7F

PROGRESS_MODES: Final[tuple[int, ...]] = (0, 1, 2)

FALSE_VALUES: Final[frozenset] = frozenset({"0", "no", "false", "off"})


def parse_address(text: str) -> int:
    """
    Parse a target address such as '0x21' or '33'.

    Raises:
        ValueError: If the text is not a number in 0x01..0x7F.
    """
    try:
        address = int(text, 0)
    except ValueError:
        raise ValueError(f"invalid address: '{text}'") from None
    if not MIN_ADDRESS <= address <= MAX_ADDRESS:
        raise ValueError(
            f"address 0x{address:02X} out of range (0x{MIN_ADDRESS:02X} - 0x{MAX_ADDRESS:02X})"
        )
    return address


@dataclass
class ToolConfig:
    """
    Configuration for one tool run.

    Attributes:
        device: I2C adapter device path
        address: Target address; None until given
        verify: Verify after every write
        progress: Progress bar mode (0 none, 1 redrawn bar, 2 stars)
    """

    device: str = DEFAULT_DEVICE
    address: Optional[int] = None
    verify: bool = True
    progress: int = 1

    @classmethod
    def from_env(cls) -> "ToolConfig":
        """
        Create a ToolConfig from environment variables.

        Invalid values are ignored and the default kept.
        """
        config = cls()

        if device := os.environ.get("TWIBOOT_DEVICE"):
            config.device = device

        if address := os.environ.get("TWIBOOT_ADDRESS"):
            try:
                config.address = parse_address(address)
            except ValueError:
                pass  # Ignore invalid values

        if progress := os.environ.get("TWIBOOT_PROGRESS"):
            try:
                mode = int(progress)
            except ValueError:
                mode = -1
            if mode in PROGRESS_MODES:
                config.progress = mode

        if verify := os.environ.get("TWIBOOT_VERIFY"):
            config.verify = verify.strip().lower() not in FALSE_VALUES

        return config
