"""
twiboot - TWIBOOT Command-Line Interface
========================================

Reads, writes and verifies flash and EEPROM of an AVR running the TWIBOOT
bootloader, over a Linux I2C adapter.

Operations are chained subcommands and run in the order given, after the
bootloader handshake; the first failing operation abandons the rest. On
exit the target is told to start its application.

Usage Examples
--------------
Show bootloader version and memory sizes:
    $ twiboot -a 0x21 info

Write flash and EEPROM (each verified after writing):
    $ twiboot -a 0x21 write flash:app.hex write eeprom:app_eeprom.bin

Read flash as a hex dump:
    $ twiboot -a 0x21 read flash:-

List I2C adapters:
    $ twiboot adapters

Try it without hardware, against a simulated ATmega8:
    $ twiboot --simulate atmega8 write flash:app.hex read flash:-

Exit Codes
----------
0 - Success
1 - Device unreachable, transfer or verify error
2 - Invalid arguments or image file error
3 - Internal error
"""

import logging
from typing import Callable, Optional

import click

from twiboot import __version__
from twiboot.chipinfo import DEVICE_PROFILES, get_profile
from twiboot.cli.errors import handle_cli_exception
from twiboot.comms import (
    Operation,
    OperationMode,
    TwiBootloader,
    VirtualBus,
    format_adapter_list,
    list_i2c_adapters,
    parse_operation,
    run_operations,
)
from twiboot.config import PROGRESS_MODES, ToolConfig, parse_address
from twiboot.device import ApplicationStub, Bootloader

# Configure logging
logger = logging.getLogger(__name__)

# Marker returned by the info subcommand
INFO = "info"


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Stores the tool configuration, verbosity and the simulated device.
    """

    def __init__(self) -> None:
        self.config: ToolConfig = ToolConfig.from_env()
        self.verbose: bool = False
        self.simulate: Optional[str] = None
        self.device: Optional[Bootloader] = None

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def create_driver(self, progress: Optional[Callable[[str, int, int], None]]) -> TwiBootloader:
        """Driver on the configured adapter, or on a simulated device."""
        if self.simulate:
            profile = get_profile(self.simulate)
            self.device = Bootloader(profile, application=ApplicationStub())
            address = self.config.address or profile.address
            bus = VirtualBus(self.device, address=address)
            return TwiBootloader(f"simulated {profile.name}", address, bus=bus, progress=progress)

        return TwiBootloader(self.config.device, self.config.address, progress=progress)


pass_context = click.make_pass_decorator(Context, ensure=True)


class ProgressPrinter:
    """
    Progress callback for the driver.

    Mode 1 redraws a bar on one line; mode 2 appends stars as blocks
    complete, for output that is not a terminal.
    """

    WIDTH = 50

    def __init__(self, mode: int, echo: Callable[..., None] = click.echo):
        self.mode = mode
        self.echo = echo
        self._count = 0

    def __call__(self, label: str, pos: int, total: int) -> None:
        if self.mode == 1:
            self._redraw(label, pos, total)
        elif self.mode == 2:
            self._append(label, pos, total)

    def _scaled(self, pos: int, total: int) -> int:
        return pos * self.WIDTH // total if total else self.WIDTH

    def _redraw(self, label: str, pos: int, total: int) -> None:
        if pos != -1 and total != -1:
            count = self._scaled(pos, total)
            stars = "".join("*" if i < count else " " for i in range(self.WIDTH))
            self.echo(f"{label:<15}: [{stars}] ({pos})\r", nl=False)

        if pos == total:
            self.echo()

    def _append(self, label: str, pos: int, total: int) -> None:
        if pos == -1 or total == -1:
            return

        if pos == 0:
            self._count = 0
            self.echo(f"{label:<15}: [", nl=False)

        if pos <= total:
            count = self._scaled(pos, total)
            self.echo("*" * (count - self._count), nl=False)
            self._count = count

            if pos == total:
                self.echo(f"] ({pos})")


def print_device_info(twb: TwiBootloader) -> None:
    """Print the handshake results."""
    chip = twb.chip_info
    click.echo(f"device         : {twb.device:<16} (address: 0x{twb.address:02X})")
    click.echo(f"version        : {twb.version:<16} (sig: {chip.signature_text} => {twb.chip_name})")
    click.echo(f"flash size     : 0x{chip.flash_end:04x} / {chip.flash_end:5d}   (0x{chip.page_size:02x} bytes/page)")
    click.echo(f"eeprom size    : 0x{chip.eeprom_size:04x} / {chip.eeprom_size:5d}")


def _address_option(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return parse_address(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group(chain=True, invoke_without_command=True)
@click.option(
    "-a", "--address",
    type=str,
    default=None,
    callback=_address_option,
    help="Target I2C address (0x01 - 0x7F)",
)
@click.option(
    "-d", "--device",
    type=str,
    default=None,
    help="I2C adapter device (default: /dev/i2c-0)",
)
@click.option(
    "-n", "--no-verify",
    is_flag=True,
    help="Disable verify after write",
)
@click.option(
    "-p", "--progress",
    type=click.Choice([str(m) for m in PROGRESS_MODES]),
    default=None,
    help="Progress bar mode: 0 none, 1 bar (default), 2 stars",
)
@click.option(
    "--simulate",
    type=click.Choice(sorted(DEVICE_PROFILES), case_sensitive=False),
    default=None,
    help="Run against a simulated device instead of an adapter",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.version_option(version=__version__, prog_name="twiboot")
@pass_context
def main(
    ctx: Context,
    address: Optional[int],
    device: Optional[str],
    no_verify: bool,
    progress: Optional[str],
    simulate: Optional[str],
    verbose: bool,
) -> None:
    """
    Read and write flash/EEPROM of an AVR running the TWIBOOT bootloader.

    Operations run in the order given on the command line. Each write
    is verified unless -n is given.

    Example:
        twiboot -a 0x22 write flash:blmc.hex write eeprom:blmc_eeprom.hex
    """
    config = ctx.config
    if address is not None:
        config.address = address
    if device is not None:
        config.device = device
    if no_verify:
        config.verify = False
    if progress is not None:
        config.progress = int(progress)

    ctx.simulate = simulate
    ctx.verbose = verbose
    ctx.setup_logging()


# =============================================================================
# Subcommands
# =============================================================================

@main.command()
def info() -> str:
    """
    Show bootloader version, signature and memory sizes.

    This is also what runs when no operation is given.
    """
    return INFO


@main.command()
@click.argument("target", metavar="MEM:FILE")
def read(target: str) -> Operation:
    """
    Read flash or eeprom into a file.

    MEM is 'flash' or 'eeprom'. FILE ending in .hex or .ihx is written
    as Intel HEX, '-' prints a hex dump, anything else is raw binary.

    Example:
        twiboot -a 0x21 read flash:backup.hex
    """
    try:
        return parse_operation(OperationMode.READ, target)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="MEM:FILE") from None


@main.command()
@click.argument("target", metavar="MEM:FILE")
def write(target: str) -> Operation:
    """
    Write flash or eeprom from a file.

    MEM is 'flash' or 'eeprom'. FILE ending in .hex or .ihx is read as
    Intel HEX, anything else as raw binary loaded at address 0.

    Example:
        twiboot -a 0x21 write flash:app.hex
    """
    try:
        return parse_operation(OperationMode.WRITE, target)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="MEM:FILE") from None


@main.command()
def adapters() -> None:
    """
    List available I2C adapters.

    Example:
        twiboot adapters
    """
    adapter_list = list_i2c_adapters()

    if not adapter_list:
        click.echo("No I2C adapters found.")
        click.echo("\nTips:")
        click.echo("  - Load the i2c-dev kernel module (modprobe i2c-dev)")
        click.echo("  - On Linux, ensure you have permission (i2c group)")
        return None

    click.echo("Available I2C adapters:")
    click.echo(format_adapter_list(adapter_list))
    return None


# =============================================================================
# Operation Queue
# =============================================================================

@main.result_callback()
@pass_context
def run(ctx: Context, results: list, **params) -> None:
    """Connect and run the queued operations in order."""
    operations = [r for r in results if isinstance(r, Operation)]
    if results and not operations and INFO not in results:
        # Only listings were requested
        return

    config = ctx.config
    if ctx.simulate is None and config.address is None:
        raise click.UsageError("no address given (use -a or TWIBOOT_ADDRESS)")

    progress = ProgressPrinter(config.progress) if config.progress else None

    try:
        twb = ctx.create_driver(progress)
        twb.open()
        try:
            print_device_info(twb)
            run_operations(twb, operations, verify=config.verify)
        finally:
            twb.close()

    except Exception as e:
        handle_cli_exception(e, verbose=ctx.verbose)


if __name__ == "__main__":
    main()
