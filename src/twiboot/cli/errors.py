"""
CLI Error Handling
==================

Consistent error reporting and exit codes for the command-line tool.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Exit codes of the twiboot tool."""
    SUCCESS = 0
    TRANSFER_ERROR = 1   # Device unreachable, bus, alignment, size or verify error
    INVALID_ARGS = 2     # Invalid arguments or image file error
    INTERNAL_ERROR = 3   # Unexpected internal error


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report an exception and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors

    Raises:
        SystemExit: Always exits with an appropriate exit code
    """
    from twiboot.errors import CommsError, ImageFileError, TransferError, TwibootError

    if isinstance(error, ImageFileError):
        click.echo(f"File error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, CommsError):
        click.echo(f"Communication error: {error}", err=True)
        sys.exit(ExitCode.TRANSFER_ERROR)

    elif isinstance(error, TransferError):
        click.echo(f"Transfer error: {error}", err=True)
        sys.exit(ExitCode.TRANSFER_ERROR)

    elif isinstance(error, TwibootError):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.TRANSFER_ERROR)

    elif isinstance(error, (click.BadParameter, ValueError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
