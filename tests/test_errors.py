"""
Tests for the Error Hierarchy and CLI Error Handling
====================================================
"""

import click
import pytest

from twiboot.cli.errors import ExitCode, handle_cli_exception
from twiboot.errors import (
    AlignmentError,
    BusTransactionError,
    CommsError,
    DeviceError,
    DeviceUnreachable,
    IllegalBusState,
    ImageFileError,
    ProtocolMismatch,
    SizeError,
    TransferError,
    TwibootError,
    VerifyMismatch,
)


class TestHierarchy:
    """Every error is catchable as TwibootError."""

    @pytest.mark.parametrize("cls,base", [
        (DeviceUnreachable, CommsError),
        (ProtocolMismatch, CommsError),
        (BusTransactionError, CommsError),
        (AlignmentError, TransferError),
        (SizeError, TransferError),
        (VerifyMismatch, TransferError),
        (IllegalBusState, DeviceError),
        (ImageFileError, TwibootError),
        (CommsError, TwibootError),
        (TransferError, TwibootError),
        (DeviceError, TwibootError),
    ])
    def test_base(self, cls, base):
        assert issubclass(cls, base)


class TestMessages:
    """Tests for error message formatting."""

    def test_bus_transaction_full_context(self):
        error = BusTransactionError("write not acknowledged", "write", "flash", 0x40, 68, 0)
        assert str(error) == "write flash at 0x0040: write not acknowledged (0 of 68 bytes)"

    def test_bus_transaction_plain(self):
        assert str(BusTransactionError("read failed")) == "read failed"

    def test_alignment(self):
        error = AlignmentError(0x10, 64)
        assert str(error) == "address 0x0010 not aligned to page size 0x40"
        assert error.address == 0x10

    def test_size(self):
        assert str(SizeError("eeprom", 0x201, 0x200)) == "invalid eeprom size: 0x0201 > 0x0200"

    def test_verify(self):
        assert str(VerifyMismatch("flash", 0x80)) == "verify failed at flash page 0x0080"

    def test_image_file(self):
        assert str(ImageFileError("app.hex", "No such file or directory")) == "app.hex: No such file or directory"


class TestHandleCliException:
    """Tests for exit code mapping."""

    @pytest.mark.parametrize("error,code", [
        (DeviceUnreachable("no answer"), ExitCode.TRANSFER_ERROR),
        (BusTransactionError("short read"), ExitCode.TRANSFER_ERROR),
        (VerifyMismatch("flash", 0), ExitCode.TRANSFER_ERROR),
        (IllegalBusState("bus error"), ExitCode.TRANSFER_ERROR),
        (ImageFileError("x.hex", "bad"), ExitCode.INVALID_ARGS),
        (click.BadParameter("bad"), ExitCode.INVALID_ARGS),
        (ValueError("bad"), ExitCode.INVALID_ARGS),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ])
    def test_exit_codes(self, error, code):
        with pytest.raises(SystemExit) as exc_info:
            handle_cli_exception(error)
        assert exc_info.value.code == code

    def test_message_on_stderr(self, capsys):
        with pytest.raises(SystemExit):
            handle_cli_exception(SizeError("flash", 0x2000, 0x1C00))
        assert "Transfer error: invalid flash size" in capsys.readouterr().err
