"""
Tests for the twiboot Command-Line Tool
=======================================

Runs the tool through click's CliRunner against a simulated ATmega8.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from twiboot.cli.twiboot import ProgressPrinter, main
from twiboot.comms import AdapterInfo


@pytest.fixture
def runner(monkeypatch):
    for name in ("TWIBOOT_DEVICE", "TWIBOOT_ADDRESS", "TWIBOOT_PROGRESS", "TWIBOOT_VERIFY"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


def simulate(runner, *args):
    return runner.invoke(main, ["--simulate", "atmega8", "-p", "0", *args])


# =============================================================================
# Main Command
# =============================================================================

class TestInfo:
    """Tests for the connection banner."""

    def test_info(self, runner):
        result = simulate(runner, "info")
        assert result.exit_code == 0
        assert "TWIBOOT m8v2.0" in result.output
        assert "AVR Mega 8" in result.output
        assert "0x1c00" in result.output
        assert "(0x40 bytes/page)" in result.output

    def test_no_operation_shows_info(self, runner):
        result = simulate(runner)
        assert result.exit_code == 0
        assert "eeprom size" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "2.0.0" in result.output

    def test_no_address(self, runner):
        result = runner.invoke(main, ["info"])
        assert result.exit_code == 2
        assert "no address given" in result.output

    def test_invalid_address(self, runner):
        result = runner.invoke(main, ["-a", "0x80", "info"])
        assert result.exit_code == 2

    def test_wrong_address(self, runner):
        result = simulate(runner, "-a", "0x22", "info")
        assert result.exit_code == 1
        assert "Communication error" in result.output


class TestOperations:
    """Tests for chained read/write subcommands."""

    def test_write_and_read_back(self, runner, tmp_path):
        source = tmp_path / "app.bin"
        source.write_bytes(bytes(range(200)))
        backup = tmp_path / "backup.bin"

        result = simulate(runner, "write", f"flash:{source}", "read", f"flash:{backup}")
        assert result.exit_code == 0, result.output
        assert backup.read_bytes()[:200] == bytes(range(200))

    def test_read_dump(self, runner):
        result = simulate(runner, "read", "eeprom:-")
        assert result.exit_code == 0
        assert "FF FF FF FF" in result.output

    def test_bad_memtype(self, runner):
        result = simulate(runner, "write", "ram:app.bin")
        assert result.exit_code == 2
        assert "invalid memtype" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = simulate(runner, "write", f"flash:{tmp_path / 'missing.bin'}")
        assert result.exit_code == 2
        assert "File error" in result.output

    def test_image_too_large(self, runner, tmp_path):
        source = tmp_path / "big.bin"
        source.write_bytes(bytes(0x201))
        result = simulate(runner, "write", f"eeprom:{source}")
        assert result.exit_code == 1
        assert "invalid eeprom size" in result.output

    def test_progress_bar(self, runner, tmp_path):
        source = tmp_path / "app.bin"
        source.write_bytes(bytes(64))
        result = runner.invoke(main, ["--simulate", "atmega8", "-p", "2", "write", f"flash:{source}"])
        assert result.exit_code == 0
        assert "writing flash" in result.output
        assert "verifying flash" in result.output


class TestAdapters:
    """Tests for the adapters subcommand."""

    def test_none_found(self, runner):
        with patch("twiboot.cli.twiboot.list_i2c_adapters", return_value=[]):
            result = runner.invoke(main, ["adapters"])
        assert result.exit_code == 0
        assert "No I2C adapters found." in result.output

    def test_listed_without_address(self, runner):
        adapters = [AdapterInfo("/dev/i2c-1", 1, "bcm2835")]
        with patch("twiboot.cli.twiboot.list_i2c_adapters", return_value=adapters):
            result = runner.invoke(main, ["adapters"])
        assert result.exit_code == 0
        assert "/dev/i2c-1 - bcm2835" in result.output


# =============================================================================
# Progress Printer
# =============================================================================

class Recorder:
    """Stand-in for click.echo collecting output."""

    def __init__(self):
        self.parts = []

    def __call__(self, message="", nl=True):
        self.parts.append(message + ("\n" if nl else ""))

    @property
    def text(self):
        return "".join(self.parts)


class TestProgressPrinter:
    """Tests for the progress callback output."""

    def test_stars(self):
        out = Recorder()
        printer = ProgressPrinter(2, echo=out)
        for pos in (0, 64, 128, 130):
            printer("writing flash", pos, 130)
        assert out.text.startswith("writing flash  : [")
        assert out.text.count("*") == ProgressPrinter.WIDTH
        assert out.text.endswith("] (130)\n")

    def test_stars_abort_silent(self):
        out = Recorder()
        ProgressPrinter(2, echo=out)("reading flash", -1, -1)
        assert out.parts == []

    def test_bar_redraws(self):
        out = Recorder()
        printer = ProgressPrinter(1, echo=out)
        printer("reading eeprom", 0, 256)
        printer("reading eeprom", 128, 256)
        assert all(part.endswith("\r") for part in out.parts)
        assert out.parts[1].count("*") == 25

    def test_bar_completes_line(self):
        out = Recorder()
        ProgressPrinter(1, echo=out)("reading eeprom", 256, 256)
        assert out.parts[-1] == "\n"

    def test_bar_abort_ends_line(self):
        out = Recorder()
        ProgressPrinter(1, echo=out)("reading eeprom", -1, -1)
        assert out.parts == ["\n"]

    def test_disabled(self):
        out = Recorder()
        ProgressPrinter(0, echo=out)("reading eeprom", 0, 256)
        assert out.parts == []
