"""
Tests for the Transfer Queue
============================

- MEM:FILE parsing
- Running operations in order against a simulated device
- Abandoning the queue at the first failure
"""

import io

import pytest

from twiboot.comms import Operation, OperationMode, parse_operation, run_operation, run_operations
from twiboot.errors import ImageFileError, SizeError, VerifyMismatch
from twiboot.protocol import MemoryType


class TestParseOperation:
    """Tests for MEM:FILE parsing."""

    def test_flash(self):
        op = parse_operation(OperationMode.WRITE, "flash:app.hex")
        assert op == Operation(OperationMode.WRITE, MemoryType.FLASH, "app.hex")

    def test_eeprom(self):
        op = parse_operation(OperationMode.READ, "eeprom:data.bin")
        assert op.memory is MemoryType.EEPROM

    def test_filename_with_colon(self):
        op = parse_operation(OperationMode.READ, "flash:C:/backup.bin")
        assert op.filename == "C:/backup.bin"

    def test_read_to_stdout(self):
        assert parse_operation(OperationMode.READ, "flash:-").filename == "-"

    @pytest.mark.parametrize("spec", ["ram:app.hex", "flash", "chipinfo:x.bin", ":x.bin"])
    def test_invalid_memtype(self, spec):
        with pytest.raises(ValueError, match="invalid memtype"):
            parse_operation(OperationMode.WRITE, spec)

    def test_missing_filename(self):
        with pytest.raises(ValueError, match="missing file name"):
            parse_operation(OperationMode.READ, "flash:")

    def test_write_from_stdout(self):
        with pytest.raises(ValueError, match="standard output"):
            parse_operation(OperationMode.WRITE, "flash:-")

    def test_str(self):
        op = Operation(OperationMode.READ, MemoryType.EEPROM, "x.bin")
        assert str(op) == "read eeprom:x.bin"


class TestRunOperations:
    """Tests for executing queued operations."""

    def test_write_then_read(self, twb, tmp_path):
        source = tmp_path / "app.bin"
        source.write_bytes(bytes(range(100)))
        backup = tmp_path / "backup.bin"

        done = run_operations(twb, [
            Operation(OperationMode.WRITE, MemoryType.FLASH, str(source)),
            Operation(OperationMode.READ, MemoryType.FLASH, str(backup)),
        ])

        assert done == 2
        data = backup.read_bytes()
        assert len(data) == 0x1C00
        assert data[:100] == bytes(range(100))
        assert data[100:128] == b"\xFF" * 28

    def test_write_verifies(self, twb, bus, tmp_path):
        source = tmp_path / "settings.bin"
        source.write_bytes(b"\x05" * 20)
        run_operation(twb, Operation(OperationMode.WRITE, MemoryType.EEPROM, str(source)))
        assert len(bus.reads()) == 1

    def test_no_verify(self, twb, bus, tmp_path):
        source = tmp_path / "settings.bin"
        source.write_bytes(b"\x05" * 20)
        run_operation(
            twb, Operation(OperationMode.WRITE, MemoryType.EEPROM, str(source)), verify=False
        )
        assert bus.reads() == []

    def test_read_to_stdout(self, twb, device):
        device.eeprom.write_block(0, b"\xCA\xFE")
        out = io.StringIO()
        image = run_operation(twb, Operation(OperationMode.READ, MemoryType.EEPROM, "-"), stdout=out)
        assert len(image) == 0x200
        assert "CA FE" in out.getvalue().upper()

    def test_oversized_image(self, twb, bus, tmp_path):
        source = tmp_path / "big.bin"
        source.write_bytes(bytes(0x201))
        with pytest.raises(SizeError, match="eeprom"):
            run_operation(twb, Operation(OperationMode.WRITE, MemoryType.EEPROM, str(source)))
        assert bus.log == []

    def test_first_failure_abandons_rest(self, twb, device, tmp_path):
        settings = tmp_path / "settings.bin"
        settings.write_bytes(b"\x01")

        with pytest.raises(ImageFileError):
            run_operations(twb, [
                Operation(OperationMode.WRITE, MemoryType.FLASH, str(tmp_path / "missing.bin")),
                Operation(OperationMode.WRITE, MemoryType.EEPROM, str(settings)),
            ])
        assert device.eeprom.write_count == 0

    def test_verify_failure_propagates(self, twb, device, tmp_path, monkeypatch):
        source = tmp_path / "app.bin"
        source.write_bytes(bytes(64))

        # Make the device drop its page writes
        monkeypatch.setattr(device.flash, "commit_page", lambda address, data: False)
        with pytest.raises(VerifyMismatch):
            run_operation(twb, Operation(OperationMode.WRITE, MemoryType.FLASH, str(source)))

    def test_empty_queue(self, twb):
        assert run_operations(twb, []) == 0
