"""
Tests for Tool Configuration
============================
"""

import pytest

from twiboot.comms import TwiBootloader
from twiboot.config import ToolConfig, parse_address


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("TWIBOOT_DEVICE", "TWIBOOT_ADDRESS", "TWIBOOT_PROGRESS", "TWIBOOT_VERIFY"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestParseAddress:
    """Tests for target address parsing."""

    @pytest.mark.parametrize("text,address", [
        ("0x21", 0x21),
        ("33", 33),
        ("0X7F", 0x7F),
        ("1", 1),
    ])
    def test_valid(self, text, address):
        assert parse_address(text) == address

    @pytest.mark.parametrize("text", ["0x00", "0x80", "200"])
    def test_out_of_range(self, text):
        with pytest.raises(ValueError, match="out of range"):
            parse_address(text)

    @pytest.mark.parametrize("text", ["", "abc", "0x"])
    def test_not_a_number(self, text):
        with pytest.raises(ValueError, match="invalid address"):
            parse_address(text)


class TestToolConfig:
    """Tests for defaults and environment overrides."""

    def test_defaults(self, clean_env):
        config = ToolConfig.from_env()
        assert config.device == "/dev/i2c-0"
        assert config.address is None
        assert config.verify
        assert config.progress == 1

    def test_default_device_matches_driver(self):
        assert ToolConfig().device == TwiBootloader().device == "/dev/i2c-0"

    def test_from_env(self, clean_env):
        clean_env.setenv("TWIBOOT_DEVICE", "/dev/i2c-1")
        clean_env.setenv("TWIBOOT_ADDRESS", "0x29")
        clean_env.setenv("TWIBOOT_PROGRESS", "2")
        clean_env.setenv("TWIBOOT_VERIFY", "no")

        config = ToolConfig.from_env()
        assert config.device == "/dev/i2c-1"
        assert config.address == 0x29
        assert config.progress == 2
        assert not config.verify

    def test_invalid_values_ignored(self, clean_env):
        clean_env.setenv("TWIBOOT_ADDRESS", "0x99")
        clean_env.setenv("TWIBOOT_PROGRESS", "7")
        config = ToolConfig.from_env()
        assert config.address is None
        assert config.progress == 1

    def test_progress_not_a_number(self, clean_env):
        clean_env.setenv("TWIBOOT_PROGRESS", "bar")
        assert ToolConfig.from_env().progress == 1

    @pytest.mark.parametrize("value,expected", [("1", True), ("yes", True), ("0", False), ("OFF", False)])
    def test_verify_values(self, clean_env, value, expected):
        clean_env.setenv("TWIBOOT_VERIFY", value)
        assert ToolConfig.from_env().verify is expected
