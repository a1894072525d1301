"""
Tests for the admin CLI's argument parsing and output formatting.
"""

import importlib.util
from decimal import Decimal
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "pharmacy_admin.py"


@pytest.fixture(scope="module")
def admin():
    module_spec = importlib.util.spec_from_file_location("pharmacy_admin", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


class TestFormatting:

    @pytest.mark.parametrize("value, expected", [
        (Decimal("19"), "19.00"),
        (Decimal("-200"), "-200.00"),
        ("1234567.891", "1,234,567.89"),
    ])
    def test_amounts_have_no_currency_symbol(self, admin, value, expected):
        assert admin._fmt(value) == expected


class TestArguments:

    def test_dispense_from_batch(self, admin):
        args = admin._parse_args(["--user", "alice", "dispense", "DRG00001", "8", "--batch", "BATCH000002"])
        assert args.command == "dispense"
        assert args.quantity == 8
        assert args.batch == "BATCH000002"
        assert args.user == "alice"

    def test_adjust_requires_reason(self, admin):
        with pytest.raises(SystemExit):
            admin._parse_args(["adjust", "BATCH000001", "-2"])

    def test_negative_delta_parsed(self, admin):
        args = admin._parse_args(["adjust", "BATCH000001", "-2", "--reason", "broken"])
        assert args.delta == -2
