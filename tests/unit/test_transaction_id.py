"""
Unit tests for the transaction identifier format.
"""

from datetime import date

import pytest

from pharmacy_kernel.domain.transaction_id import (
    format_transaction_id,
    is_valid_transaction_id,
    parse_transaction_id,
)


class TestFormat:

    def test_layout(self):
        assert format_transaction_id(date(2026, 1, 16), 1, 7423) == "TXN2601160017423"

    def test_sequence_widens_past_999(self):
        tid = format_transaction_id(date(2026, 1, 16), 1000, 1000)
        assert tid == "TXN26011610001000"
        assert is_valid_transaction_id(tid)

    @pytest.mark.parametrize("sequence", [0, -1])
    def test_sequence_must_be_positive(self, sequence):
        with pytest.raises(ValueError):
            format_transaction_id(date(2026, 1, 16), sequence, 1000)

    @pytest.mark.parametrize("suffix", [999, 10000])
    def test_suffix_range(self, suffix):
        with pytest.raises(ValueError):
            format_transaction_id(date(2026, 1, 16), 1, suffix)


class TestParse:

    def test_round_trip_parts(self):
        parsed = parse_transaction_id("TXN2601160427423")
        assert parsed.day == date(2026, 1, 16)
        assert parsed.sequence == 42
        assert parsed.suffix == 7423

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "TXN260116001742",        # suffix too short
            "ABC2601160017423",       # wrong prefix
            "TXN2613160017423",       # month 13
            "TXN2601160007423",       # sequence 0
            "TXN26011600010999",      # widened with leading zero
            "TXN2601160010999",       # suffix below 1000
            "txn2601160017423",
        ],
    )
    def test_rejects_malformed(self, value):
        assert parse_transaction_id(value) is None
        assert not is_valid_transaction_id(value)
