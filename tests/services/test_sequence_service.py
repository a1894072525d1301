"""
Tests for SequenceService locked counters.
"""

from pharmacy_kernel.services.sequence_service import SequenceService


def test_first_value_is_one(sequence_service):
    assert sequence_service.next_value("test_seq") == 1


def test_values_strictly_increase(sequence_service):
    values = [sequence_service.next_value("test_seq") for _ in range(5)]
    assert values == [1, 2, 3, 4, 5]


def test_sequences_are_independent(sequence_service):
    sequence_service.next_value("a")
    sequence_service.next_value("a")
    assert sequence_service.next_value("b") == 1


def test_current_value(sequence_service):
    assert sequence_service.current_value("unused") is None
    sequence_service.next_value("used")
    assert sequence_service.current_value("used") == 1


def test_reset(sequence_service):
    sequence_service.next_value("r")
    sequence_service.reset("r", 41)
    assert sequence_service.next_value("r") == 42


def test_initialize_sequences(sequence_service):
    sequence_service.initialize_sequences()
    for name in SequenceService.WELL_KNOWN:
        assert sequence_service.current_value(name) == 0
    assert sequence_service.next_value(SequenceService.BATCH_ID) == 1


def test_daily_name():
    from datetime import date

    assert SequenceService.daily_name("txn", date(2026, 1, 16)) == "txn:2026-01-16"


def test_rolled_back_value_is_reissued(session):
    seq = SequenceService(session)
    savepoint = session.begin_nested()
    seq.next_value("rb")
    savepoint.rollback()
    assert seq.next_value("rb") == 1
