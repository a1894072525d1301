"""
Tests for run_with_conflict_retry.
"""

import pytest

from pharmacy_kernel.exceptions import ConcurrentModificationError, InsufficientStockError
from pharmacy_modules.inventory.retry import run_with_conflict_retry


def _flaky(failures: int):
    calls = {"n": 0}

    def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise ConcurrentModificationError("DrugBatch", "BATCH000001")
        return "ok"

    return operation, calls


def test_succeeds_after_conflicts():
    sleeps = []
    operation, calls = _flaky(2)

    assert run_with_conflict_retry(operation, max_attempts=3, backoff_seconds=0.1, sleep=sleeps.append) == "ok"
    assert calls["n"] == 3
    assert sleeps == [0.1, 0.2]


def test_gives_up_after_max_attempts(captured_logs):
    operation, calls = _flaky(5)

    with pytest.raises(ConcurrentModificationError):
        run_with_conflict_retry(operation, max_attempts=3, sleep=lambda s: None)

    assert calls["n"] == 3
    assert any(r["message"] == "conflict_retry_exhausted" for r in captured_logs())


def test_other_errors_not_retried():
    calls = {"n": 0}

    def operation():
        calls["n"] += 1
        raise InsufficientStockError("d", 5, 1)

    with pytest.raises(InsufficientStockError):
        run_with_conflict_retry(operation, max_attempts=5, sleep=lambda s: None)
    assert calls["n"] == 1


def test_max_attempts_validated():
    with pytest.raises(ValueError):
        run_with_conflict_retry(lambda: None, max_attempts=0)
