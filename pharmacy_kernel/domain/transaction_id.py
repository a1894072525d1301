"""
Transaction identifier format: ``TXN`` + YYMMDD + daily sequence + suffix.

    TXN 26 01 16 001 7423
        |  |  |  |   +-- random suffix, 1000-9999
        |  |  |  +------ daily sequence, zero-padded to 3 digits
        |  +--+--------- clinic-local calendar date
        +--------------- literal prefix

The daily sequence is at least three digits.  Past 999 it simply widens
(``TXN2601161000...``) instead of wrapping, so ids stay unique and still sort
by day.  Parsing accepts the widened form.
"""

import re
from dataclasses import dataclass
from datetime import date

PREFIX = "TXN"
SUFFIX_MIN = 1000
SUFFIX_MAX = 9999

_PATTERN = re.compile(r"^TXN(\d{2})(\d{2})(\d{2})(\d{3,})(\d{4})$")


@dataclass(frozen=True)
class ParsedTransactionId:
    day: date
    sequence: int
    suffix: int


def format_transaction_id(day: date, sequence: int, suffix: int) -> str:
    if sequence < 1:
        raise ValueError(f"sequence must be >= 1, got {sequence}")
    if not SUFFIX_MIN <= suffix <= SUFFIX_MAX:
        raise ValueError(f"suffix must be in [{SUFFIX_MIN}, {SUFFIX_MAX}], got {suffix}")
    return f"{PREFIX}{day:%y%m%d}{sequence:03d}{suffix}"


def parse_transaction_id(value: str) -> ParsedTransactionId | None:
    """Split an id into its parts, or None if it is not well formed."""
    match = _PATTERN.match(value or "")
    if match is None:
        return None
    yy, mm, dd, seq, suffix = match.groups()
    try:
        day = date(2000 + int(yy), int(mm), int(dd))
    except ValueError:
        return None
    sequence = int(seq)
    if sequence < 1 or (len(seq) > 3 and seq.startswith("0")):
        return None
    if int(suffix) < SUFFIX_MIN:
        return None
    return ParsedTransactionId(day=day, sequence=sequence, suffix=int(suffix))


def is_valid_transaction_id(value: str) -> bool:
    return parse_transaction_id(value) is not None
