"""Unit tests for dedup keys"""

from datetime import datetime, timedelta, timezone
from fintrack.domain.dedup import compute_dedup_key
from fintrack.domain.models import RawMessage


def _message(body="Rs 100 debited", sender="HDFCBK", received_at=datetime(2025, 1, 5, 10, 30, 15)):
    return RawMessage(sender=sender, body=body, received_at=received_at)


def test_same_message_same_key():
    assert compute_dedup_key(_message()) == compute_dedup_key(_message())


def test_seconds_and_whitespace_are_ignored():
    noisy = _message(body="  RS 100   debited ", received_at=datetime(2025, 1, 5, 10, 30, 59))
    assert compute_dedup_key(noisy) == compute_dedup_key(_message())


def test_different_minute_sender_or_body_changes_key():
    base = compute_dedup_key(_message())
    assert compute_dedup_key(_message(received_at=datetime(2025, 1, 5, 10, 31, 15))) != base
    assert compute_dedup_key(_message(sender="SBIINB")) != base
    assert compute_dedup_key(_message(body="Rs 101 debited")) != base


def test_aware_timestamps_normalize_to_utc():
    ist = timezone(timedelta(hours=5, minutes=30))
    aware = _message(received_at=datetime(2025, 1, 5, 16, 0, 15, tzinfo=ist))
    naive_utc = _message(received_at=datetime(2025, 1, 5, 10, 30, 40))
    assert compute_dedup_key(aware) == compute_dedup_key(naive_utc)
