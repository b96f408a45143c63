from datetime import datetime, timedelta, timezone

from services.backoff import backoff_delay, next_retry_at


def test_delay_doubles_per_retry():
    assert backoff_delay(1) == timedelta(seconds=2)
    assert backoff_delay(2) == timedelta(seconds=4)
    assert backoff_delay(3) == timedelta(seconds=8)


def test_negative_retry_count_treated_as_zero():
    assert backoff_delay(-5) == timedelta(seconds=1)


def test_optional_cap():
    assert backoff_delay(10, max_delay_sec=30) == timedelta(seconds=30)
    assert backoff_delay(10) == timedelta(seconds=1024)


def test_next_retry_at_offsets_from_now():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert next_retry_at(2, now) == now + timedelta(seconds=4)
    assert next_retry_at(1, now) < next_retry_at(2, now) < next_retry_at(3, now)
