import pytest

from api.v1.infra.email_queue.backoff import (
    DEFAULT_BASE_MS,
    DEFAULT_CAP_MS,
    compute_backoff_ms,
)


@pytest.mark.parametrize(
    "attempts,expected",
    [(1, 1_000), (2, 2_000), (3, 4_000), (4, 8_000), (10, 512_000)],
)
def test_backoff_doubles_per_attempt(attempts, expected):
    """Test delay doubles with each failed attempt."""
    assert compute_backoff_ms(attempts) == expected


def test_backoff_is_capped():
    """Test delay never exceeds the cap."""
    assert compute_backoff_ms(11) == DEFAULT_CAP_MS
    assert compute_backoff_ms(50) == DEFAULT_CAP_MS


def test_backoff_handles_huge_attempt_counts():
    """Test the exponent is clamped instead of overflowing."""
    assert compute_backoff_ms(10_000, base_ms=1, cap_ms=10**12) == 1 << 20


def test_backoff_for_zero_or_negative_attempts_is_base():
    """Test attempts below one still yield the base delay."""
    assert compute_backoff_ms(0) == DEFAULT_BASE_MS
    assert compute_backoff_ms(-3) == DEFAULT_BASE_MS


def test_backoff_custom_base_and_cap():
    assert compute_backoff_ms(1, base_ms=250, cap_ms=1_000) == 250
    assert compute_backoff_ms(3, base_ms=250, cap_ms=1_000) == 1_000
    assert compute_backoff_ms(5, base_ms=250, cap_ms=1_000) == 1_000


def test_backoff_is_monotonic():
    delays = [compute_backoff_ms(n) for n in range(1, 30)]
    assert delays == sorted(delays)
