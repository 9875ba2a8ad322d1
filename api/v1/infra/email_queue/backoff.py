"""Exponential retry backoff for the email queue."""

DEFAULT_BASE_MS = 1000
DEFAULT_CAP_MS = 10 * 60 * 1000

# Upper bound on the doubling exponent
MAX_EXPONENT = 20


def compute_backoff_ms(
    attempts: int, base_ms: int = DEFAULT_BASE_MS, cap_ms: int = DEFAULT_CAP_MS
) -> int:
    """
    Delay before the next attempt after ``attempts`` failures.

    1s, 2s, 4s, ... doubling per failure and capped at ``cap_ms``.
    """
    exponent = min(MAX_EXPONENT, max(0, attempts - 1))
    return min(cap_ms, base_ms * (1 << exponent))
