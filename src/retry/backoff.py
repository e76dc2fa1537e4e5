"""Jittered exponential backoff calculation."""

import math
import random
from collections.abc import Callable


RandomSource = Callable[[], float]


def compute_delay(
    attempt: int,
    base_ms: float,
    factor: float,
    cap_ms: float,
    jitter_fraction: float,
    rand: RandomSource = random.random,
) -> float:
    """Compute the delay before the next attempt.

    ``exp = base * factor ** attempt`` perturbed by up to
    ``± exp * jitter_fraction``, then capped at ``cap_ms`` and clamped at 0.

    Args:
        attempt: Attempt number (0-indexed).
        base_ms: Base delay in milliseconds.
        factor: Exponential growth factor.
        cap_ms: Maximum delay in milliseconds.
        jitter_fraction: Fraction of the exponential delay used as jitter.
        rand: Uniform random source on [0, 1).

    Returns:
        Delay in milliseconds, within ``[0, cap_ms]``.
    """
    if attempt < 0:
        msg = f"attempt must be >= 0, got {attempt}"
        raise ValueError(msg)

    try:
        exponential = base_ms * factor**attempt
    except OverflowError:
        exponential = math.inf
    if math.isinf(exponential):
        return float(max(cap_ms, 0.0))

    jitter = exponential * jitter_fraction * (rand() * 2 - 1)
    return max(0.0, min(exponential + jitter, cap_ms))
