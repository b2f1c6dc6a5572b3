"""
Time arithmetic (``hr_engines.time_arithmetic``).

Responsibility
--------------
Minute-of-day arithmetic and overtime rounding.  A time is an int in
``[0, 1440)``; ``diff(a, b) = (b - a) mod 1440`` is the only place overnight
shifts are handled, so a clock-out numerically before its clock-in lands on
the next calendar day.

Invariants enforced
-------------------
* Raw OT below the tenant minimum rounds to zero.  At or above it, rounding
  applies to the whole raw figure, not to the part above the minimum.
* ``round_overtime`` is idempotent.
* No clock reads, no I/O.
"""

from __future__ import annotations

from decimal import Decimal

from hr_config.schema import OTRoundingPolicy, RoundingDirection
from hr_kernel.domain.attendance import MINUTES_PER_DAY


def diff(a: int, b: int) -> int:
    """Minutes from ``a`` forward to ``b``, wrapping past midnight."""
    return (b - a) % MINUTES_PER_DAY


def signed_offset(reference: int, actual: int) -> int:
    """Shortest signed distance from ``reference`` to ``actual``, in (-720, 720].

    ``signed_offset(540, 530) == -10`` (ten minutes early).
    """
    offset = diff(reference, actual)
    if offset > MINUTES_PER_DAY // 2:
        offset -= MINUTES_PER_DAY
    return offset


def add_minutes(minute: int, delta: int) -> int:
    return (minute + delta) % MINUTES_PER_DAY


def round_to_granularity(
    minutes: int, granularity: int, direction: RoundingDirection,
) -> int:
    if minutes < 0:
        raise ValueError(f"cannot round negative minutes {minutes}")
    if granularity <= 0:
        raise ValueError(f"granularity must be positive, got {granularity}")
    match direction:
        case RoundingDirection.DOWN:
            return (minutes // granularity) * granularity
        case RoundingDirection.UP:
            return -(-minutes // granularity) * granularity
        case RoundingDirection.NEAREST:
            # half rounds up
            return ((minutes + granularity // 2) // granularity) * granularity


def round_overtime(raw_minutes: int, policy: OTRoundingPolicy) -> int:
    """Round raw OT minutes under the tenant rounding policy.

    Example (30MIN DOWN, minimum 60): 379 -> 360; 59 -> 0.
    """
    if raw_minutes < policy.minimum_minutes or raw_minutes <= 0:
        return 0
    rounded = round_to_granularity(
        raw_minutes, policy.method.granularity, policy.direction,
    )
    if rounded < policy.minimum_minutes:
        return 0
    return rounded


def minutes_to_hours(minutes: int) -> Decimal:
    return Decimal(minutes) / Decimal(60)
