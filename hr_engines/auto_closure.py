"""
Auto-closure (``hr_engines.auto_closure``).

Responsibility
--------------
Deterministic closing of day records left IN_PROGRESS after their date has
passed in tenant-local time.

* Closing minute: a night shift (``shift_end`` in [00:00, 06:00]) closes at
  ``shift_end + 60``; any other schedule, or none, closes at 00:00.
* SINGLE gains ``out_2`` (becoming NO_BREAK); BREAK_STARTED gains ``out_2``
  (becoming FULL).  HALF keeps its slots.  An unrecognised combination is
  closed with zero totals.
* Totals are recomputed, then capped: full-time at the standard day with no
  OT, part-time at the scheduled minutes.

Architecture position
---------------------
Engines layer: pure.  Which records are past their date is decided by the
caller.

Invariants enforced
-------------------
* ``close_day`` applied to its own output slots yields the same totals.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from hr_config.schema import TenantPolicy
from hr_engines.day_calculator import DayContext, DayTotals, compute_day
from hr_engines.shift_reconciler import classify
from hr_engines.time_arithmetic import add_minutes, diff
from hr_kernel.domain.attendance import (
    ClockSlots,
    ReviewReason,
    ShiftPattern,
    SlotName,
)
from hr_kernel.domain.schedule import ScheduledShift

NIGHT_SHIFT_LATEST_END = 360
NIGHT_SHIFT_GRACE_MINUTES = 60


def is_night_shift(shift: ScheduledShift | None) -> bool:
    return (
        shift is not None
        and not shift.is_off
        and 0 <= shift.shift_end <= NIGHT_SHIFT_LATEST_END
    )


def closing_minute(shift: ScheduledShift | None, default_minute: int = 0) -> int:
    if is_night_shift(shift):
        return add_minutes(shift.shift_end, NIGHT_SHIFT_GRACE_MINUTES)
    return default_minute


def scheduled_minutes(shift: ScheduledShift | None, standard_minutes: int) -> int:
    if shift is None or shift.is_off:
        return standard_minutes
    return max(0, diff(shift.shift_start, shift.shift_end) - shift.break_minutes)


def closed_slots(slots: ClockSlots, closing: int) -> ClockSlots:
    match classify(slots):
        case ShiftPattern.SINGLE | ShiftPattern.BREAK_STARTED:
            return slots.with_slot(SlotName.CLOCK_OUT_2, closing)
        case _:
            return slots


@dataclass(frozen=True)
class ClosureResult:
    slots: ClockSlots
    totals: DayTotals
    closing_minute: int


def close_day(
    slots: ClockSlots,
    shift: ScheduledShift | None,
    policy: TenantPolicy,
    context: DayContext = DayContext(),
) -> ClosureResult:
    """Close an IN_PROGRESS record and cap its totals.

    Example (full-time, standard 450, shift 09:00-18:00 with 60 break):
    in_1 09:00 closes with out_2 00:00, NO_BREAK work 840 capped to 450.
    """
    closing = closing_minute(shift)
    new_slots = closed_slots(slots, closing)
    totals = compute_day(new_slots, shift, policy, context)

    if context.is_part_time:
        cap = scheduled_minutes(shift, policy.standard_daily_minutes)
    else:
        cap = policy.standard_daily_minutes

    reasons = (ReviewReason.AUTO_CLOCK_OUT,) + tuple(
        r for r in totals.review_reasons if r != ReviewReason.AUTO_CLOCK_OUT
    )
    capped = replace(
        totals,
        work_minutes=min(totals.work_minutes, cap),
        raw_ot_minutes=0,
        ot_minutes=0,
        needs_review=True,
        review_reasons=reasons,
    )
    return ClosureResult(slots=new_slots, totals=capped, closing_minute=closing)
