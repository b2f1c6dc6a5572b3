"""
Shift reconciler (``hr_engines.shift_reconciler``).

Responsibility
--------------
Maps a day record's filled slots onto a pattern and checks the record
against its scheduled shift.

    SINGLE         in_1
    HALF           in_1, out_1
    BREAK_STARTED  in_1, out_1, in_2
    FULL           in_1, out_1, in_2, out_2
    NO_BREAK       in_1, out_2

Any other combination is INVALID: the record needs review and no totals are
computed.  ``in_1 == out_2`` is a cancelled sync: zero totals, ABSENT,
review.

Invariants enforced
-------------------
* Slots fill in order in_1 -> out_1 -> in_2 -> out_2; out_1/in_2 may be
  skipped together (NO_BREAK).
* Pure: no clock, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from hr_engines.time_arithmetic import signed_offset
from hr_kernel.domain.attendance import (
    ClockSlots,
    ReviewReason,
    ShiftPattern,
    SlotName,
)
from hr_kernel.domain.schedule import ScheduledShift

_NEXT_SLOTS: dict[ShiftPattern, tuple[SlotName, ...]] = {
    ShiftPattern.EMPTY: (SlotName.CLOCK_IN_1,),
    ShiftPattern.SINGLE: (SlotName.CLOCK_OUT_1, SlotName.CLOCK_OUT_2),
    ShiftPattern.HALF: (SlotName.CLOCK_IN_2,),
    ShiftPattern.BREAK_STARTED: (SlotName.CLOCK_OUT_2,),
    ShiftPattern.FULL: (),
    ShiftPattern.NO_BREAK: (),
    ShiftPattern.INVALID: (),
}

CLOSED_PATTERNS = frozenset({ShiftPattern.FULL, ShiftPattern.NO_BREAK})


def classify(slots: ClockSlots) -> ShiftPattern:
    match slots.presence:
        case (False, False, False, False):
            return ShiftPattern.EMPTY
        case (True, False, False, False):
            return ShiftPattern.SINGLE
        case (True, True, False, False):
            return ShiftPattern.HALF
        case (True, True, True, False):
            return ShiftPattern.BREAK_STARTED
        case (True, True, True, True):
            return ShiftPattern.FULL
        case (True, False, False, True):
            return ShiftPattern.NO_BREAK
        case _:
            return ShiftPattern.INVALID


def legal_next_slots(pattern: ShiftPattern) -> tuple[SlotName, ...]:
    return _NEXT_SLOTS[pattern]


def default_next_slot(pattern: ShiftPattern) -> SlotName | None:
    """Slot an unlabelled clock event fills; None when the day is full."""
    options = _NEXT_SLOTS[pattern]
    return options[0] if options else None


def is_legal_next(pattern: ShiftPattern, slot: SlotName) -> bool:
    return slot in _NEXT_SLOTS[pattern]


def is_cancelled_sync(slots: ClockSlots) -> bool:
    return (
        slots.clock_in_1 is not None
        and slots.clock_out_2 is not None
        and slots.clock_in_1 == slots.clock_out_2
    )


def late_minutes(shift: ScheduledShift | None, clock_in: int | None, grace: int) -> int:
    """Minutes late; zero within the grace, the full lateness beyond it."""
    if shift is None or shift.is_off or clock_in is None:
        return 0
    offset = signed_offset(shift.shift_start, clock_in)
    if offset <= grace:
        return 0
    return offset


def is_wrong_shift(shift: ScheduledShift | None, clock_in: int | None, tolerance: int) -> bool:
    if shift is None or shift.is_off or clock_in is None:
        return False
    return abs(signed_offset(shift.shift_start, clock_in)) > tolerance


@dataclass(frozen=True)
class Reconciliation:
    pattern: ShiftPattern
    needs_review: bool
    review_reasons: tuple[ReviewReason, ...]
    cancelled_sync: bool
    late_minutes: int
    wrong_shift: bool

    @property
    def is_closed(self) -> bool:
        """All sessions of the day are complete."""
        return self.pattern in CLOSED_PATTERNS


def reconcile(
    slots: ClockSlots,
    shift: ScheduledShift | None,
    late_grace_minutes: int = 10,
    wrong_shift_tolerance_minutes: int = 120,
) -> Reconciliation:
    pattern = classify(slots)
    reasons: list[ReviewReason] = []

    if pattern == ShiftPattern.INVALID:
        reasons.append(ReviewReason.SLOT_PATTERN_INVALID)

    cancelled = pattern in CLOSED_PATTERNS and is_cancelled_sync(slots)
    if cancelled:
        reasons.append(ReviewReason.CANCELLED_SYNC)

    wrong = is_wrong_shift(shift, slots.clock_in_1, wrong_shift_tolerance_minutes)
    if wrong:
        reasons.append(ReviewReason.WRONG_SHIFT)

    return Reconciliation(
        pattern=pattern,
        needs_review=bool(reasons),
        review_reasons=tuple(reasons),
        cancelled_sync=cancelled,
        late_minutes=0 if wrong else late_minutes(shift, slots.clock_in_1, late_grace_minutes),
        wrong_shift=wrong,
    )
