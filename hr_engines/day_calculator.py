"""
Day calculator (``hr_engines.day_calculator``).

Responsibility
--------------
Turns a reconciled day record into ``(work, break, ot)`` minutes and an
attendance status.

    FULL           work = diff(in_1, out_1) + diff(in_2, out_2)
                   break = diff(out_1, in_2)
    HALF           work = diff(in_1, out_1), break = 0
    NO_BREAK       work = max(0, diff(in_1, out_2) - scheduled break)
    SINGLE,
    BREAK_STARTED  work = 0

``raw_ot = max(0, work - threshold)`` and ``ot = round_overtime(raw_ot)``.
Part-time employees never earn OT.

Architecture position
---------------------
Engines layer: pure, zero I/O, no clock reads.

Invariants enforced
-------------------
* ``ot > 0`` implies ``work >= threshold`` and ``ot >= minimum``.
* Status precedence HOLIDAY > LEAVE > REST > PRESENT/ABSENT; a cancelled
  sync is always ABSENT.
* An INVALID pattern yields zero totals.
"""

from __future__ import annotations

from dataclasses import dataclass

from hr_config.schema import TenantPolicy
from hr_engines.shift_reconciler import Reconciliation, reconcile
from hr_engines.time_arithmetic import diff, round_overtime
from hr_kernel.domain.attendance import (
    AttendanceStatus,
    ClockSlots,
    ReviewReason,
    ShiftPattern,
)
from hr_kernel.domain.schedule import ScheduledShift


@dataclass(frozen=True)
class DayContext:
    """Calendar facts for the record's date."""

    is_public_holiday: bool = False
    on_approved_leave: bool = False
    is_part_time: bool = False


@dataclass(frozen=True)
class DayTotals:
    pattern: ShiftPattern
    work_minutes: int
    break_minutes: int
    raw_ot_minutes: int
    ot_minutes: int
    attendance_status: AttendanceStatus
    late_minutes: int = 0
    needs_review: bool = False
    review_reasons: tuple[ReviewReason, ...] = ()


def session_minutes(
    pattern: ShiftPattern,
    slots: ClockSlots,
    scheduled_break: int = 0,
) -> tuple[int, int]:
    """``(work, break)`` minutes for a pattern."""
    match pattern:
        case ShiftPattern.FULL:
            work = diff(slots.clock_in_1, slots.clock_out_1) + diff(
                slots.clock_in_2, slots.clock_out_2
            )
            return work, diff(slots.clock_out_1, slots.clock_in_2)
        case ShiftPattern.HALF:
            return diff(slots.clock_in_1, slots.clock_out_1), 0
        case ShiftPattern.NO_BREAK:
            span = diff(slots.clock_in_1, slots.clock_out_2)
            return max(0, span - scheduled_break), 0
        case _:
            return 0, 0


def attendance_status(
    work_minutes: int,
    shift: ScheduledShift | None,
    context: DayContext,
    cancelled_sync: bool = False,
) -> AttendanceStatus:
    if cancelled_sync:
        return AttendanceStatus.ABSENT
    if context.is_public_holiday:
        return AttendanceStatus.HOLIDAY
    if context.on_approved_leave:
        return AttendanceStatus.LEAVE
    if shift is not None and shift.is_off:
        return AttendanceStatus.REST
    return AttendanceStatus.PRESENT if work_minutes > 0 else AttendanceStatus.ABSENT


def overtime_minutes(work_minutes: int, policy: TenantPolicy, is_part_time: bool) -> tuple[int, int]:
    """``(raw_ot, rounded_ot)``; both zero for part-time staff."""
    if is_part_time:
        return 0, 0
    raw = max(0, work_minutes - policy.threshold_minutes)
    return raw, round_overtime(raw, policy.ot_rounding)


def compute_day(
    slots: ClockSlots,
    shift: ScheduledShift | None,
    policy: TenantPolicy,
    context: DayContext = DayContext(),
    reconciliation: Reconciliation | None = None,
) -> DayTotals:
    """Reconcile ``slots`` and compute the day's totals.

    Example (standard 450, 30MIN NEAREST): 09:00 / 13:00 / 13:30 / 18:30
    gives work 540, break 30, OT 90.
    """
    rec = reconciliation or reconcile(
        slots,
        shift,
        late_grace_minutes=policy.late_grace_minutes,
        wrong_shift_tolerance_minutes=policy.wrong_shift_tolerance_minutes,
    )

    if rec.pattern == ShiftPattern.INVALID or rec.cancelled_sync:
        work, brk = 0, 0
    else:
        scheduled_break = shift.break_minutes if shift is not None and not shift.is_off else 0
        work, brk = session_minutes(rec.pattern, slots, scheduled_break)

    raw_ot, ot = overtime_minutes(work, policy, context.is_part_time)

    return DayTotals(
        pattern=rec.pattern,
        work_minutes=work,
        break_minutes=brk,
        raw_ot_minutes=raw_ot,
        ot_minutes=ot,
        attendance_status=attendance_status(work, shift, context, rec.cancelled_sync),
        late_minutes=rec.late_minutes,
        needs_review=rec.needs_review,
        review_reasons=rec.review_reasons,
    )
