"""
Attendance Domain Models (``hr_modules.attendance.models``).

Responsibility
--------------
Frozen value objects returned by ``AttendanceService``: the day record as
a whole, its lifecycle state as a closed set of variants, and the monthly
attendance summary.

Invariants enforced
-------------------
* ``day_state`` is exhaustive over ``RecordStatus``; callers match on the
  variant instead of probing nullable fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from hr_kernel.domain.attendance import (
    AttendanceStatus,
    ClockSlots,
    OTStatus,
    RecordStatus,
    ShiftPattern,
)


@dataclass(frozen=True)
class DayRecord:
    record_id: UUID
    tenant_id: UUID
    employee_id: UUID
    work_date: date
    slots: ClockSlots
    pattern: ShiftPattern
    total_work_minutes: int
    break_minutes: int
    ot_minutes: int
    late_minutes: int
    attendance_status: AttendanceStatus
    record_status: RecordStatus
    ot_status: OTStatus
    auto_closed: bool = False
    needs_review: bool = False
    wrong_shift: bool = False
    is_locked: bool = False
    payroll_run_id: UUID | None = None
    rejection_reason: str | None = None
    evidence: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InProgressDay:
    record: DayRecord


@dataclass(frozen=True)
class CompletedDay:
    record: DayRecord


@dataclass(frozen=True)
class AutoClosedDay:
    record: DayRecord


@dataclass(frozen=True)
class DecidedDay:
    """APPROVED or REJECTED; terminal."""

    record: DayRecord


DayState = InProgressDay | CompletedDay | AutoClosedDay | DecidedDay


def day_state(record: DayRecord) -> DayState:
    match record.record_status:
        case RecordStatus.IN_PROGRESS:
            return InProgressDay(record)
        case RecordStatus.COMPLETED:
            return CompletedDay(record)
        case RecordStatus.AUTO_CLOSED:
            return AutoClosedDay(record)
        case RecordStatus.APPROVED | RecordStatus.REJECTED:
            return DecidedDay(record)


@dataclass(frozen=True)
class MonthlyAttendance:
    employee_id: UUID
    year: int
    month: int
    days: tuple[DayRecord, ...]
    work_minutes: int
    ot_minutes: int
    approved_ot_minutes: int
    late_minutes: int
    status_counts: dict[AttendanceStatus, int]
