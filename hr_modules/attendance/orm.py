"""
Attendance ORM Persistence Models (``hr_modules.attendance.orm``).

Responsibility:
    ``DayRecordModel`` persists one employee's attendance for one date and
    converts to the ``DayRecord`` DTO.

Invariants enforced:
    - Unique on (employee_id, work_date); concurrent first clock-ins race on
      this constraint and the loser retries.
    - Slots are minutes since midnight; no date boundary is stored.
    - Enum fields are stored as their ``.value`` strings.
    - ``is_locked`` rows are frozen by ``hr_kernel.db.immutability``.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.attendance import (
    AttendanceStatus,
    ClockSlots,
    OTStatus,
    RecordStatus,
    ShiftPattern,
)


class DayRecordModel(TrackedBase):
    """
    ORM model for ``DayRecord``.

    Guarantees:
        - One row per (employee, work_date).
        - ``record_status`` follows ``DAY_RECORD_WORKFLOW``; ``ot_status``
          follows ``OVERTIME_WORKFLOW``.
    """

    __tablename__ = "day_records"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)

    clock_in_1: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clock_out_1: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clock_in_2: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clock_out_2: Mapped[int | None] = mapped_column(Integer, nullable=True)
    evidence: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    shift_pattern: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ShiftPattern.EMPTY.value,
    )
    total_work_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    raw_ot_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ot_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    attendance_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttendanceStatus.ABSENT.value,
    )
    record_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RecordStatus.IN_PROGRESS.value,
    )
    ot_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OTStatus.NONE.value,
    )
    auto_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    wrong_shift: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    decided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    ot_decided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    ot_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payroll_run_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_day_record_employee_date"),
        Index("idx_day_record_tenant_status", "tenant_id", "record_status"),
        Index("idx_day_record_tenant_date", "tenant_id", "work_date"),
        Index("idx_day_record_ot_status", "tenant_id", "ot_status"),
    )

    @property
    def slots(self) -> ClockSlots:
        return ClockSlots(
            clock_in_1=self.clock_in_1,
            clock_out_1=self.clock_out_1,
            clock_in_2=self.clock_in_2,
            clock_out_2=self.clock_out_2,
        )

    def apply_slots(self, slots: ClockSlots) -> None:
        self.clock_in_1 = slots.clock_in_1
        self.clock_out_1 = slots.clock_out_1
        self.clock_in_2 = slots.clock_in_2
        self.clock_out_2 = slots.clock_out_2

    def to_dto(self):
        from hr_modules.attendance.models import DayRecord

        return DayRecord(
            record_id=self.id,
            tenant_id=self.tenant_id,
            employee_id=self.employee_id,
            work_date=self.work_date,
            slots=self.slots,
            pattern=ShiftPattern(self.shift_pattern),
            total_work_minutes=self.total_work_minutes,
            break_minutes=self.break_minutes,
            ot_minutes=self.ot_minutes,
            late_minutes=self.late_minutes,
            attendance_status=AttendanceStatus(self.attendance_status),
            record_status=RecordStatus(self.record_status),
            ot_status=OTStatus(self.ot_status),
            auto_closed=self.auto_closed,
            needs_review=self.needs_review,
            wrong_shift=self.wrong_shift,
            is_locked=self.is_locked,
            payroll_run_id=self.payroll_run_id,
            rejection_reason=self.rejection_reason,
            evidence=dict(self.evidence or {}),
        )

    def __repr__(self) -> str:
        return (
            f"<DayRecordModel {self.employee_id} {self.work_date} "
            f"{self.shift_pattern} {self.record_status}>"
        )
