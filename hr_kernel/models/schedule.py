"""Scheduled shift persistence.  The engine consumes schedules; it never builds them."""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.schedule import DEFAULT_BREAK_MINUTES, ScheduledShift


class ScheduledShiftModel(TrackedBase):
    """One shift per (employee, date).  Times are minutes since midnight."""

    __tablename__ = "scheduled_shifts"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift_start: Mapped[int] = mapped_column(Integer, nullable=False)
    shift_end: Mapped[int] = mapped_column(Integer, nullable=False)
    break_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_BREAK_MINUTES,
    )
    is_off: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    template_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_scheduled_shift_employee_date"),
        Index("idx_scheduled_shift_tenant_date", "tenant_id", "work_date"),
    )

    def to_dto(self) -> ScheduledShift:
        return ScheduledShift(
            employee_id=self.employee_id,
            work_date=self.work_date,
            shift_start=self.shift_start,
            shift_end=self.shift_end,
            break_minutes=self.break_minutes,
            is_off=self.is_off,
            template_id=self.template_id,
        )

    @classmethod
    def from_dto(
        cls, dto: ScheduledShift, tenant_id: UUID, created_by_id: UUID,
    ) -> "ScheduledShiftModel":
        return cls(
            tenant_id=tenant_id,
            employee_id=dto.employee_id,
            work_date=dto.work_date,
            shift_start=dto.shift_start,
            shift_end=dto.shift_end,
            break_minutes=dto.break_minutes,
            is_off=dto.is_off,
            template_id=dto.template_id,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<ScheduledShiftModel {self.employee_id} {self.work_date} "
            f"{self.shift_start}-{self.shift_end} off={self.is_off}>"
        )
