"""Scheduled shifts and public holidays, as consumed by the engines."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

DEFAULT_BREAK_MINUTES = 60


@dataclass(frozen=True)
class ScheduledShift:
    """One employee's shift on one date.  ``shift_end <= shift_start`` means
    the shift ends on the next calendar day."""

    employee_id: UUID
    work_date: date
    shift_start: int
    shift_end: int
    break_minutes: int = DEFAULT_BREAK_MINUTES
    is_off: bool = False
    template_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.break_minutes < 0:
            raise ValueError("break_minutes cannot be negative")


@dataclass(frozen=True)
class PublicHoliday:
    holiday_date: date
    name: str
    extra_pay: bool = True
