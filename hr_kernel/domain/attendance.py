"""
Attendance value objects: slots, patterns and day-record statuses.

Times are minutes since midnight in ``[0, 1440)``.  A day record never stores
a date boundary; an out-slot numerically earlier than its in-slot belongs to
the next calendar day.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

MINUTES_PER_DAY = 1440


class SlotName(str, Enum):
    CLOCK_IN_1 = "clock_in_1"
    CLOCK_OUT_1 = "clock_out_1"
    CLOCK_IN_2 = "clock_in_2"
    CLOCK_OUT_2 = "clock_out_2"


SLOT_ORDER: tuple[SlotName, ...] = (
    SlotName.CLOCK_IN_1,
    SlotName.CLOCK_OUT_1,
    SlotName.CLOCK_IN_2,
    SlotName.CLOCK_OUT_2,
)


class ShiftPattern(str, Enum):
    EMPTY = "EMPTY"
    SINGLE = "SINGLE"
    HALF = "HALF"
    BREAK_STARTED = "BREAK_STARTED"
    FULL = "FULL"
    NO_BREAK = "NO_BREAK"
    INVALID = "INVALID"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LEAVE = "LEAVE"
    HOLIDAY = "HOLIDAY"
    REST = "REST"


class RecordStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    AUTO_CLOSED = "AUTO_CLOSED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


TERMINAL_RECORD_STATUSES = frozenset({RecordStatus.APPROVED, RecordStatus.REJECTED})


class OTStatus(str, Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DayClass(str, Enum):
    """Calendar classification used for OT multipliers."""

    NORMAL = "normal"
    WEEKEND = "weekend"
    PUBLIC_HOLIDAY = "public_holiday"


class ReviewReason(str, Enum):
    AUTO_CLOCK_OUT = "auto_clock_out"
    SLOT_PATTERN_INVALID = "slot_pattern_invalid"
    CANCELLED_SYNC = "cancelled_sync"
    WRONG_SHIFT = "wrong_shift"


@dataclass(frozen=True)
class ClockSlots:
    """The four slots of a day record."""

    clock_in_1: int | None = None
    clock_out_1: int | None = None
    clock_in_2: int | None = None
    clock_out_2: int | None = None

    def __post_init__(self) -> None:
        for slot in SLOT_ORDER:
            value = getattr(self, slot.value)
            if value is not None and not 0 <= value < MINUTES_PER_DAY:
                raise ValueError(f"{slot.value}={value} outside [0, {MINUTES_PER_DAY})")

    @property
    def presence(self) -> tuple[bool, bool, bool, bool]:
        return (
            self.clock_in_1 is not None,
            self.clock_out_1 is not None,
            self.clock_in_2 is not None,
            self.clock_out_2 is not None,
        )

    def get(self, slot: SlotName) -> int | None:
        return getattr(self, slot.value)

    def with_slot(self, slot: SlotName, minute: int) -> ClockSlots:
        return replace(self, **{slot.value: minute})


def minute_of_day(hour: int, minute: int = 0) -> int:
    """``minute_of_day(13, 30) == 810``."""
    return (hour * 60 + minute) % MINUTES_PER_DAY


def parse_hhmm(text: str) -> int:
    """Parse ``"HH:MM"`` into minutes since midnight."""
    hours, _, minutes = text.partition(":")
    return minute_of_day(int(hours), int(minutes or 0))


def format_hhmm(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"
