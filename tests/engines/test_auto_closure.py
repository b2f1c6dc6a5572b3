"""
Tests for deterministic auto-closure of open day records.

Covers:
- Closing minute for day and night shifts
- Slot completion per pattern and totals capping
- Closing a closed result again is a no-op
"""

from datetime import date
from uuid import uuid4

from hr_config.schema import TenantPolicy
from hr_engines.auto_closure import (
    close_day,
    closing_minute,
    is_night_shift,
    scheduled_minutes,
)
from hr_engines.day_calculator import DayContext
from hr_kernel.domain.attendance import (
    ClockSlots,
    ReviewReason,
    ShiftPattern,
    parse_hhmm,
)
from hr_kernel.domain.schedule import ScheduledShift

WORK_DATE = date(2026, 2, 2)


def _policy() -> TenantPolicy:
    return TenantPolicy(tenant_id=uuid4(), standard_daily_minutes=450)


def _shift(start="09:00", end="18:00", break_minutes=60, is_off=False) -> ScheduledShift:
    return ScheduledShift(
        employee_id=uuid4(),
        work_date=WORK_DATE,
        shift_start=parse_hhmm(start),
        shift_end=parse_hhmm(end),
        break_minutes=break_minutes,
        is_off=is_off,
    )


class TestClosingMoment:
    def test_day_shift_closes_at_midnight(self):
        assert not is_night_shift(_shift())
        assert closing_minute(_shift()) == 0

    def test_no_schedule_closes_at_midnight(self):
        assert closing_minute(None) == 0

    def test_night_shift_closes_an_hour_after_end(self):
        night = _shift("22:00", "04:00")
        assert is_night_shift(night)
        assert closing_minute(night) == parse_hhmm("05:00")

    def test_shift_ending_at_six_is_a_night_shift(self):
        assert is_night_shift(_shift("21:00", "06:00"))
        assert not is_night_shift(_shift("21:00", "06:01"))


class TestScheduledMinutes:
    def test_shift_minus_break(self):
        assert scheduled_minutes(_shift(), 450) == 480

    def test_overnight_shift(self):
        assert scheduled_minutes(_shift("22:00", "04:00", 30), 450) == 330

    def test_no_shift_uses_standard(self):
        assert scheduled_minutes(None, 450) == 450
        assert scheduled_minutes(_shift(is_off=True), 450) == 450


class TestCloseDay:
    def test_forgotten_clock_out_is_capped(self):
        result = close_day(ClockSlots(parse_hhmm("09:00")), _shift(), _policy())

        assert result.closing_minute == 0
        assert result.slots.clock_out_2 == 0
        assert result.totals.pattern == ShiftPattern.NO_BREAK
        assert result.totals.work_minutes == 450
        assert result.totals.ot_minutes == 0
        assert result.totals.raw_ot_minutes == 0
        assert result.totals.needs_review
        assert result.totals.review_reasons[0] == ReviewReason.AUTO_CLOCK_OUT

    def test_break_started_becomes_full(self):
        slots = ClockSlots(parse_hhmm("09:00"), parse_hhmm("13:00"), parse_hhmm("14:00"))
        result = close_day(slots, _shift(), _policy())

        assert result.totals.pattern == ShiftPattern.FULL
        assert result.totals.work_minutes == 450

    def test_half_keeps_its_slots(self):
        slots = ClockSlots(parse_hhmm("09:00"), parse_hhmm("13:00"))
        result = close_day(slots, _shift(), _policy())

        assert result.slots == slots
        assert result.totals.pattern == ShiftPattern.HALF
        assert result.totals.work_minutes == 240

    def test_night_shift_closed_at_grace(self):
        result = close_day(ClockSlots(parse_hhmm("22:00")), _shift("22:00", "04:00"), _policy())

        assert result.slots.clock_out_2 == parse_hhmm("05:00")
        # 22:00 -> 05:00 less a 60-minute break
        assert result.totals.work_minutes == 360

    def test_part_time_capped_at_schedule(self):
        shift = _shift("10:00", "14:00", break_minutes=0)
        result = close_day(
            ClockSlots(parse_hhmm("10:00")), shift, _policy(), DayContext(is_part_time=True)
        )
        assert result.totals.work_minutes == 240

    def test_invalid_pattern_closes_with_zero(self):
        slots = ClockSlots(parse_hhmm("09:00"), None, parse_hhmm("14:00"))
        result = close_day(slots, _shift(), _policy())

        assert result.totals.work_minutes == 0
        assert ReviewReason.SLOT_PATTERN_INVALID in result.totals.review_reasons

    def test_closing_again_changes_nothing(self):
        first = close_day(ClockSlots(parse_hhmm("09:00")), _shift(), _policy())
        second = close_day(first.slots, _shift(), _policy())

        assert second.slots == first.slots
        assert second.totals == first.totals
