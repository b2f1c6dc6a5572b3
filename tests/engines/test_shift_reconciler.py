"""
Tests for slot pattern classification and shift reconciliation.
"""

from datetime import date
from uuid import uuid4

import pytest

from hr_engines.shift_reconciler import (
    classify,
    default_next_slot,
    is_cancelled_sync,
    is_legal_next,
    is_wrong_shift,
    late_minutes,
    legal_next_slots,
    reconcile,
)
from hr_kernel.domain.attendance import (
    ClockSlots,
    ReviewReason,
    ShiftPattern,
    SlotName,
    parse_hhmm,
)
from hr_kernel.domain.schedule import ScheduledShift


def _shift(start="09:00", end="18:00", is_off=False) -> ScheduledShift:
    return ScheduledShift(
        employee_id=uuid4(),
        work_date=date(2026, 2, 2),
        shift_start=parse_hhmm(start),
        shift_end=parse_hhmm(end),
        is_off=is_off,
    )


class TestClassify:
    @pytest.mark.parametrize(
        "slots, expected",
        [
            (ClockSlots(), ShiftPattern.EMPTY),
            (ClockSlots(540), ShiftPattern.SINGLE),
            (ClockSlots(540, 780), ShiftPattern.HALF),
            (ClockSlots(540, 780, 810), ShiftPattern.BREAK_STARTED),
            (ClockSlots(540, 780, 810, 1110), ShiftPattern.FULL),
            (ClockSlots(540, None, None, 1110), ShiftPattern.NO_BREAK),
            (ClockSlots(None, 780), ShiftPattern.INVALID),
            (ClockSlots(540, None, 810), ShiftPattern.INVALID),
            (ClockSlots(540, 780, None, 1110), ShiftPattern.INVALID),
        ],
    )
    def test_patterns(self, slots, expected):
        assert classify(slots) == expected

    def test_slot_outside_day_rejected(self):
        with pytest.raises(ValueError):
            ClockSlots(clock_in_1=1440)


class TestNextSlot:
    def test_first_event_is_clock_in(self):
        assert default_next_slot(ShiftPattern.EMPTY) == SlotName.CLOCK_IN_1

    def test_single_may_skip_break(self):
        assert legal_next_slots(ShiftPattern.SINGLE) == (
            SlotName.CLOCK_OUT_1,
            SlotName.CLOCK_OUT_2,
        )
        assert default_next_slot(ShiftPattern.SINGLE) == SlotName.CLOCK_OUT_1

    def test_half_requires_break_end(self):
        assert is_legal_next(ShiftPattern.HALF, SlotName.CLOCK_IN_2)
        assert not is_legal_next(ShiftPattern.HALF, SlotName.CLOCK_OUT_2)

    def test_closed_days_accept_nothing(self):
        assert default_next_slot(ShiftPattern.FULL) is None
        assert default_next_slot(ShiftPattern.NO_BREAK) is None

    def test_cannot_start_with_clock_out(self):
        assert not is_legal_next(ShiftPattern.EMPTY, SlotName.CLOCK_OUT_1)


class TestLateness:
    def test_within_grace_is_not_late(self):
        assert late_minutes(_shift(), parse_hhmm("09:10"), grace=10) == 0

    def test_beyond_grace_counts_full_lateness(self):
        assert late_minutes(_shift(), parse_hhmm("09:25"), grace=10) == 25

    def test_early_is_not_late(self):
        assert late_minutes(_shift(), parse_hhmm("08:40"), grace=10) == 0

    def test_no_shift_or_off_day(self):
        assert late_minutes(None, 600, 10) == 0
        assert late_minutes(_shift(is_off=True), 600, 10) == 0

    def test_wrong_shift_beyond_tolerance(self):
        assert is_wrong_shift(_shift(), parse_hhmm("14:00"), tolerance=120)
        assert not is_wrong_shift(_shift(), parse_hhmm("10:30"), tolerance=120)


class TestReconcile:
    def test_clean_full_day(self):
        rec = reconcile(ClockSlots(540, 780, 810, 1110), _shift())

        assert rec.pattern == ShiftPattern.FULL
        assert rec.is_closed
        assert not rec.needs_review
        assert rec.review_reasons == ()

    def test_cancelled_sync(self):
        slots = ClockSlots(540, None, None, 540)
        assert is_cancelled_sync(slots)

        rec = reconcile(slots, None)
        assert rec.cancelled_sync
        assert rec.needs_review
        assert ReviewReason.CANCELLED_SYNC in rec.review_reasons

    def test_invalid_pattern_needs_review(self):
        rec = reconcile(ClockSlots(540, None, 810), None)
        assert rec.review_reasons == (ReviewReason.SLOT_PATTERN_INVALID,)

    def test_wrong_shift_suppresses_lateness(self):
        rec = reconcile(ClockSlots(parse_hhmm("21:00")), _shift())

        assert rec.wrong_shift
        assert rec.late_minutes == 0
        assert ReviewReason.WRONG_SHIFT in rec.review_reasons

    def test_late_arrival_recorded(self):
        rec = reconcile(ClockSlots(parse_hhmm("09:30")), _shift(), late_grace_minutes=10)
        assert rec.late_minutes == 30
        assert not rec.needs_review
