"""
Tests for AttendanceService: clock events, decisions, overtime, auto-closure
and recalculation.

All times are tenant-local (Kuala Lumpur) through ``local_dt``.
"""

from dataclasses import replace
from datetime import date
from uuid import uuid4

import pytest

from hr_kernel.domain.attendance import (
    AttendanceStatus,
    OTStatus,
    RecordStatus,
    ReviewReason,
    ShiftPattern,
    SlotName,
    parse_hhmm,
)
from hr_kernel.domain.cancellation import CancellationToken
from hr_kernel.domain.results import BulkRunStatus
from hr_kernel.services.lock_service import LockService
from tests.conftest import OTHER_OUTLET_ID, OUTLET_ID, TEST_ACTOR_ID, local_dt

MONDAY = date(2026, 2, 2)
TUESDAY = date(2026, 2, 3)


def _clock_day(service, employee, day, *times, next_day_from=None):
    """Record unlabelled events at ``times``; from index ``next_day_from`` on
    they fall on the following calendar day."""
    result = None
    for i, hhmm in enumerate(times):
        stamp_day = day
        if next_day_from is not None and i >= next_day_from:
            stamp_day = date.fromordinal(day.toordinal() + 1)
        result = service.record_clock_event(
            employee.employee_id, local_dt(stamp_day, hhmm), TEST_ACTOR_ID,
        )
        assert result.is_success, result.message
    return result.value


@pytest.fixture
def scheduled(employee, make_shift):
    make_shift(employee, MONDAY, "09:00", "18:00", 60)
    return employee


# =============================================================================
# Clock events
# =============================================================================


class TestClockEvents:
    def test_full_day_completes_with_pending_ot(self, attendance_service, scheduled):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")

        assert record.record_status == RecordStatus.COMPLETED
        assert record.pattern == ShiftPattern.FULL
        assert record.total_work_minutes == 540
        assert record.break_minutes == 30
        assert record.ot_minutes == 90
        assert record.ot_status == OTStatus.PENDING
        assert record.attendance_status == AttendanceStatus.PRESENT
        assert record.slots.clock_out_2 == parse_hhmm("18:30")

    def test_partial_day_stays_in_progress(self, attendance_service, scheduled):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00")

        assert record.record_status == RecordStatus.IN_PROGRESS
        assert record.pattern == ShiftPattern.HALF
        assert record.ot_status == OTStatus.NONE

    def test_day_without_overtime(self, attendance_service, scheduled):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "14:00", "17:30")

        assert record.total_work_minutes == 450
        assert record.ot_minutes == 0
        assert record.ot_status == OTStatus.NONE

    def test_overnight_events_attach_to_start_day(self, attendance_service, employee, make_shift):
        make_shift(employee, MONDAY, "22:00", "04:00", 30)

        record = _clock_day(
            attendance_service, employee, MONDAY,
            "22:00", "02:00", "02:30", "04:00",
            next_day_from=1,
        )

        assert record.work_date == MONDAY
        assert record.record_status == RecordStatus.COMPLETED
        assert record.total_work_minutes == 330
        assert attendance_service.day_record_for(employee.employee_id, TUESDAY) is None

    def test_explicit_first_clock_in_starts_new_day(self, attendance_service, scheduled):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00")

        result = attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(TUESDAY, "06:30"), TEST_ACTOR_ID,
            action=SlotName.CLOCK_IN_1,
        )

        assert result.is_success
        assert result.value.work_date == TUESDAY

    def test_no_break_day(self, attendance_service, scheduled):
        attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "09:00"), TEST_ACTOR_ID,
        )
        result = attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "18:00"), TEST_ACTOR_ID,
            action=SlotName.CLOCK_OUT_2,
        )

        assert result.value.pattern == ShiftPattern.NO_BREAK
        # scheduled 60 minute break is deducted
        assert result.value.total_work_minutes == 480

    def test_out_of_order_slot_rejected(self, attendance_service, scheduled):
        result = attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "09:00"), TEST_ACTOR_ID,
            action=SlotName.CLOCK_OUT_1,
        )

        assert not result.is_success
        assert result.error_code == "INVALID_SLOT_ORDER"
        assert result.details["pattern"] == "EMPTY"
        assert attendance_service.day_record_for(scheduled.employee_id, MONDAY) is None

    def test_fifth_event_rejected(self, attendance_service, scheduled):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")

        result = attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "19:00"), TEST_ACTOR_ID,
        )

        assert result.error_code == "CLOCK_ACTION_REJECTED"

    def test_before_hire_date_rejected(self, attendance_service, make_employee):
        newcomer = make_employee(hire_date=date(2026, 3, 1))

        result = attendance_service.record_clock_event(
            newcomer.employee_id, local_dt(MONDAY, "09:00"), TEST_ACTOR_ID,
        )

        assert result.error_code == "CLOCK_ACTION_REJECTED"

    def test_evidence_kept_per_slot(self, attendance_service, scheduled):
        result = attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "09:00"), TEST_ACTOR_ID,
            gps={"lat": 3.139, "lng": 101.6869}, photo_ref="s3://selfies/1.jpg",
        )

        assert result.value.evidence["clock_in_1"]["photo_ref"] == "s3://selfies/1.jpg"

    def test_late_arrival(self, attendance_service, scheduled):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:25")

        assert record.late_minutes == 25

    def test_wrong_shift_queues_review(self, attendance_service, scheduled, review_events, tenant):
        record = _clock_day(attendance_service, scheduled, MONDAY, "13:00")

        assert record.wrong_shift
        assert record.needs_review
        assert record.late_minutes == 0
        assert [e.reason for e in review_events] == [ReviewReason.WRONG_SHIFT]
        assert len(attendance_service.open_reviews(tenant.id)) == 1

    def test_cancelled_sync_is_absent(self, attendance_service, scheduled, review_events):
        attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "09:00"), TEST_ACTOR_ID,
        )
        result = attendance_service.record_clock_event(
            scheduled.employee_id, local_dt(MONDAY, "09:00"), TEST_ACTOR_ID,
            action=SlotName.CLOCK_OUT_2,
        )

        assert result.value.attendance_status == AttendanceStatus.ABSENT
        assert result.value.total_work_minutes == 0
        assert ReviewReason.CANCELLED_SYNC in [e.reason for e in review_events]

    def test_logs_carry_operation(self, attendance_service, scheduled, captured_logs):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00")

        records = [r for r in captured_logs() if r["message"] == "clock_event_recorded"]
        assert records
        assert records[0]["operation"] == "record_clock_event"
        assert records[0]["slot"] == "clock_in_1"


# =============================================================================
# Decisions
# =============================================================================


class TestDayDecisions:
    @pytest.fixture
    def completed(self, attendance_service, scheduled):
        return _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")

    def test_manager_approves(self, attendance_service, completed, manager):
        result = attendance_service.approve_day(completed.record_id, manager)

        assert result.is_success
        assert result.value.record_status == RecordStatus.APPROVED

    def test_supervisor_in_grouping_approves(self, attendance_service, completed, supervisor):
        assert attendance_service.approve_day(completed.record_id, supervisor).is_success

    def test_supervisor_outside_grouping_refused(self, attendance_service, completed, supervisor):
        outsider = replace(supervisor, grouping_id=OTHER_OUTLET_ID)
        result = attendance_service.approve_day(completed.record_id, outsider)

        assert result.error_code == "APPROVAL_NOT_PERMITTED"

    def test_staff_cannot_approve(self, attendance_service, completed, staff_actor):
        result = attendance_service.approve_day(completed.record_id, staff_actor)
        assert result.error_code == "APPROVAL_NOT_PERMITTED"

    def test_decided_day_is_closed(self, attendance_service, completed, manager):
        attendance_service.approve_day(completed.record_id, manager)

        again = attendance_service.reject_day(completed.record_id, manager, "duplicate")
        assert again.error_code == "DAY_ALREADY_CLOSED"

    def test_reject_requires_reason(self, attendance_service, completed, manager):
        result = attendance_service.reject_day(completed.record_id, manager, "  ")
        assert result.error_code == "APPROVAL_NOT_PERMITTED"

        result = attendance_service.reject_day(completed.record_id, manager, "buddy punching")
        assert result.value.record_status == RecordStatus.REJECTED
        assert result.value.rejection_reason == "buddy punching"

    def test_in_progress_cannot_be_approved(self, attendance_service, scheduled, manager):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00")

        result = attendance_service.approve_day(record.record_id, manager)
        assert result.error_code == "INVALID_TRANSITION"

    def test_unscheduled_day_needs_override(self, attendance_service, employee, manager):
        record = _clock_day(attendance_service, employee, MONDAY, "09:00", "13:00", "14:00", "17:30")

        result = attendance_service.approve_day(record.record_id, manager)
        assert result.error_code == "SCHEDULE_ABSENT"

        result = attendance_service.approve_day(record.record_id, manager, override_schedule=True)
        assert result.is_success

    def test_open_review_blocks_approval(self, attendance_service, scheduled, manager, tenant):
        record = _clock_day(attendance_service, scheduled, MONDAY, "13:00", "17:00", "17:30", "22:00")

        blocked = attendance_service.approve_day(record.record_id, manager)
        assert blocked.error_code == "APPROVAL_NOT_PERMITTED"

        reviewed = attendance_service.mark_reviewed(record.record_id, manager, note="swapped shift")
        assert reviewed.is_success
        assert not reviewed.value.needs_review
        assert attendance_service.open_reviews(tenant.id) == []

        assert attendance_service.approve_day(record.record_id, manager).is_success

    def test_unknown_record(self, attendance_service, manager):
        result = attendance_service.approve_day(uuid4(), manager)
        assert result.error_code == "RECORD_NOT_FOUND"


class TestOvertime:
    @pytest.fixture
    def completed(self, attendance_service, scheduled):
        return _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")

    def test_approve_ot(self, attendance_service, completed, manager):
        result = attendance_service.approve_ot(completed.record_id, manager)

        assert result.value.ot_status == OTStatus.APPROVED
        again = attendance_service.approve_ot(completed.record_id, manager)
        assert again.error_code == "INVALID_TRANSITION"

    def test_reject_ot_keeps_day(self, attendance_service, completed, manager):
        result = attendance_service.reject_ot(completed.record_id, manager, "not pre-approved")

        assert result.value.ot_status == OTStatus.REJECTED
        assert result.value.record_status == RecordStatus.COMPLETED

    def test_no_ot_to_decide(self, attendance_service, scheduled, manager):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "14:00", "17:30")

        result = attendance_service.approve_ot(record.record_id, manager)
        assert result.error_code == "INVALID_TRANSITION"

    def test_pending_ot_by_grouping(self, attendance_service, completed, tenant):
        assert len(attendance_service.pending_ot(tenant.id)) == 1
        assert len(attendance_service.pending_ot(tenant.id, OUTLET_ID)) == 1
        assert attendance_service.pending_ot(tenant.id, OTHER_OUTLET_ID) == []

    def test_review_adjustment_rederives_ot(self, attendance_service, completed, manager):
        result = attendance_service.mark_reviewed(
            completed.record_id, manager, adjusted_work_minutes=450,
        )

        assert result.value.total_work_minutes == 450
        assert result.value.ot_minutes == 0
        assert result.value.ot_status == OTStatus.NONE

    def test_negative_adjustment_refused(self, attendance_service, completed, manager):
        result = attendance_service.mark_reviewed(
            completed.record_id, manager, adjusted_work_minutes=-5,
        )
        assert result.error_code == "APPROVAL_NOT_PERMITTED"


# =============================================================================
# Auto-closure
# =============================================================================


class TestAutoClosure:
    def test_open_day_closed_and_capped(
        self, attendance_service, scheduled, tenant, review_events,
    ):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00")

        result = attendance_service.run_auto_closure(tenant.id)

        assert result.is_success
        assert result.value.status == BulkRunStatus.COMPLETED
        assert result.value.succeeded == 1
        closed = attendance_service.get_day_record(record.record_id)
        assert closed.record_status == RecordStatus.AUTO_CLOSED
        assert closed.auto_closed
        assert closed.needs_review
        assert closed.slots.clock_out_2 == 0
        assert closed.total_work_minutes == 450
        assert closed.ot_minutes == 0
        assert closed.ot_status == OTStatus.NONE
        assert review_events[-1].reason == ReviewReason.AUTO_CLOCK_OUT

    def test_sweep_is_idempotent(self, attendance_service, scheduled, tenant, review_events):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00")
        attendance_service.run_auto_closure(tenant.id)
        queued = len(review_events)

        second = attendance_service.run_auto_closure(tenant.id)

        assert second.value.total_items == 0
        assert len(review_events) == queued

    def test_same_day_record_left_open(self, attendance_service, scheduled, tenant):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00")

        result = attendance_service.run_auto_closure(tenant.id, as_of=local_dt(MONDAY, "23:30"))

        assert result.value.total_items == 0
        assert attendance_service.get_day_record(record.record_id).record_status == RecordStatus.IN_PROGRESS

    def test_night_shift_closed_by_midnight_sweep(
        self, attendance_service, employee, make_shift, tenant,
    ):
        make_shift(employee, MONDAY, "22:00", "04:00", 30)
        record = _clock_day(attendance_service, employee, MONDAY, "22:00")

        result = attendance_service.run_auto_closure(tenant.id, as_of=local_dt(TUESDAY, "00:00"))

        assert result.value.succeeded == 1
        closed = attendance_service.get_day_record(record.record_id)
        assert closed.slots.clock_out_2 == parse_hhmm("05:00")
        assert closed.record_status == RecordStatus.AUTO_CLOSED

    def test_concurrent_sweep_refused(self, attendance_service, session, clock, scheduled, tenant):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00")
        LockService(session, clock).acquire(tenant.id, "auto_closure", "other-worker")
        session.commit()

        result = attendance_service.run_auto_closure(tenant.id)

        assert result.error_code == "LOCK_HELD"
        assert result.details["holder"] == "other-worker"

    def test_cancelled_sweep(self, attendance_service, scheduled, tenant):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00")
        token = CancellationToken()
        token.cancel()

        result = attendance_service.run_auto_closure(tenant.id, cancel_token=token)

        assert result.value.status == BulkRunStatus.CANCELLED
        assert result.value.processed == 0

    def test_auto_closed_day_can_be_approved_after_review(
        self, attendance_service, scheduled, tenant, manager,
    ):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00")
        attendance_service.run_auto_closure(tenant.id)

        assert attendance_service.mark_reviewed(record.record_id, manager).is_success
        result = attendance_service.approve_day(record.record_id, manager)

        assert result.value.record_status == RecordStatus.APPROVED


# =============================================================================
# Recalculation and queries
# =============================================================================


class TestRecalculation:
    def test_policy_change_rederives_totals(self, attendance_service, session, scheduled, tenant):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")
        tenant.settings = {**tenant.settings, "standard_daily_minutes": 480}
        session.commit()

        result = attendance_service.recalculate_period(tenant.id, MONDAY, MONDAY)

        assert result.value.succeeded == 1
        updated = attendance_service.get_day_record(record.record_id)
        assert updated.ot_minutes == 60
        assert updated.ot_status == OTStatus.PENDING

    def test_nothing_to_change_is_skipped(self, attendance_service, scheduled, tenant):
        _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")

        result = attendance_service.recalculate_period(tenant.id, MONDAY, MONDAY)

        assert result.value.skipped == 1

    def test_decided_days_untouched(self, attendance_service, session, scheduled, tenant, manager):
        record = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")
        attendance_service.approve_day(record.record_id, manager)
        tenant.settings = {**tenant.settings, "standard_daily_minutes": 480}
        session.commit()

        result = attendance_service.recalculate_period(tenant.id, MONDAY, MONDAY)

        assert result.value.skipped == 1
        assert attendance_service.get_day_record(record.record_id).ot_minutes == 90

    def test_missing_policy_rejected(self, attendance_service, create_tenant):
        bare = create_tenant(settings={}, replace_settings=True)

        result = attendance_service.recalculate_period(bare.id, MONDAY, MONDAY)

        assert result.error_code == "POLICY_MISSING"


class TestMonthlyAttendance:
    def test_rejected_days_excluded(self, attendance_service, scheduled, make_shift, manager):
        make_shift(scheduled, TUESDAY, "09:00", "18:00", 60)
        first = _clock_day(attendance_service, scheduled, MONDAY, "09:00", "13:00", "13:30", "18:30")
        second = _clock_day(attendance_service, scheduled, TUESDAY, "09:20", "13:00", "14:00", "17:30")
        attendance_service.approve_ot(first.record_id, manager)
        attendance_service.reject_day(second.record_id, manager, "no show")

        summary = attendance_service.monthly_attendance(scheduled.employee_id, 2026, 2)

        assert len(summary.days) == 2
        assert summary.work_minutes == 540
        assert summary.ot_minutes == 90
        assert summary.approved_ot_minutes == 90
        assert summary.late_minutes == 0
        assert summary.status_counts == {AttendanceStatus.PRESENT: 1}
