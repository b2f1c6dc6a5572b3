"""
Tests for the auto-closure scheduler.

The fixture clock reads 2026-03-02 02:00 UTC, which is 10:00 in Kuala Lumpur.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from hr_kernel.domain.attendance import RecordStatus, parse_hhmm
from hr_modules.attendance.service import AttendanceService
from hr_services.sweep_scheduler import AutoClosureScheduler, sweep_due
from tests.conftest import TEST_ACTOR_ID, local_dt

KL = ZoneInfo("Asia/Kuala_Lumpur")
FRIDAY = date(2026, 2, 27)


@pytest.mark.parametrize(
    "hhmm, closure_minute, last_run_on, due",
    [
        ((0, 5), 0, None, True),
        ((0, 5), 0, date(2026, 3, 1), True),
        ((0, 5), 0, date(2026, 3, 2), False),
        ((0, 5), 60, None, False),
        ((1, 0), 60, None, True),
    ],
)
def test_sweep_due(hhmm, closure_minute, last_run_on, due):
    now_local = datetime(2026, 3, 2, *hhmm, tzinfo=KL)
    assert sweep_due(now_local, closure_minute, last_run_on) is due


@pytest.fixture
def scheduler(session_factory, clock, review_events) -> AutoClosureScheduler:
    return AutoClosureScheduler(
        session_factory,
        lambda s: AttendanceService(s, clock, review_events.append),
        clock,
    )


def test_tick_runs_due_sweep_once(
    scheduler, session, attendance_service, tenant, employee, make_shift, review_events,
):
    make_shift(employee, FRIDAY)
    record = attendance_service.record_clock_event(
        employee.employee_id, local_dt(FRIDAY, "09:00"), TEST_ACTOR_ID,
    ).value

    assert scheduler.tick() == 1
    assert scheduler.tick() == 0

    session.expire_all()
    assert tenant.last_auto_closure_on == date(2026, 3, 2)
    closed = attendance_service.get_day_record(record.record_id)
    assert closed.record_status == RecordStatus.AUTO_CLOSED
    assert len(review_events) == 1


def test_midnight_tick_closes_night_shift(
    scheduler, session, clock, attendance_service, tenant, employee, make_shift,
):
    sunday = date(2026, 3, 1)
    make_shift(employee, sunday, "22:00", "02:00", 30)
    record = attendance_service.record_clock_event(
        employee.employee_id, local_dt(sunday, "22:00"), TEST_ACTOR_ID,
    ).value
    clock.set_time(local_dt(date(2026, 3, 2), "00:00"))

    assert scheduler.tick() == 1

    session.expire_all()
    closed = attendance_service.get_day_record(record.record_id)
    assert closed.record_status == RecordStatus.AUTO_CLOSED
    assert closed.slots.clock_out_2 == parse_hhmm("03:00")
    assert tenant.last_auto_closure_on == date(2026, 3, 2)


def test_sweep_runs_again_next_day(scheduler, session, clock, tenant):
    assert scheduler.tick() == 1

    clock.advance(24 * 3600)

    assert scheduler.tick() == 1
    session.expire_all()
    assert tenant.last_auto_closure_on == date(2026, 3, 3)


def test_tenant_without_policy_is_skipped(scheduler, tenant, create_tenant, captured_logs):
    broken = create_tenant(settings={}, replace_settings=True)

    assert scheduler.tick() == 1

    skipped = [r for r in captured_logs() if r["message"] == "sweep_tenant_skipped"]
    assert [r["tenant_id"] for r in skipped] == [str(broken.id)]
    assert skipped[0]["error_code"] == "POLICY_MISSING"


def test_not_due_before_closure_minute(scheduler, session, tenant):
    tenant.settings = {**tenant.settings, "auto_closure_minute": 11 * 60}
    session.commit()

    assert scheduler.tick() == 0


def test_start_and_stop(session_factory, clock):
    scheduler = AutoClosureScheduler(
        session_factory, lambda s: AttendanceService(s, clock), clock, tick_interval_seconds=3600,
    )

    scheduler.start()
    assert scheduler.is_running

    scheduler.stop(timeout=5)
    assert not scheduler.is_running
