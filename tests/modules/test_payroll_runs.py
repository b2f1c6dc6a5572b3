"""
Tests for PayrollService: run build, finalisation, payment, components,
deductions and exports.

January 2026 has 22 working days for the default tenant (rest days
Saturday and Sunday, no holidays).  A full-time employee on 5000 with no
year-to-date figures pays EPF 550.00, SOCSO 24.75, EIS 9.90 and PCB 108.25.
"""

import csv
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from openpyxl import load_workbook
from sqlalchemy import select

from hr_engines.earnings import PayItemKind
from hr_kernel.domain.results import BulkRunStatus
from hr_kernel.services.lock_service import LockService, payroll_lock_key
from hr_modules.attendance.orm import DayRecordModel
from hr_modules.payroll.exports import ExportKind
from hr_modules.payroll.models import (
    DeductionKind,
    DeductionStatus,
    PayComponentStatus,
    PayrollRunStatus,
    PayrollScope,
    ScopeType,
)
from hr_modules.payroll.orm import DeductionModel, PayComponentModel
from tests.conftest import OTHER_OUTLET_ID, OUTLET_ID, TEST_ACTOR_ID, local_dt

JAN_5 = date(2026, 1, 5)


def _build(service, tenant, month=1, scope=None):
    result = service.build_payroll_run(
        tenant.id, 2026, month, scope or PayrollScope.company(), TEST_ACTOR_ID,
    )
    assert result.is_success, result.message
    return result.value


def _worked_overtime(attendance_service, employee, manager):
    """A Monday with 90 approved overtime minutes."""
    record = None
    for hhmm in ("09:00", "13:00", "13:30", "18:30"):
        record = attendance_service.record_clock_event(
            employee.employee_id, local_dt(JAN_5, hhmm), TEST_ACTOR_ID,
        ).value
    assert record.ot_minutes == 90
    assert attendance_service.approve_ot(record.record_id, manager).is_success
    return record


@pytest.fixture
def finalised(payroll_service, tenant, employee, admin):
    build = _build(payroll_service, tenant)
    result = payroll_service.finalise_run(build.run.run_id, admin)
    assert result.is_success, result.message
    return result.value


# =============================================================================
# Build
# =============================================================================


class TestBuild:
    def test_monthly_employee_line(self, payroll_service, tenant, employee):
        build = _build(payroll_service, tenant)

        assert build.result.status == BulkRunStatus.COMPLETED
        assert build.run.status == PayrollRunStatus.DRAFT
        assert build.run.employee_count == 1
        line = payroll_service.payroll_item(build.run.run_id, employee.employee_id)
        assert line.gross == Decimal("5000.00")
        assert line.epf_employee == Decimal("550.00")
        assert line.socso_employee == Decimal("24.75")
        assert line.eis_employee == Decimal("9.90")
        assert line.pcb == Decimal("108.25")
        assert line.net == Decimal("4307.10")
        assert build.run.total_net == Decimal("4307.10")

    def test_rebuild_replaces_items(self, payroll_service, tenant, employee):
        first = _build(payroll_service, tenant)
        second = _build(payroll_service, tenant)

        assert second.run.run_id == first.run.run_id
        assert second.run.employee_count == 1
        assert len(payroll_service.run_lines(second.run.run_id)) == 1

    def test_outlet_scope(self, payroll_service, tenant, employee, make_employee):
        make_employee(outlet_id=OTHER_OUTLET_ID)

        build = _build(payroll_service, tenant, scope=PayrollScope(ScopeType.OUTLET, OUTLET_ID))

        assert build.run.scope.key == f"outlet:{OUTLET_ID}"
        assert [l.employee_id for l in payroll_service.run_lines(build.run.run_id)] == [
            employee.employee_id
        ]

    def test_future_joiner_skipped(self, payroll_service, tenant, employee, make_employee):
        make_employee(hire_date=date(2026, 2, 1))

        build = _build(payroll_service, tenant)

        assert build.result.skipped == 1
        assert build.run.employee_count == 1

    def test_only_approved_overtime_is_paid(
        self, payroll_service, attendance_service, tenant, employee, manager,
    ):
        _worked_overtime(attendance_service, employee, manager)

        line = payroll_service.preview_line(employee.employee_id, 2026, 1)

        assert line.ot_minutes == 90
        assert line.ot_pay == Decimal("68.18")
        assert line.gross == Decimal("5068.18")
        assert line.statutory_base == Decimal("5000.00")
        assert line.net == Decimal("4375.28")

    def test_pending_overtime_not_paid(self, payroll_service, attendance_service, employee):
        for hhmm in ("09:00", "13:00", "13:30", "18:30"):
            attendance_service.record_clock_event(
                employee.employee_id, local_dt(JAN_5, hhmm), TEST_ACTOR_ID,
            )

        line = payroll_service.preview_line(employee.employee_id, 2026, 1)
        assert line.ot_pay == Decimal("0")

    def test_unpaid_leave_deducted(self, payroll_service, leave_service, employee, make_leave_type, manager):
        make_leave_type("UL", "0", allow_advance=True, is_paid=False)
        request = leave_service.submit_leave_request(
            employee.employee_id, "UL", date(2026, 1, 6), date(2026, 1, 6), TEST_ACTOR_ID,
        ).value
        leave_service.approve_leave(request.request_id, manager)

        line = payroll_service.preview_line(employee.employee_id, 2026, 1)

        assert line.absent_days == 1
        assert line.absent_deduction == Decimal("227.27")
        assert line.gross == Decimal("4772.73")

    def test_build_blocked_while_finalising(self, payroll_service, session, clock, tenant, employee):
        LockService(session, clock).acquire(
            tenant.id, payroll_lock_key(2026, 1, "company"), "finalise:other",
        )
        session.commit()

        result = payroll_service.build_payroll_run(
            tenant.id, 2026, 1, PayrollScope.company(), TEST_ACTOR_ID,
        )
        assert result.error_code == "RUN_LOCKED"

    def test_missing_rate_table(self, payroll_service, tenant, employee):
        result = payroll_service.build_payroll_run(
            tenant.id, 1990, 1, PayrollScope.company(), TEST_ACTOR_ID,
        )
        assert result.error_code == "RATE_TABLE_MISSING"


# =============================================================================
# Finalise and pay
# =============================================================================


class TestFinalise:
    def test_finalise_freezes_and_locks(
        self, payroll_service, attendance_service, session, tenant, employee, manager, admin,
    ):
        record = _worked_overtime(attendance_service, employee, manager)
        build = _build(payroll_service, tenant)

        result = payroll_service.finalise_run(build.run.run_id, admin)

        assert result.value.status == PayrollRunStatus.FINALISED
        assert result.value.statutory_table != ""
        locked = session.get(DayRecordModel, record.record_id)
        assert locked.is_locked
        assert locked.payroll_run_id == build.run.run_id
        assert payroll_service.period_sealed(employee.employee_id, 2026, 1)

    def test_finalised_item_matches_preview(self, payroll_service, finalised, employee):
        item = payroll_service.payroll_item(finalised.run_id, employee.employee_id)
        assert payroll_service.preview_line(employee.employee_id, 2026, 1) == item

    def test_only_admin_finalises(self, payroll_service, tenant, employee, manager, admin):
        build = _build(payroll_service, tenant)

        result = payroll_service.finalise_run(build.run.run_id, manager)

        assert result.error_code == "APPROVAL_NOT_PERMITTED"
        assert payroll_service.get_run(build.run.run_id).status == PayrollRunStatus.DRAFT
        assert payroll_service.finalise_run(build.run.run_id, admin).is_success

    def test_empty_run_cannot_finalise(self, payroll_service, tenant, admin):
        build = _build(payroll_service, tenant)

        result = payroll_service.finalise_run(build.run.run_id, admin)
        assert result.error_code == "INVALID_TRANSITION"

    def test_finalised_run_is_locked(self, payroll_service, finalised, tenant, admin):
        assert payroll_service.finalise_run(finalised.run_id, admin).error_code == "RUN_LOCKED"
        assert payroll_service.delete_draft_run(finalised.run_id, TEST_ACTOR_ID).error_code == (
            "RUN_LOCKED"
        )
        rebuilt = payroll_service.build_payroll_run(
            tenant.id, 2026, 1, PayrollScope.company(), TEST_ACTOR_ID,
        )
        assert rebuilt.error_code == "RUN_LOCKED"

    def test_sealed_month_refuses_new_inputs(
        self, payroll_service, attendance_service, finalised, employee,
    ):
        clocked = attendance_service.record_clock_event(
            employee.employee_id, local_dt(date(2026, 1, 20), "09:00"), TEST_ACTOR_ID,
        )
        component = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.ALLOWANCE, Decimal("100"), 2026, 1, TEST_ACTOR_ID,
        )

        assert clocked.error_code == "RUN_LOCKED"
        assert component.error_code == "RUN_LOCKED"

    def test_pending_component_stays_out_of_sealed_month(
        self, payroll_service, tenant, employee, manager, admin,
    ):
        pending = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.ALLOWANCE, Decimal("300"), 2026, 1, TEST_ACTOR_ID,
        ).value
        run = payroll_service.finalise_run(_build(payroll_service, tenant).run.run_id, admin).value

        assert payroll_service.approve_pay_component(pending.component_id, manager).error_code == (
            "RUN_LOCKED"
        )
        assert payroll_service.reject_pay_component(pending.component_id, manager).error_code == (
            "RUN_LOCKED"
        )
        frozen = payroll_service.payroll_item(run.run_id, employee.employee_id)
        assert frozen.allowances == Decimal("0")
        assert payroll_service.preview_line(employee.employee_id, 2026, 1) == frozen

    def test_leave_in_sealed_month_refused(
        self, payroll_service, leave_service, tenant, employee, make_leave_type, manager, admin,
    ):
        make_leave_type("UL", "0", allow_advance=True, is_paid=False)
        taken = leave_service.submit_leave_request(
            employee.employee_id, "UL", date(2026, 1, 6), date(2026, 1, 6), TEST_ACTOR_ID,
        ).value
        leave_service.approve_leave(taken.request_id, manager)
        pending = leave_service.submit_leave_request(
            employee.employee_id, "UL", date(2026, 1, 7), date(2026, 1, 7), TEST_ACTOR_ID,
        ).value
        run = payroll_service.finalise_run(_build(payroll_service, tenant).run.run_id, admin).value

        assert leave_service.approve_leave(pending.request_id, manager).error_code == "RUN_LOCKED"
        assert leave_service.cancel_leave(taken.request_id, TEST_ACTOR_ID).error_code == "RUN_LOCKED"
        filed = leave_service.submit_leave_request(
            employee.employee_id, "UL", date(2026, 1, 8), date(2026, 1, 8), TEST_ACTOR_ID,
        )
        assert filed.error_code == "RUN_LOCKED"

        frozen = payroll_service.payroll_item(run.run_id, employee.employee_id)
        assert frozen.absent_days == 1
        assert payroll_service.preview_line(employee.employee_id, 2026, 1) == frozen

    def test_other_scope_does_not_pay_again(self, payroll_service, tenant, employee, finalised, admin):
        outlet = _build(payroll_service, tenant, scope=PayrollScope(ScopeType.OUTLET, OUTLET_ID))

        assert outlet.run.employee_count == 0
        assert outlet.result.skipped == 1
        result = payroll_service.finalise_run(outlet.run.run_id, admin)
        assert result.error_code == "INVALID_TRANSITION"

    def test_stale_draft_of_other_scope_cannot_finalise(self, payroll_service, tenant, employee, admin):
        outlet = _build(payroll_service, tenant, scope=PayrollScope(ScopeType.OUTLET, OUTLET_ID))
        company = _build(payroll_service, tenant)
        assert payroll_service.finalise_run(company.run.run_id, admin).is_success

        result = payroll_service.finalise_run(outlet.run.run_id, admin)

        assert result.error_code == "RUN_LOCKED"
        assert payroll_service.get_run(outlet.run.run_id).status == PayrollRunStatus.DRAFT

    def test_finalise_blocked_by_held_lock(self, payroll_service, session, clock, tenant, employee, admin):
        build = _build(payroll_service, tenant)
        LockService(session, clock).acquire(
            tenant.id, payroll_lock_key(2026, 1, "company"), "finalise:other",
        )
        session.commit()

        result = payroll_service.finalise_run(build.run.run_id, admin)
        assert result.error_code == "LOCK_HELD"

    def test_mark_paid(self, payroll_service, tenant, employee, finalised, admin):
        result = payroll_service.mark_run_paid(finalised.run_id, admin)
        assert result.value.status == PayrollRunStatus.PAID

    def test_draft_cannot_be_paid(self, payroll_service, tenant, employee, admin):
        build = _build(payroll_service, tenant)
        result = payroll_service.mark_run_paid(build.run.run_id, admin)
        assert result.error_code == "INVALID_TRANSITION"

    def test_delete_draft(self, payroll_service, tenant, employee):
        build = _build(payroll_service, tenant)

        assert payroll_service.delete_draft_run(build.run.run_id, TEST_ACTOR_ID).is_success
        assert payroll_service.get_run(build.run.run_id) is None
        assert payroll_service.runs_for_period(tenant.id, 2026, 1) == []

    def test_unknown_run(self, payroll_service, admin):
        assert payroll_service.finalise_run(uuid4(), admin).error_code == "RECORD_NOT_FOUND"

    def test_year_to_date_feeds_next_month(self, payroll_service, finalised, employee):
        ytd = payroll_service.year_to_date(employee.employee_id, 2026, 2)

        assert ytd.gross == Decimal("5000.00")
        assert ytd.epf == Decimal("550.00")
        assert ytd.socso_eis == Decimal("34.65")
        assert ytd.pcb == Decimal("108.25")
        assert payroll_service.year_to_date(employee.employee_id, 2026, 1).gross == Decimal("0")


# =============================================================================
# Components and deductions
# =============================================================================


class TestComponents:
    def test_component_needs_approval(self, payroll_service, employee, manager):
        added = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.ALLOWANCE, Decimal("200"), 2026, 1, TEST_ACTOR_ID,
        )
        assert added.value.status == PayComponentStatus.PENDING
        assert payroll_service.preview_line(employee.employee_id, 2026, 1).allowances == Decimal("0")

        payroll_service.approve_pay_component(added.value.component_id, manager)

        line = payroll_service.preview_line(employee.employee_id, 2026, 1)
        assert line.allowances == Decimal("200.00")
        assert line.gross == Decimal("5200.00")
        assert line.statutory_base == Decimal("5000.00")

    def test_staff_cannot_approve(self, payroll_service, employee, staff_actor):
        added = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("80"), 2026, 1, TEST_ACTOR_ID,
        ).value
        result = payroll_service.approve_pay_component(added.component_id, staff_actor)
        assert result.error_code == "APPROVAL_NOT_PERMITTED"

    def test_non_positive_amount_refused(self, payroll_service, employee):
        result = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("0"), 2026, 1, TEST_ACTOR_ID,
        )
        assert result.error_code == "INVALID_TRANSITION"

    def test_claim_carried_to_later_month(self, payroll_service, employee, manager):
        claim = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("150"), 2026, 1, TEST_ACTOR_ID,
        ).value
        assert payroll_service.reassign_claim_month(
            claim.component_id, 2026, 2, TEST_ACTOR_ID,
        ).error_code == "INVALID_TRANSITION"
        payroll_service.approve_pay_component(claim.component_id, manager)

        moved = payroll_service.reassign_claim_month(claim.component_id, 2026, 2, TEST_ACTOR_ID)

        assert moved.value.payroll_month == 2
        assert moved.value.amount == Decimal("150")
        assert payroll_service.preview_line(employee.employee_id, 2026, 1).claims == Decimal("0")
        february = payroll_service.preview_line(employee.employee_id, 2026, 2)
        assert february.claims == Decimal("150.00")
        assert february.statutory_base == Decimal("5000.00")

    def test_claim_cannot_move_backwards(self, payroll_service, employee, manager):
        claim = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("150"), 2026, 3, TEST_ACTOR_ID,
        ).value
        payroll_service.approve_pay_component(claim.component_id, manager)

        for year, month in ((2026, 3), (2026, 2)):
            result = payroll_service.reassign_claim_month(claim.component_id, year, month, TEST_ACTOR_ID)
            assert result.error_code == "INVALID_TRANSITION"

    def test_finalise_includes_components_and_deductions(
        self, payroll_service, session, tenant, employee, manager, admin,
    ):
        component = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.COMMISSION, Decimal("300"), 2026, 1, TEST_ACTOR_ID,
        ).value
        payroll_service.approve_pay_component(component.component_id, manager)
        deduction_id = payroll_service.add_deduction(
            employee.employee_id, DeductionKind.SALARY_ADVANCE, Decimal("400"), 2026, 1, TEST_ACTOR_ID,
        ).value
        build = _build(payroll_service, tenant)
        line = payroll_service.payroll_item(build.run.run_id, employee.employee_id)
        assert line.advance_deduction == Decimal("400.00")
        assert line.commissions == Decimal("300.00")

        payroll_service.finalise_run(build.run.run_id, admin)

        assert session.get(PayComponentModel, component.component_id).status == (
            PayComponentStatus.INCLUDED.value
        )
        assert session.get(DeductionModel, deduction_id).status == DeductionStatus.DEDUCTED.value
        moved = payroll_service.reassign_claim_month(component.component_id, 2026, 2, TEST_ACTOR_ID)
        assert moved.error_code == "RUN_LOCKED"
        frozen = payroll_service.payroll_item(build.run.run_id, employee.employee_id)
        assert frozen.commissions == Decimal("300.00")
        assert frozen.advance_deduction == Decimal("400.00")

    def test_rejected_component_never_paid(self, payroll_service, session, employee, manager):
        added = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.INCENTIVE, Decimal("250"), 2026, 1, TEST_ACTOR_ID,
        ).value

        payroll_service.reject_pay_component(added.component_id, manager)

        assert payroll_service.preview_line(employee.employee_id, 2026, 1).incentives == Decimal("0")
        statuses = session.execute(select(PayComponentModel.status)).scalars().all()
        assert statuses == [PayComponentStatus.REJECTED.value]


# =============================================================================
# Exports
# =============================================================================


class TestExports:
    def test_bank_csv(self, payroll_service, finalised, employee, tmp_path):
        path = tmp_path / "bank.csv"

        result = payroll_service.export_run(finalised.run_id, path, ExportKind.BANK_CSV)

        assert result.value == 1
        with path.open(newline="") as f:
            rows = list(csv.reader(f))
        assert rows == [
            ["employee_number", "name", "net"],
            [employee.employee_number, employee.name, "4307.10"],
        ]

    def test_statutory_csv_delimiter(self, payroll_service, finalised, tmp_path):
        path = tmp_path / "statutory.csv"

        payroll_service.export_run(
            finalised.run_id, path, ExportKind.STATUTORY_CSV, {"delimiter": ";"},
        )

        header, row = path.read_text().splitlines()
        assert header.split(";")[-1] == "pcb"
        assert row.split(";")[-1] == "108.25"

    def test_statutory_workbook(self, payroll_service, finalised, employee, tmp_path):
        path = tmp_path / "statutory.xlsx"

        payroll_service.export_run(finalised.run_id, path, ExportKind.STATUTORY_XLSX)

        wb = load_workbook(path)
        assert wb.sheetnames == ["Summary", "EPF", "SOCSO", "EIS", "PCB"]
        epf_rows = list(wb["EPF"].iter_rows(values_only=True))
        assert epf_rows[1] == (employee.employee_number, employee.name, 5000.0, 550.0, 650.0)
        summary = list(wb["Summary"].iter_rows(values_only=True))
        assert summary[0] == ("Period", "2026-01", None, None)
        assert summary[3] == ("EPF", 550.0, 650.0, 1200.0)

    def test_draft_cannot_be_exported(self, payroll_service, tenant, employee, tmp_path):
        build = _build(payroll_service, tenant)

        result = payroll_service.export_run(build.run.run_id, tmp_path / "x.csv", ExportKind.BANK_CSV)

        assert result.error_code == "INVALID_TRANSITION"
        assert not (tmp_path / "x.csv").exists()
