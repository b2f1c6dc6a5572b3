"""
Tests for SettlementService: build, waiver toggle, processing and the
payroll interplay.

February 2026 has 20 working days, so the 5000 basic gives a daily rate of
250.  Notice on Feb 1 with L = Friday Feb 13 gives 12 days of a required 56
(tenure over five years): a 44 day shortfall.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from hr_engines.earnings import PayItemKind
from hr_kernel.domain.employee import EmploymentStatus
from hr_kernel.models.employee import EmployeeModel
from hr_modules.payroll.models import PayComponentStatus, PayrollScope
from hr_modules.payroll.orm import PayComponentModel
from hr_modules.settlement.models import SettlementStatus
from hr_modules.settlement.orm import SettlementModel
from tests.conftest import TEST_ACTOR_ID

NOTICE = date(2026, 2, 1)
LAST_DAY = date(2026, 2, 13)


def _build(service, employee, waived=False, notice=NOTICE, last_day=LAST_DAY):
    return service.build_settlement(
        employee.employee_id, notice, last_day, TEST_ACTOR_ID, notice_waived=waived,
    )


def _update_settings(session, tenant, **settings):
    tenant.settings = {**tenant.settings, **settings}
    session.commit()


def _status(session, employee) -> str:
    return session.get(EmployeeModel, employee.employee_id).employment_status


@pytest.fixture
def draft(settlement_service, employee):
    result = _build(settlement_service, employee)
    assert result.is_success, result.message
    return result.value


class TestBuild:
    def test_shortfall_buyout(self, settlement_service, session, employee, draft):
        assert draft.status == SettlementStatus.DRAFT
        assert draft.tenure_months == 73
        assert draft.required_notice_days == 56
        assert draft.shortfall_days == 44
        assert draft.daily_rate == Decimal("250.00")
        assert draft.prorated_basic == Decimal("2500.00")
        assert draft.notice_buyout == Decimal("11000.00")
        assert draft.payment_in_lieu == Decimal("0")
        assert draft.net == draft.gross - draft.statutory_deductions - draft.notice_buyout
        assert _status(session, employee) == EmploymentStatus.RESIGNING.value

    def test_encashment_of_accrued_leave(self, settlement_service, employee, make_leave_type):
        make_leave_type("AL", "12", encashable_on_exit=True)

        settlement = _build(settlement_service, employee).value

        assert settlement.encashment_days == Decimal("1")
        assert settlement.encashment == Decimal("250.00")
        assert settlement.gross == Decimal("2750.00")

    def test_rebuild_keeps_the_draft(self, settlement_service, employee, draft):
        rebuilt = _build(settlement_service, employee, last_day=date(2026, 2, 27)).value

        assert rebuilt.settlement_id == draft.settlement_id
        assert rebuilt.last_working_day == date(2026, 2, 27)
        assert rebuilt.prorated_basic == Decimal("5000.00")
        assert rebuilt.shortfall_days == 30

    def test_company_pays_buyout(self, settlement_service, session, tenant, employee):
        _update_settings(session, tenant, buyout_direction="company_pays")

        settlement = _build(settlement_service, employee).value

        assert settlement.notice_buyout == Decimal("0")
        assert settlement.payment_in_lieu == Decimal("11000.00")
        assert settlement.gross == Decimal("13500.00")

    def test_prorated_bonus(self, settlement_service, session, tenant, employee):
        _update_settings(session, tenant, prorated_bonus_enabled=True)

        settlement = _build(settlement_service, employee).value

        assert settlement.prorated_bonus == Decimal("416.67")

    def test_advance_leave_recovered(
        self, settlement_service, leave_service, session, tenant, employee, make_leave_type, manager,
    ):
        # 1 day earned by mid-February, 3 taken: 2 days in advance
        make_leave_type("EL", "12")
        request = leave_service.submit_leave_request(
            employee.employee_id, "EL", date(2026, 2, 2), date(2026, 2, 4), TEST_ACTOR_ID,
        ).value
        leave_service.approve_leave(request.request_id, manager)

        assert _build(settlement_service, employee).value.advance_recovery == Decimal("0")

        _update_settings(session, tenant, advance_leave_recovery=True)
        settlement = _build(settlement_service, employee).value

        assert settlement.encashment_days == Decimal("0")
        assert settlement.advance_recovery == Decimal("500.00")

    def test_encashable_advance_not_recovered(
        self, settlement_service, leave_service, session, tenant, employee, make_leave_type, manager,
    ):
        make_leave_type("AL", "12", encashable_on_exit=True)
        request = leave_service.submit_leave_request(
            employee.employee_id, "AL", date(2026, 2, 2), date(2026, 2, 4), TEST_ACTOR_ID,
        ).value
        leave_service.approve_leave(request.request_id, manager)
        _update_settings(session, tenant, advance_leave_recovery=True)

        settlement = _build(settlement_service, employee).value

        assert settlement.encashment_days == Decimal("0")
        assert settlement.advance_recovery == Decimal("0")

    def test_outstanding_claims_paid(self, settlement_service, payroll_service, employee, manager):
        claim = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("150"), 2026, 2, TEST_ACTOR_ID,
        ).value
        payroll_service.approve_pay_component(claim.component_id, manager)
        later = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("90"), 2026, 3, TEST_ACTOR_ID,
        ).value
        payroll_service.approve_pay_component(later.component_id, manager)

        settlement = _build(settlement_service, employee).value

        assert settlement.claims == Decimal("150.00")
        assert settlement.gross == Decimal("2650.00")

    def test_notice_after_last_day(self, settlement_service, employee):
        result = _build(settlement_service, employee, notice=date(2026, 2, 20))
        assert result.error_code == "NOTICE_POLICY_VIOLATION"

    def test_last_day_before_hire(self, settlement_service, make_employee):
        joiner = make_employee(hire_date=date(2026, 3, 1))
        result = _build(settlement_service, joiner)
        assert result.error_code == "NOTICE_POLICY_VIOLATION"

    def test_basic_already_paid_by_payroll(
        self, settlement_service, payroll_service, tenant, employee, admin,
    ):
        build = payroll_service.build_payroll_run(
            tenant.id, 2026, 2, PayrollScope.company(), TEST_ACTOR_ID,
        ).value
        payroll_service.finalise_run(build.run.run_id, admin)

        settlement = _build(settlement_service, employee).value

        assert settlement.prorated_basic == Decimal("0")

    def test_preview_matches_build(self, settlement_service, employee, draft):
        preview = settlement_service.preview_settlement(employee.employee_id, NOTICE, LAST_DAY)

        assert preview.settlement_id == draft.settlement_id
        assert preview.net == draft.net
        assert preview.gross == draft.gross


class TestWaiver:
    def test_waiver_drops_buyout(self, settlement_service, draft):
        waived = settlement_service.set_notice_waiver(draft.settlement_id, True, TEST_ACTOR_ID).value

        assert waived.notice_waived
        assert waived.notice_buyout == Decimal("0")
        assert waived.net == draft.net + Decimal("11000.00")

    def test_waiver_toggle_back(self, settlement_service, draft):
        settlement_service.set_notice_waiver(draft.settlement_id, True, TEST_ACTOR_ID)

        restored = settlement_service.set_notice_waiver(draft.settlement_id, False, TEST_ACTOR_ID).value

        assert restored.notice_buyout == Decimal("11000.00")
        assert restored.net == draft.net

    def test_unknown_settlement(self, settlement_service):
        result = settlement_service.set_notice_waiver(uuid4(), True, TEST_ACTOR_ID)
        assert result.error_code == "RECORD_NOT_FOUND"


class TestProcess:
    def test_process_freezes_and_exits(
        self, settlement_service, payroll_service, session, employee, draft, manager,
    ):
        claim = payroll_service.add_pay_component(
            employee.employee_id, PayItemKind.CLAIM, Decimal("150"), 2026, 1, TEST_ACTOR_ID,
        ).value
        payroll_service.approve_pay_component(claim.component_id, manager)

        result = settlement_service.process_settlement(draft.settlement_id, manager)

        assert result.value.status == SettlementStatus.PROCESSED
        assert result.value.claims == Decimal("150.00")
        assert _status(session, employee) == EmploymentStatus.EXITED.value
        assert session.get(PayComponentModel, claim.component_id).status == (
            PayComponentStatus.INCLUDED.value
        )

    def test_staff_cannot_process(self, settlement_service, draft, staff_actor):
        result = settlement_service.process_settlement(draft.settlement_id, staff_actor)
        assert result.error_code == "APPROVAL_NOT_PERMITTED"

    def test_processed_is_final(self, settlement_service, employee, draft, manager):
        settlement_service.process_settlement(draft.settlement_id, manager)

        assert _build(settlement_service, employee).error_code == "SETTLEMENT_ALREADY_PROCESSED"
        assert settlement_service.set_notice_waiver(
            draft.settlement_id, True, TEST_ACTOR_ID,
        ).error_code == "SETTLEMENT_ALREADY_PROCESSED"
        assert settlement_service.process_settlement(
            draft.settlement_id, manager,
        ).error_code == "SETTLEMENT_ALREADY_PROCESSED"

        preview = settlement_service.preview_settlement(
            employee.employee_id, NOTICE, date(2026, 2, 27), notice_waived=True,
        )
        assert preview.is_processed
        assert preview.last_working_day == LAST_DAY

    def test_stale_buyout_blocks_processing(self, settlement_service, session, draft, manager):
        model = session.get(SettlementModel, draft.settlement_id)
        model.notice_buyout = Decimal("0")
        session.commit()

        result = settlement_service.process_settlement(draft.settlement_id, manager)

        assert result.error_code == "NOTICE_POLICY_VIOLATION"
        assert settlement_service.settlement_for(draft.employee_id).status == SettlementStatus.DRAFT

    def test_zero_rate_shortfall_processes(self, settlement_service, make_employee, manager):
        unpaid = make_employee(basic_salary=Decimal("0"))
        settlement = _build(settlement_service, unpaid).value
        assert settlement.shortfall_days == 44
        assert settlement.notice_buyout == Decimal("0")

        result = settlement_service.process_settlement(settlement.settlement_id, manager)

        assert result.is_success, result.message
        assert result.value.status == SettlementStatus.PROCESSED

    def test_exited_employee_leaves_payroll(
        self, settlement_service, payroll_service, session, tenant, employee, draft, manager,
    ):
        settlement_service.process_settlement(draft.settlement_id, manager)

        for month in (2, 3):
            build = payroll_service.build_payroll_run(
                tenant.id, 2026, month, PayrollScope.company(), TEST_ACTOR_ID,
            ).value
            assert build.run.employee_count == 0
            assert build.result.skipped == 1

        statuses = session.execute(select(SettlementModel.status)).scalars().all()
        assert statuses == [SettlementStatus.PROCESSED.value]
