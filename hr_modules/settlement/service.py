"""
Settlement Module Service (``hr_modules.settlement.service``).

Responsibility
--------------
Builds, re-builds and processes an employee's full-and-final settlement.
Gathers the inputs (encashable and advance leave as of L, outstanding
approved claims through L, whether L's month is already in a finalised
payroll run, year-to-date statutory figures) and hands them to
``hr_engines.settlement.compute_settlement``.

Architecture position
---------------------
**Modules layer**.  Reads leave entitlements through ``LeaveService`` and
sealed payroll through ``PayrollService``; writes the settlement row, the
employee's employment status and the claims it pays out.

Invariants enforced
-------------------
* A PROCESSED settlement never changes
  (``SettlementAlreadyProcessedError``; ORM listener as backstop).
* Every waiver toggle recomputes, so stored figures always match the flag
  they were computed under.
* Processing sets the employee EXITED and flips the claims it paid to
  INCLUDED.

Failure modes
-------------
* ``NoticePolicyViolationError`` -- notice date after L, L before hire, or
  stored figures disagree with the waiver flag.
* ``RateTableMissingError`` -- no statutory table covers L.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from hr_config.schema import StatutoryTableSet
from hr_engines.approval import check_approver, resolve_transition
from hr_engines.earnings import PayItemKind
from hr_engines.settlement import (
    LeaveDays,
    SettlementComputation,
    SettlementInputs,
    compute_settlement,
    waiver_conflict,
)
from hr_engines.working_days import month_bounds
from hr_kernel.domain.actor import Actor
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.domain.employee import Employee, EmploymentStatus
from hr_kernel.domain.money import money_sum
from hr_kernel.domain.results import CommandResult
from hr_kernel.exceptions import (
    ApprovalNotPermittedError,
    InvalidTransitionError,
    NoticePolicyViolationError,
    RecordNotFoundError,
    SettlementAlreadyProcessedError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.selectors.reference_selector import ReferenceSelector
from hr_modules._command_helpers import (
    run_command,
    tenant_policy,
    with_conflict_retry,
    work_calendar,
)
from hr_modules.leave.service import LeaveService
from hr_modules.payroll.models import PayComponentStatus
from hr_modules.payroll.orm import PayComponentModel
from hr_modules.payroll.service import PayrollService
from hr_modules.settlement.models import Settlement, SettlementStatus
from hr_modules.settlement.orm import SettlementModel
from hr_modules.settlement.workflows import SETTLEMENT_WORKFLOW

logger = get_logger("modules.settlement.service")


class SettlementService:
    """
    Full-and-final settlements.

    Contract
    --------
    * ``build_settlement`` upserts the DRAFT for the employee and marks
      them RESIGNING.
    * ``set_notice_waiver`` toggles the waiver and recomputes.
    * ``process_settlement`` recomputes one last time, then freezes.
    """

    def __init__(
        self,
        session: Session,
        statutory_tables: StatutoryTableSet,
        clock: Clock | None = None,
    ):
        self._session = session
        self._tables = statutory_tables
        self._clock = clock or SystemClock()
        self._refs = ReferenceSelector(session)
        self._leave = LeaveService(session, self._clock)
        self._payroll = PayrollService(session, statutory_tables, self._clock)

    # =========================================================================
    # Commands
    # =========================================================================

    def build_settlement(
        self,
        employee_id: UUID,
        notice_date: date,
        last_working_day: date,
        actor_id: UUID,
        notice_waived: bool = False,
    ) -> CommandResult[Settlement]:
        def _do() -> Settlement:
            employee = self._refs.employee(employee_id)
            result = self._compute(employee, notice_date, last_working_day, notice_waived)

            def _upsert() -> SettlementModel:
                model = self._find(employee_id)
                if model is None:
                    model = SettlementModel(
                        tenant_id=employee.tenant_id,
                        employee_id=employee_id,
                        status=SettlementStatus.DRAFT.value,
                        created_by_id=actor_id,
                    )
                    self._session.add(model)
                elif model.status == SettlementStatus.PROCESSED.value:
                    raise SettlementAlreadyProcessedError(str(model.id))
                else:
                    self._transition(model, "rebuild")
                    model.updated_by_id = actor_id
                model.notice_date = notice_date
                model.last_working_day = last_working_day
                model.notice_waived = notice_waived
                model.apply_computation(result)
                return model

            model = with_conflict_retry(self._session, "Settlement", str(employee_id), _upsert)
            employee_model = self._refs.employee_model(employee_id)
            employee_model.employment_status = EmploymentStatus.RESIGNING.value
            employee_model.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "settlement_built",
                extra={
                    "settlement_id": str(model.id),
                    "last_working_day": last_working_day.isoformat(),
                    "shortfall_days": result.shortfall_days,
                    "net": result.net,
                },
            )
            return model.to_dto()

        return run_command(
            self._session, "build_settlement", _do,
            employee_id=employee_id, actor_id=actor_id,
        )

    def set_notice_waiver(
        self, settlement_id: UUID, notice_waived: bool, actor_id: UUID,
    ) -> CommandResult[Settlement]:
        def _do() -> Settlement:
            model = self._get(settlement_id)
            if model.status == SettlementStatus.PROCESSED.value:
                raise SettlementAlreadyProcessedError(str(model.id))
            self._transition(model, "toggle_waiver")
            employee = self._refs.employee(model.employee_id)
            model.notice_waived = notice_waived
            model.apply_computation(
                self._compute(employee, model.notice_date, model.last_working_day, notice_waived)
            )
            model.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "settlement_waiver_set",
                extra={"settlement_id": str(model.id), "notice_waived": notice_waived},
            )
            return model.to_dto()

        return run_command(
            self._session, "set_notice_waiver", _do,
            actor_id=actor_id, settlement_id=settlement_id,
        )

    def process_settlement(self, settlement_id: UUID, actor: Actor) -> CommandResult[Settlement]:
        """Freeze the settlement, pay out its claims and set the employee EXITED."""
        def _do() -> Settlement:
            model = self._get(settlement_id)
            if model.status == SettlementStatus.PROCESSED.value:
                raise SettlementAlreadyProcessedError(str(model.id))
            employee = self._refs.employee(model.employee_id)
            check = check_approver(actor, employee)
            if not check.permitted:
                raise ApprovalNotPermittedError(
                    str(actor.actor_id), "process_settlement", check.reason or "",
                )

            conflict = waiver_conflict(
                model.notice_waived,
                model.computed_with_waiver,
                model.shortfall_days,
                model.daily_rate,
                model.notice_buyout,
                model.payment_in_lieu,
            )
            if conflict is not None:
                raise NoticePolicyViolationError(str(model.id), conflict)

            transition = self._transition(model, "process")
            last_day = model.last_working_day
            model.apply_computation(
                self._compute(employee, model.notice_date, last_day, model.notice_waived)
            )

            self._session.execute(
                update(PayComponentModel)
                .where(self._outstanding_claims_clause(employee.employee_id, last_day))
                .values(status=PayComponentStatus.INCLUDED.value, updated_by_id=actor.actor_id)
                .execution_options(synchronize_session="fetch")
            )
            employee_model = self._refs.employee_model(employee.employee_id)
            employee_model.employment_status = EmploymentStatus.EXITED.value
            employee_model.updated_by_id = actor.actor_id

            model.status = transition
            model.processed_at = self._clock.now_utc()
            model.processed_by_id = actor.actor_id
            model.updated_by_id = actor.actor_id
            self._session.flush()
            logger.info(
                "settlement_processed",
                extra={
                    "settlement_id": str(model.id),
                    "gross": model.gross,
                    "net": model.net,
                    "claims": model.claims,
                },
            )
            return model.to_dto()

        return run_command(
            self._session, "process_settlement", _do,
            actor_id=actor.actor_id, settlement_id=settlement_id,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def preview_settlement(
        self,
        employee_id: UUID,
        notice_date: date,
        last_working_day: date,
        notice_waived: bool = False,
    ) -> Settlement:
        """Figures as they would be built now; a PROCESSED settlement is returned as stored."""
        existing = self._find(employee_id)
        if existing is not None and existing.status == SettlementStatus.PROCESSED.value:
            return existing.to_dto()
        employee = self._refs.employee(employee_id)
        result = self._compute(employee, notice_date, last_working_day, notice_waived)
        return Settlement(
            settlement_id=existing.id if existing is not None else None,
            employee_id=employee_id,
            notice_date=notice_date,
            last_working_day=last_working_day,
            notice_waived=notice_waived,
            status=SettlementStatus.DRAFT,
            tenure_months=result.tenure_months,
            required_notice_days=result.required_notice_days,
            shortfall_days=result.shortfall_days,
            daily_rate=result.daily_rate,
            prorated_basic=result.prorated_basic,
            encashment_days=result.encashment_days,
            encashment=result.encashment,
            claims=result.claims,
            prorated_bonus=result.prorated_bonus,
            payment_in_lieu=result.payment_in_lieu,
            gross=result.gross,
            epf_employee=result.statutory.epf.employee,
            socso_employee=result.statutory.socso.employee,
            eis_employee=result.statutory.eis.employee,
            pcb=result.statutory.pcb,
            notice_buyout=result.notice_buyout,
            advance_recovery=result.advance_recovery,
            net=result.net,
            statutory_table=result.statutory.table_name,
        )

    def settlement_for(self, employee_id: UUID) -> Settlement | None:
        model = self._find(employee_id)
        return model.to_dto() if model is not None else None

    # =========================================================================
    # Internals
    # =========================================================================

    def _compute(
        self,
        employee: Employee,
        notice_date: date,
        last_day: date,
        notice_waived: bool,
    ) -> SettlementComputation:
        ref = f"employee:{employee.employee_id}"
        if notice_date > last_day:
            raise NoticePolicyViolationError(ref, "notice date is after the last working day")
        if last_day < employee.hire_date:
            raise NoticePolicyViolationError(ref, "last working day is before the hire date")

        policy = tenant_policy(self._refs.tenant(employee.tenant_id))
        tables = self._tables.for_period(last_day)
        first, last = month_bounds(last_day.year, last_day.month)
        cal = work_calendar(self._session, employee.tenant_id, policy, first, last)

        entitlements = self._leave.entitlement(employee.employee_id, last_day)
        sealed = self._payroll.period_sealed(employee.employee_id, last_day.year, last_day.month)
        ytd_before = last_day.month + 1 if sealed else last_day.month

        inputs = SettlementInputs(
            notice_date=notice_date,
            last_day=last_day,
            notice_waived=notice_waived,
            encashable=tuple(
                LeaveDays(e.leave_type_code, e.encashable_days)
                for e in entitlements if e.encashable_days > 0
            ),
            advance_used=tuple(
                LeaveDays(e.leave_type_code, e.advance_used)
                for e in entitlements if e.advance_used > 0 and not e.encashable_type
            ),
            outstanding_claims=self._outstanding_claims(employee.employee_id, last_day),
            basic_already_paid=sealed,
            ytd=self._payroll.year_to_date(employee.employee_id, last_day.year, ytd_before),
        )
        return compute_settlement(employee, policy, cal, tables, inputs)

    @staticmethod
    def _outstanding_claims_clause(employee_id: UUID, last_day: date):
        return and_(
            PayComponentModel.employee_id == employee_id,
            PayComponentModel.kind == PayItemKind.CLAIM.value,
            PayComponentModel.status == PayComponentStatus.APPROVED.value,
            or_(
                PayComponentModel.payroll_year < last_day.year,
                and_(
                    PayComponentModel.payroll_year == last_day.year,
                    PayComponentModel.payroll_month <= last_day.month,
                ),
            ),
        )

    def _outstanding_claims(self, employee_id: UUID, last_day: date) -> Decimal:
        amounts = self._session.execute(
            select(PayComponentModel.amount).where(
                self._outstanding_claims_clause(employee_id, last_day)
            )
        ).scalars()
        return money_sum(amounts)

    def _find(self, employee_id: UUID) -> SettlementModel | None:
        return self._session.execute(
            select(SettlementModel).where(SettlementModel.employee_id == employee_id)
        ).scalar_one_or_none()

    def _get(self, settlement_id: UUID) -> SettlementModel:
        model = self._session.get(SettlementModel, settlement_id)
        if model is None:
            raise RecordNotFoundError("Settlement", str(settlement_id))
        return model

    @staticmethod
    def _transition(model: SettlementModel, action: str) -> str:
        transition = resolve_transition(SETTLEMENT_WORKFLOW, model.status, action)
        if transition is None:
            raise InvalidTransitionError(SETTLEMENT_WORKFLOW.name, model.status, action)
        return transition.to_state
