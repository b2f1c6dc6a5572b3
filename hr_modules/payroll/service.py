"""
Payroll Module Service (``hr_modules.payroll.service``).

Responsibility
--------------
Builds monthly payroll runs per scope (company, outlet or department),
finalises them under the (tenant, period, scope) lock, marks them paid and
manages the pay components and deductions they consume.  Gross is composed
by ``hr_engines.earnings``; statutory deductions by ``hr_engines.statutory``.

Architecture position
---------------------
**Modules layer**.  Reads day records (attendance), approved leave
(leave) and exit dates (settlement); writes runs, items, and the
INCLUDED / DEDUCTED flips on components and deductions.

Invariants enforced
-------------------
* A FINALISED or PAID run is never rebuilt, deleted or re-finalised
  (``RunLockedError``).
* Finalisation locks every day record it paid for and freezes every item.
* Only APPROVED overtime is paid; REJECTED day records contribute nothing.
* Components are carried forward by reassigning their month, never split.
* ``preview_line`` recomputes from the same inputs a frozen item used, so a
  finalised month previews identically to its item.

Failure modes
-------------
* ``RateTableMissingError`` -- no statutory table covers the period.
* ``RunLockedError`` -- run finalised, or finalisation in progress.
* ``LockHeldError`` -- another finalisation holds the scope lock.
* Per-employee failures during a build are reported in the ``BulkRunResult``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from hr_config.schema import StatutoryTables, StatutoryTableSet, TenantPolicy
from hr_engines.approval import check_approver, resolve_transition
from hr_engines.earnings import DayLine, PayItem, PayItemKind, compose_gross
from hr_engines.statutory import YearToDate, compute_statutory
from hr_engines.working_days import WorkCalendar, employed_window, month_bounds
from hr_kernel.domain.actor import Actor
from hr_kernel.domain.attendance import AttendanceStatus, OTStatus, RecordStatus
from hr_kernel.domain.cancellation import CancellationToken
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.leave import LeaveRequestStatus
from hr_kernel.domain.money import money_sum
from hr_kernel.domain.results import CommandResult
from hr_kernel.exceptions import (
    ApprovalNotPermittedError,
    HREngineError,
    InvalidTransitionError,
    RecordNotFoundError,
    RunLockedError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.selectors.reference_selector import ReferenceSelector
from hr_kernel.services.bulk_runner import BulkRunner
from hr_kernel.services.lock_service import LockService, payroll_lock_key
from hr_modules._command_helpers import (
    SEALED_RUN_STATUSES,
    run_command,
    tenant_policy,
    with_conflict_retry,
    work_calendar,
)
from hr_modules.attendance.orm import DayRecordModel
from hr_modules.leave.orm import LeaveRequestModel, LeaveTypeModel
from hr_modules.payroll.exports import (
    BANK_COLUMNS,
    STATUTORY_COLUMNS,
    ExportKind,
    write_csv,
    write_statutory_workbook,
)
from hr_modules.payroll.models import (
    DeductionKind,
    DeductionStatus,
    PayComponent,
    PayComponentStatus,
    PayrollBuild,
    PayrollLine,
    PayrollRun,
    PayrollRunStatus,
    PayrollScope,
    ScopeType,
    scopes_for,
)
from hr_modules.payroll.orm import (
    DeductionModel,
    PayComponentModel,
    PayrollItemModel,
    PayrollRunModel,
)
from hr_modules.payroll.workflows import PAY_COMPONENT_WORKFLOW, PAYROLL_RUN_WORKFLOW
from hr_modules.settlement.models import SettlementStatus
from hr_modules.settlement.orm import SettlementModel

logger = get_logger("modules.payroll.service")


class PayrollService:
    """
    Payroll runs, items, components and deductions.

    Contract
    --------
    * ``build_payroll_run`` creates or rebuilds a DRAFT run, one committed
      item per employee.
    * ``finalise_run`` is all-or-nothing under the scope lock.
    * Statutory tables are read-only; pass a reloaded ``StatutoryTableSet``
      to pick up new rates.
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
        self._locks = LockService(session, self._clock)

    # =========================================================================
    # Pay components and deductions
    # =========================================================================

    def add_pay_component(
        self,
        employee_id: UUID,
        kind: PayItemKind,
        amount: Decimal,
        payroll_year: int,
        payroll_month: int,
        actor_id: UUID,
        description: str = "",
        taxable: bool = True,
    ) -> CommandResult[PayComponent]:
        def _do() -> PayComponent:
            employee = self._refs.employee(employee_id)
            if amount <= 0:
                raise InvalidTransitionError(PAY_COMPONENT_WORKFLOW.name, "new", "non-positive amount")
            self._guard_period_open(employee, payroll_year, payroll_month)
            model = PayComponentModel(
                tenant_id=employee.tenant_id,
                employee_id=employee_id,
                kind=kind.value,
                amount=amount,
                payroll_year=payroll_year,
                payroll_month=payroll_month,
                status=PayComponentStatus.PENDING.value,
                taxable=taxable,
                description=description,
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()
            return model.to_dto()

        return run_command(
            self._session, "add_pay_component", _do,
            employee_id=employee_id, actor_id=actor_id, kind=kind.value,
        )

    def approve_pay_component(self, component_id: UUID, actor: Actor) -> CommandResult[PayComponent]:
        return self._decide_component(component_id, actor, "approve")

    def reject_pay_component(self, component_id: UUID, actor: Actor) -> CommandResult[PayComponent]:
        return self._decide_component(component_id, actor, "reject")

    def _decide_component(
        self, component_id: UUID, actor: Actor, action: str,
    ) -> CommandResult[PayComponent]:
        def _do() -> PayComponent:
            model = self._component(component_id)
            employee = self._refs.employee(model.employee_id)
            check = check_approver(actor, employee)
            if not check.permitted:
                raise ApprovalNotPermittedError(
                    str(actor.actor_id), f"{action}_pay_component", check.reason or "",
                )
            self._guard_period_open(employee, model.payroll_year, model.payroll_month)
            self._component_transition(model, action)
            model.updated_by_id = actor.actor_id
            self._session.flush()
            return model.to_dto()

        return run_command(
            self._session, f"{action}_pay_component", _do,
            actor_id=actor.actor_id, component_id=component_id,
        )

    def reassign_claim_month(
        self,
        component_id: UUID,
        payroll_year: int,
        payroll_month: int,
        actor_id: UUID,
    ) -> CommandResult[PayComponent]:
        """Move an APPROVED component to a later payroll month, whole."""
        def _do() -> PayComponent:
            model = self._component(component_id)
            if model.status == PayComponentStatus.INCLUDED.value:
                raise RunLockedError(
                    f"run:{model.payroll_run_id}", "component already included in a run",
                )
            if (payroll_year, payroll_month) <= (model.payroll_year, model.payroll_month):
                raise InvalidTransitionError(
                    PAY_COMPONENT_WORKFLOW.name,
                    f"{model.payroll_year}-{model.payroll_month:02d}",
                    f"reassign to {payroll_year}-{payroll_month:02d}",
                )
            self._component_transition(model, "reassign")
            employee = self._refs.employee(model.employee_id)
            self._guard_period_open(employee, payroll_year, payroll_month)
            previous = (model.payroll_year, model.payroll_month)
            model.payroll_year = payroll_year
            model.payroll_month = payroll_month
            model.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "pay_component_reassigned",
                extra={
                    "component_id": str(model.id),
                    "from_period": f"{previous[0]}-{previous[1]:02d}",
                    "to_period": f"{payroll_year}-{payroll_month:02d}",
                },
            )
            return model.to_dto()

        return run_command(
            self._session, "reassign_claim_month", _do,
            actor_id=actor_id, component_id=component_id,
        )

    def add_deduction(
        self,
        employee_id: UUID,
        kind: DeductionKind,
        amount: Decimal,
        payroll_year: int,
        payroll_month: int,
        actor_id: UUID,
        description: str = "",
    ) -> CommandResult[UUID]:
        def _do() -> UUID:
            employee = self._refs.employee(employee_id)
            if amount <= 0:
                raise InvalidTransitionError("deduction", "new", "non-positive amount")
            self._guard_period_open(employee, payroll_year, payroll_month)
            model = DeductionModel(
                tenant_id=employee.tenant_id,
                employee_id=employee_id,
                kind=kind.value,
                amount=amount,
                payroll_year=payroll_year,
                payroll_month=payroll_month,
                status=DeductionStatus.PENDING.value,
                description=description,
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()
            return model.id

        return run_command(
            self._session, "add_deduction", _do,
            employee_id=employee_id, actor_id=actor_id, kind=kind.value,
        )

    # =========================================================================
    # Runs
    # =========================================================================

    def build_payroll_run(
        self,
        tenant_id: UUID,
        year: int,
        month: int,
        scope: PayrollScope,
        actor_id: UUID,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult[PayrollBuild]:
        """
        Create, or rebuild, the DRAFT run for (tenant, period, scope).

        The run row is committed first; each employee's item is then
        committed on its own.  A cancelled build leaves a DRAFT run with the
        items finished so far.
        """
        prepared = run_command(
            self._session, "prepare_payroll_run",
            lambda: self._prepare_run(tenant_id, year, month, scope, actor_id),
            tenant_id=tenant_id, actor_id=actor_id, period=f"{year}-{month:02d}",
        )
        if not prepared.is_success:
            return CommandResult(
                status=prepared.status,
                error_code=prepared.error_code,
                message=prepared.message,
                details=prepared.details,
            )
        run_id = prepared.value

        policy = tenant_policy(self._refs.tenant(tenant_id))
        tables = self._tables.for_period(month_bounds(year, month)[1])
        employees = [
            e for e in self._refs.employees_in_scope(
                tenant_id,
                outlet_id=scope.scope_id if scope.scope_type == ScopeType.OUTLET else None,
                department_id=scope.scope_id if scope.scope_type == ScopeType.DEPARTMENT else None,
                include_exited=True,
            )
            if scope.includes(e)
        ]
        bulk = BulkRunner(self._session, "build_payroll_run").run(
            employees,
            lambda e: str(e.employee_id),
            lambda e: self._build_item(run_id, e, policy, tables, year, month, actor_id),
            cancel_token,
        )

        run = self._session.get(PayrollRunModel, run_id)
        self._session.expire(run, ["items"])
        self._apply_totals(run)
        run.updated_by_id = actor_id
        self._session.commit()
        logger.info(
            "payroll_run_built",
            extra={
                "run_id": str(run_id),
                "employee_count": run.employee_count,
                "total_gross": run.total_gross,
                "bulk_status": bulk.status.value,
            },
        )
        return CommandResult.ok(PayrollBuild(run=run.to_dto(), result=bulk))

    def _prepare_run(
        self,
        tenant_id: UUID,
        year: int,
        month: int,
        scope: PayrollScope,
        actor_id: UUID,
    ) -> UUID:
        tenant_policy(self._refs.tenant(tenant_id))
        self._tables.for_period(month_bounds(year, month)[1])
        lock_key = payroll_lock_key(year, month, scope.key)
        if self._locks.is_held(tenant_id, lock_key):
            raise RunLockedError(lock_key, "payroll run is finalising")

        def _upsert() -> PayrollRunModel:
            run = self._find_run(tenant_id, year, month, scope.key)
            if run is None:
                run = PayrollRunModel(
                    tenant_id=tenant_id,
                    year=year,
                    month=month,
                    scope_type=scope.scope_type.value,
                    scope_id=scope.scope_id,
                    scope_key=scope.key,
                    status=PayrollRunStatus.DRAFT.value,
                    created_by_id=actor_id,
                )
                self._session.add(run)
                return run
            if resolve_transition(PAYROLL_RUN_WORKFLOW, run.status, "rebuild") is None:
                raise RunLockedError(lock_key, f"run is {run.status}")
            run.items.clear()
            run.updated_by_id = actor_id
            return run

        run = with_conflict_retry(self._session, "PayrollRun", lock_key, _upsert)
        return run.id

    def _build_item(
        self,
        run_id: UUID,
        employee: Employee,
        policy: TenantPolicy,
        tables: StatutoryTables,
        year: int,
        month: int,
        actor_id: UUID,
    ) -> dict[str, str] | None:
        last_day = self._exit_date(employee.employee_id)
        if self._excluded(employee, year, month, last_day):
            return None
        if self._sealed_item(employee, year, month) is not None:
            logger.info(
                "payroll_item_already_sealed",
                extra={"employee_id": str(employee.employee_id), "period": f"{year}-{month:02d}"},
            )
            return None
        line = self._compute_line(employee, policy, tables, year, month, run_id, last_day)
        item = PayrollItemModel(
            run_id=run_id,
            employee_id=employee.employee_id,
            employee_number=employee.employee_number,
            created_by_id=actor_id,
        )
        item.apply_line(line)
        self._session.add(item)
        self._session.flush()
        return {"gross": str(line.gross), "net": str(line.net)}

    def finalise_run(self, run_id: UUID, actor: Actor) -> CommandResult[PayrollRun]:
        """
        Freeze a DRAFT run.

        Under the scope lock: items freeze, the employees' day records for
        the month lock, used components flip to INCLUDED and deductions to
        DEDUCTED, totals are written and the run becomes FINALISED.
        """
        try:
            run = self._get_run(run_id)
            tenant_id = run.tenant_id
            lock_key = payroll_lock_key(run.year, run.month, run.scope_key)
            self._locks.acquire(tenant_id, lock_key, f"finalise:{actor.actor_id}")
            self._session.commit()
        except HREngineError as exc:
            self._session.rollback()
            logger.warning(
                "finalise_run_rejected",
                extra={"run_id": str(run_id), "error_code": exc.code},
            )
            return CommandResult.rejected(exc)

        try:
            return run_command(
                self._session, "finalise_run",
                lambda: self._finalise(run_id, actor),
                tenant_id=tenant_id, actor_id=actor.actor_id, run_id=run_id,
            )
        finally:
            self._locks.release(tenant_id, lock_key)
            self._session.commit()

    def _finalise(self, run_id: UUID, actor: Actor) -> PayrollRun:
        run = self._get_run(run_id)
        if not actor.is_admin:
            raise ApprovalNotPermittedError(
                str(actor.actor_id), "finalise_run", "only administrators finalise payroll",
            )
        transition = resolve_transition(PAYROLL_RUN_WORKFLOW, run.status, "finalise")
        if transition is None:
            raise RunLockedError(run.scope_key, f"run is {run.status}")

        if not run.items:
            raise InvalidTransitionError(PAYROLL_RUN_WORKFLOW.name, run.status, "finalise (no items)")
        for item in run.items:
            sealed = self._sealed_item(self._refs.employee(item.employee_id), run.year, run.month)
            if sealed is not None:
                raise RunLockedError(
                    f"run:{sealed.run_id}",
                    f"employee {item.employee_id} is already paid for {run.year}-{run.month:02d}",
                )

        first, last = month_bounds(run.year, run.month)
        employee_ids = [item.employee_id for item in run.items]
        self._session.execute(
            update(DayRecordModel)
            .where(
                DayRecordModel.employee_id.in_(employee_ids),
                DayRecordModel.work_date >= first,
                DayRecordModel.work_date <= last,
            )
            .values(is_locked=True, payroll_run_id=run.id, updated_by_id=actor.actor_id)
            .execution_options(synchronize_session="fetch")
        )
        self._session.execute(
            update(PayComponentModel)
            .where(
                PayComponentModel.employee_id.in_(employee_ids),
                PayComponentModel.payroll_year == run.year,
                PayComponentModel.payroll_month == run.month,
                PayComponentModel.status == PayComponentStatus.APPROVED.value,
            )
            .values(
                status=PayComponentStatus.INCLUDED.value,
                payroll_run_id=run.id,
                updated_by_id=actor.actor_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        self._session.execute(
            update(DeductionModel)
            .where(
                DeductionModel.employee_id.in_(employee_ids),
                DeductionModel.payroll_year == run.year,
                DeductionModel.payroll_month == run.month,
                DeductionModel.status == DeductionStatus.PENDING.value,
            )
            .values(
                status=DeductionStatus.DEDUCTED.value,
                payroll_run_id=run.id,
                updated_by_id=actor.actor_id,
            )
            .execution_options(synchronize_session="fetch")
        )

        tables = self._tables.for_period(last)
        policy = tenant_policy(self._refs.tenant(run.tenant_id))
        for item in run.items:
            employee = self._refs.employee(item.employee_id)
            item.apply_line(self._compute_line(
                employee, policy, tables, run.year, run.month, run.id,
                self._exit_date(item.employee_id),
            ))
            item.is_frozen = True
            item.updated_by_id = actor.actor_id
        self._apply_totals(run)
        run.statutory_table = tables.name
        run.statutory_checksum = tables.checksum
        run.status = transition.to_state
        run.finalised_at = self._clock.now_utc()
        run.finalised_by_id = actor.actor_id
        run.updated_by_id = actor.actor_id
        self._session.flush()
        logger.info(
            "payroll_run_finalised",
            extra={
                "run_id": str(run.id),
                "scope_key": run.scope_key,
                "employee_count": run.employee_count,
                "total_net": run.total_net,
            },
        )
        return run.to_dto()

    def delete_draft_run(self, run_id: UUID, actor_id: UUID) -> CommandResult[UUID]:
        def _do() -> UUID:
            run = self._get_run(run_id)
            if run.status != PayrollRunStatus.DRAFT.value:
                raise RunLockedError(run.scope_key, f"run is {run.status}")
            self._session.delete(run)
            self._session.flush()
            logger.info("payroll_run_deleted", extra={"run_id": str(run_id)})
            return run_id

        return run_command(
            self._session, "delete_draft_run", _do,
            actor_id=actor_id, run_id=run_id,
        )

    def mark_run_paid(self, run_id: UUID, actor: Actor) -> CommandResult[PayrollRun]:
        def _do() -> PayrollRun:
            run = self._get_run(run_id)
            transition = resolve_transition(PAYROLL_RUN_WORKFLOW, run.status, "mark_paid")
            if transition is None:
                raise InvalidTransitionError(PAYROLL_RUN_WORKFLOW.name, run.status, "mark_paid")
            if not run.items:
                raise InvalidTransitionError(PAYROLL_RUN_WORKFLOW.name, run.status, "mark_paid (no items)")
            run.status = transition.to_state
            run.paid_at = self._clock.now_utc()
            run.paid_by_id = actor.actor_id
            self._session.flush()
            return run.to_dto()

        return run_command(
            self._session, "mark_run_paid", _do,
            actor_id=actor.actor_id, run_id=run_id,
        )

    def export_run(
        self,
        run_id: UUID,
        path: Path,
        kind: ExportKind,
        options: dict[str, Any] | None = None,
    ) -> CommandResult[int]:
        """Write a FINALISED or PAID run's bank or statutory file to ``path``."""
        def _do() -> int:
            run = self._get_run(run_id)
            if run.status not in SEALED_RUN_STATUSES:
                raise InvalidTransitionError(PAYROLL_RUN_WORKFLOW.name, run.status, "export")
            rows = []
            for item in run.items:
                row = {name: getattr(item, name) for name in STATUTORY_COLUMNS[2:]}
                row.update(
                    employee_number=item.employee_number,
                    name=self._refs.employee_model(item.employee_id).name,
                    net=item.net,
                )
                rows.append(row)
            match kind:
                case ExportKind.BANK_CSV:
                    count = write_csv(path, BANK_COLUMNS, rows, options)
                case ExportKind.STATUTORY_CSV:
                    count = write_csv(path, STATUTORY_COLUMNS, rows, options)
                case ExportKind.STATUTORY_XLSX:
                    count = write_statutory_workbook(path, rows, f"{run.year}-{run.month:02d}")
            logger.info(
                "payroll_run_exported",
                extra={"run_id": str(run.id), "kind": kind.value, "rows": count, "path": str(path)},
            )
            return count

        return run_command(
            self._session, "export_run", _do,
            run_id=run_id, kind=kind.value,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def preview_line(self, employee_id: UUID, year: int, month: int) -> PayrollLine:
        """Compute the employee's line for the period without persisting it."""
        employee = self._refs.employee(employee_id)
        policy = tenant_policy(self._refs.tenant(employee.tenant_id))
        tables = self._tables.for_period(month_bounds(year, month)[1])
        sealed = self._sealed_item(employee, year, month)
        return self._compute_line(
            employee, policy, tables, year, month,
            sealed.run_id if sealed is not None else None,
            self._exit_date(employee_id),
        )

    def get_run(self, run_id: UUID) -> PayrollRun | None:
        run = self._session.get(PayrollRunModel, run_id)
        return run.to_dto() if run is not None else None

    def run_lines(self, run_id: UUID) -> list[PayrollLine]:
        run = self._get_run(run_id)
        return [item.to_line(run.year, run.month) for item in run.items]

    def payroll_item(self, run_id: UUID, employee_id: UUID) -> PayrollLine | None:
        run = self._get_run(run_id)
        for item in run.items:
            if item.employee_id == employee_id:
                return item.to_line(run.year, run.month)
        return None

    def runs_for_period(self, tenant_id: UUID, year: int, month: int) -> list[PayrollRun]:
        return [
            r.to_dto() for r in self._session.execute(
                select(PayrollRunModel)
                .where(
                    PayrollRunModel.tenant_id == tenant_id,
                    PayrollRunModel.year == year,
                    PayrollRunModel.month == month,
                )
                .order_by(PayrollRunModel.scope_key)
            ).scalars()
        ]

    def year_to_date(self, employee_id: UUID, year: int, before_month: int) -> YearToDate:
        """Sealed figures for months of ``year`` before ``before_month``."""
        items = self._session.execute(
            select(PayrollItemModel)
            .join(PayrollRunModel, PayrollRunModel.id == PayrollItemModel.run_id)
            .where(
                PayrollItemModel.employee_id == employee_id,
                PayrollRunModel.year == year,
                PayrollRunModel.month < before_month,
                PayrollRunModel.status.in_(SEALED_RUN_STATUSES),
            )
        ).scalars().all()
        return YearToDate(
            gross=money_sum(i.gross - i.claims for i in items),
            epf=money_sum(i.epf_employee for i in items),
            socso_eis=money_sum(i.socso_employee + i.eis_employee for i in items),
            pcb=money_sum(i.pcb for i in items),
        )

    def period_sealed(self, employee_id: UUID, year: int, month: int) -> bool:
        """True when a FINALISED or PAID run already paid the employee for the month."""
        employee = self._refs.employee(employee_id)
        return self._sealed_item(employee, year, month) is not None

    # =========================================================================
    # Line computation
    # =========================================================================

    def _compute_line(
        self,
        employee: Employee,
        policy: TenantPolicy,
        tables: StatutoryTables,
        year: int,
        month: int,
        run_id: UUID | None,
        last_day: date | None,
    ) -> PayrollLine:
        first, last = month_bounds(year, month)
        cal = work_calendar(self._session, employee.tenant_id, policy, first, last)
        window = employed_window(year, month, employee.hire_date, last_day)
        exit_in_month = last_day if last_day is not None and last_day <= last else None

        days = self._day_lines(employee, cal, window) if window is not None else []
        items = self._pay_items(employee.employee_id, year, month, run_id)
        unpaid = self._unpaid_leave_days(employee.employee_id, cal, window) if window else 0

        gross = compose_gross(
            employee, policy, cal, year, month, days, items,
            last_day=exit_in_month, unpaid_leave_days=unpaid,
        )
        statutory = compute_statutory(
            tables,
            employee.statutory,
            last,
            gross.statutory_base,
            pcb_regular=gross.pcb_regular,
            pcb_additional=gross.pcb_additional,
            ytd=self.year_to_date(employee.employee_id, year, month),
        )
        advances, others = self._deductions(employee.employee_id, year, month, run_id)

        return PayrollLine(
            employee_id=employee.employee_id,
            year=year,
            month=month,
            work_type=employee.work_type.value,
            basic_salary=gross.basic_salary,
            proration=str(gross.proration),
            basic_pay=gross.basic_pay,
            work_minutes=gross.work_minutes,
            ot_minutes=gross.ot_minutes,
            ot_pay=gross.ot_pay,
            ph_pay=gross.ph_pay,
            allowances=gross.allowances,
            commissions=gross.commissions,
            incentives=gross.incentives,
            claims=gross.claims,
            bonus=gross.bonus,
            absent_days=gross.absent_days,
            absent_deduction=gross.absent_deduction,
            gross=gross.gross,
            statutory_base=gross.statutory_base,
            epf_employee=statutory.epf.employee,
            epf_employer=statutory.epf.employer,
            socso_employee=statutory.socso.employee,
            socso_employer=statutory.socso.employer,
            eis_employee=statutory.eis.employee,
            eis_employer=statutory.eis.employer,
            pcb=statutory.pcb,
            advance_deduction=advances,
            other_deductions=others,
            statutory_table=statutory.table_name,
        )

    def _day_lines(
        self,
        employee: Employee,
        cal: WorkCalendar,
        window: tuple[date, date],
    ) -> list[DayLine]:
        start, end = window
        shifts = self._refs.shifts_between(employee.employee_id, start, end)
        holidays = self._refs.holidays_between(employee.tenant_id, start, end)
        records = self._session.execute(
            select(DayRecordModel)
            .where(
                DayRecordModel.employee_id == employee.employee_id,
                DayRecordModel.work_date >= start,
                DayRecordModel.work_date <= end,
                DayRecordModel.record_status != RecordStatus.REJECTED.value,
            )
            .order_by(DayRecordModel.work_date)
        ).scalars()
        lines = []
        for r in records:
            shift = shifts.get(r.work_date)
            holiday = holidays.get(r.work_date)
            lines.append(DayLine(
                work_date=r.work_date,
                work_minutes=r.total_work_minutes,
                ot_minutes=r.ot_minutes,
                ot_status=OTStatus(r.ot_status),
                attendance_status=AttendanceStatus(r.attendance_status),
                day_class=cal.classify(r.work_date, shift.is_off if shift else False),
                extra_pay_holiday=holiday is not None and holiday.extra_pay,
            ))
        return lines

    def _pay_items(
        self, employee_id: UUID, year: int, month: int, run_id: UUID | None,
    ) -> list[PayItem]:
        included = PayComponentModel.status == PayComponentStatus.APPROVED.value
        if run_id is not None:
            included = or_(
                included,
                (PayComponentModel.status == PayComponentStatus.INCLUDED.value)
                & (PayComponentModel.payroll_run_id == run_id),
            )
        rows = self._session.execute(
            select(PayComponentModel).where(
                PayComponentModel.employee_id == employee_id,
                PayComponentModel.payroll_year == year,
                PayComponentModel.payroll_month == month,
                included,
            )
        ).scalars()
        return [PayItem(PayItemKind(r.kind), r.amount, r.description) for r in rows]

    def _deductions(
        self, employee_id: UUID, year: int, month: int, run_id: UUID | None,
    ) -> tuple[Decimal, Decimal]:
        live = DeductionModel.status == DeductionStatus.PENDING.value
        if run_id is not None:
            live = or_(
                live,
                (DeductionModel.status == DeductionStatus.DEDUCTED.value)
                & (DeductionModel.payroll_run_id == run_id),
            )
        rows = self._session.execute(
            select(DeductionModel).where(
                DeductionModel.employee_id == employee_id,
                DeductionModel.payroll_year == year,
                DeductionModel.payroll_month == month,
                live,
            )
        ).scalars().all()
        advances = money_sum(r.amount for r in rows if r.kind == DeductionKind.SALARY_ADVANCE.value)
        others = money_sum(r.amount for r in rows if r.kind != DeductionKind.SALARY_ADVANCE.value)
        return advances, others

    def _unpaid_leave_days(
        self, employee_id: UUID, cal: WorkCalendar, window: tuple[date, date],
    ) -> int:
        start, end = window
        rows = self._session.execute(
            select(LeaveRequestModel)
            .join(LeaveTypeModel, LeaveTypeModel.id == LeaveRequestModel.leave_type_id)
            .where(
                LeaveRequestModel.employee_id == employee_id,
                LeaveRequestModel.status == LeaveRequestStatus.APPROVED.value,
                LeaveTypeModel.is_paid.is_(False),
                LeaveRequestModel.start_date <= end,
                LeaveRequestModel.end_date >= start,
            )
        ).scalars()
        days = 0
        for r in rows:
            days += cal.working_days_between(max(start, r.start_date), min(end, r.end_date))
        return days

    # =========================================================================
    # Internals
    # =========================================================================

    def _exit_date(self, employee_id: UUID) -> date | None:
        return self._session.execute(
            select(SettlementModel.last_working_day).where(
                SettlementModel.employee_id == employee_id,
            )
        ).scalar_one_or_none()

    def _excluded(self, employee: Employee, year: int, month: int, last_day: date | None) -> bool:
        first, last = month_bounds(year, month)
        if employee.hire_date > last:
            return True
        if last_day is None:
            return False
        if last_day < first:
            return True
        processed = self._session.execute(
            select(SettlementModel.id).where(
                SettlementModel.employee_id == employee.employee_id,
                SettlementModel.status == SettlementStatus.PROCESSED.value,
            )
        ).first()
        return processed is not None and last_day <= last

    def _sealed_item(self, employee: Employee, year: int, month: int) -> PayrollItemModel | None:
        keys = [s.key for s in scopes_for(employee)]
        return self._session.execute(
            select(PayrollItemModel)
            .join(PayrollRunModel, PayrollRunModel.id == PayrollItemModel.run_id)
            .where(
                PayrollItemModel.employee_id == employee.employee_id,
                PayrollRunModel.tenant_id == employee.tenant_id,
                PayrollRunModel.year == year,
                PayrollRunModel.month == month,
                PayrollRunModel.scope_key.in_(keys),
                PayrollRunModel.status.in_(SEALED_RUN_STATUSES),
            )
            .limit(1)
        ).scalar_one_or_none()

    def _guard_period_open(self, employee: Employee, year: int, month: int) -> None:
        if self._sealed_item(employee, year, month) is not None:
            raise RunLockedError(
                f"{year:04d}-{month:02d}", "payroll for the period is finalised",
            )

    def _find_run(
        self, tenant_id: UUID, year: int, month: int, scope_key: str,
    ) -> PayrollRunModel | None:
        return self._session.execute(
            select(PayrollRunModel).where(
                PayrollRunModel.tenant_id == tenant_id,
                PayrollRunModel.year == year,
                PayrollRunModel.month == month,
                PayrollRunModel.scope_key == scope_key,
            )
        ).scalar_one_or_none()

    def _get_run(self, run_id: UUID) -> PayrollRunModel:
        run = self._session.get(PayrollRunModel, run_id)
        if run is None:
            raise RecordNotFoundError("PayrollRun", str(run_id))
        return run

    def _component(self, component_id: UUID) -> PayComponentModel:
        model = self._session.get(PayComponentModel, component_id)
        if model is None:
            raise RecordNotFoundError("PayComponent", str(component_id))
        return model

    @staticmethod
    def _component_transition(model: PayComponentModel, action: str) -> None:
        transition = resolve_transition(PAY_COMPONENT_WORKFLOW, model.status, action)
        if transition is None:
            raise InvalidTransitionError(PAY_COMPONENT_WORKFLOW.name, model.status, action)
        model.status = transition.to_state

    @staticmethod
    def _apply_totals(run: PayrollRunModel) -> None:
        items = list(run.items)
        run.employee_count = len(items)
        run.total_gross = money_sum(i.gross for i in items)
        run.total_net = money_sum(i.net for i in items)
        run.total_deductions = run.total_gross - run.total_net
        run.total_employer_cost = money_sum(i.employer_cost for i in items)
