"""
Leave Module Service (``hr_modules.leave.service``).

Responsibility
--------------
Submits, approves, rejects and cancels leave requests while keeping the
yearly ``LeaveBalance`` in step, and answers the entitlement-as-of query
through ``hr_engines.leave_entitlement``.

Architecture position
---------------------
**Modules layer**.  The balance row is the booked position (full-year
entitlement, pro-rated for joiners); ``entitlement()`` is the accrual view
the settlement engine consumes.

Invariants enforced
-------------------
* ``used_days`` never drops below zero.
* ``available < 0`` only for types that allow advance leave.
* A request lies within one leave (calendar) year.
* No request is filed, approved or cancelled in a month whose payroll is
  finalised or finalising.

Failure modes
-------------
* ``LeaveIneligibleError`` -- type not open to the employee, bad range,
  overlap with a live request.
* ``LeaveInsufficientError`` -- balance would go negative without advance.
* ``RunLockedError`` -- the request touches a sealed payroll month.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_engines.approval import check_approver, resolve_transition
from hr_engines.leave_entitlement import (
    LeaveEntitlement,
    annual_entitlement,
    carry_forward_days,
    eligibility_problem,
    prorated_entitlement,
    resolve_entitlement,
    years_of_service,
)
from hr_kernel.domain.actor import Actor
from hr_kernel.domain.cancellation import CancellationToken
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.leave import BookedLeave, LeaveRequestStatus, LeaveType
from hr_kernel.domain.results import BulkRunResult, CommandResult
from hr_kernel.exceptions import (
    ApprovalNotPermittedError,
    InvalidTransitionError,
    LeaveIneligibleError,
    LeaveInsufficientError,
    RecordNotFoundError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.selectors.reference_selector import ReferenceSelector
from hr_kernel.services.bulk_runner import BulkRunner
from hr_kernel.services.lock_service import SYSTEM_ACTOR_ID, LockService
from hr_modules._command_helpers import (
    guard_payroll_month,
    run_command,
    tenant_policy,
    work_calendar,
)
from hr_modules.leave.models import LeaveBalance, LeaveRequest
from hr_modules.leave.orm import LeaveBalanceModel, LeaveRequestModel, LeaveTypeModel
from hr_modules.leave.workflows import LEAVE_REQUEST_WORKFLOW

logger = get_logger("modules.leave.service")

_LIVE_STATUSES = (LeaveRequestStatus.PENDING.value, LeaveRequestStatus.APPROVED.value)


class LeaveService:
    """
    Leave requests and balances.

    Guarantees
    ----------
    * Each command commits on success and rolls back on rejection.
    * Balances are created lazily, the first time a year is touched.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._refs = ReferenceSelector(session)
        self._locks = LockService(session, self._clock)

    # =========================================================================
    # Requests
    # =========================================================================

    def submit_leave_request(
        self,
        employee_id: UUID,
        leave_type_code: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        days: Decimal | None = None,
        reason: str | None = None,
    ) -> CommandResult[LeaveRequest]:
        """
        File a PENDING request and book its days as pending.

        ``days`` defaults to the working days in the range (rest days and
        public holidays excluded); pass it explicitly for half days.
        """
        def _do() -> LeaveRequest:
            employee = self._refs.employee(employee_id)
            type_model = self._leave_type(employee.tenant_id, leave_type_code)
            leave_type = type_model.to_dto()
            code = leave_type.code

            if end_date < start_date:
                raise LeaveIneligibleError(str(employee_id), code, "end date precedes start date")
            if start_date.year != end_date.year:
                raise LeaveIneligibleError(str(employee_id), code, "request spans two leave years")
            self._guard_payroll_open(employee, start_date, end_date)
            problem = eligibility_problem(employee, leave_type, start_date)
            if problem is not None:
                raise LeaveIneligibleError(str(employee_id), code, problem)
            self._reject_overlap(employee_id, start_date, end_date, code)

            requested = days if days is not None else self._working_days(employee, start_date, end_date)
            if requested <= 0:
                raise LeaveIneligibleError(str(employee_id), code, "no working days in range")

            balance = self._balance(employee, type_model, start_date.year, actor_id)
            if balance.available - requested < 0 and not leave_type.allow_advance:
                raise LeaveInsufficientError(str(employee_id), code, requested, balance.available)

            balance.pending_days += requested
            balance.updated_by_id = actor_id
            request = LeaveRequestModel(
                tenant_id=employee.tenant_id,
                employee_id=employee_id,
                leave_type_id=type_model.id,
                start_date=start_date,
                end_date=end_date,
                days=requested,
                status=LeaveRequestStatus.PENDING.value,
                reason=reason,
                created_by_id=actor_id,
            )
            self._session.add(request)
            self._session.flush()
            logger.info(
                "leave_request_submitted",
                extra={
                    "leave_request_id": str(request.id),
                    "leave_type": code,
                    "days": requested,
                    "available_after": balance.available,
                },
            )
            return request.to_dto(code)

        return run_command(
            self._session, "submit_leave_request", _do,
            employee_id=employee_id, actor_id=actor_id, leave_type=leave_type_code,
        )

    def approve_leave(self, request_id: UUID, actor: Actor) -> CommandResult[LeaveRequest]:
        def _do() -> LeaveRequest:
            request, employee, type_model = self._load(request_id)
            self._require_approver(actor, employee, "approve_leave")
            self._guard_payroll_open(employee, request.start_date, request.end_date)
            self._transition(request, "approve")

            balance = self._balance(employee, type_model, request.start_date.year, actor.actor_id)
            if balance.available < 0 and not type_model.allow_advance:
                raise LeaveInsufficientError(
                    str(employee.employee_id), type_model.code,
                    request.days, balance.available + request.days,
                )
            balance.pending_days = max(Decimal("0"), balance.pending_days - request.days)
            balance.used_days += request.days
            balance.updated_by_id = actor.actor_id
            self._decide(request, actor.actor_id)
            return request.to_dto(type_model.code)

        return run_command(
            self._session, "approve_leave", _do,
            actor_id=actor.actor_id, leave_request_id=request_id,
        )

    def reject_leave(
        self, request_id: UUID, actor: Actor, reason: str,
    ) -> CommandResult[LeaveRequest]:
        def _do() -> LeaveRequest:
            request, employee, type_model = self._load(request_id)
            self._require_approver(actor, employee, "reject_leave")
            if not reason or not reason.strip():
                raise ApprovalNotPermittedError(
                    str(actor.actor_id), "reject_leave", "a rejection reason is required",
                )
            self._transition(request, "reject")

            balance = self._balance(employee, type_model, request.start_date.year, actor.actor_id)
            balance.pending_days = max(Decimal("0"), balance.pending_days - request.days)
            balance.updated_by_id = actor.actor_id
            request.rejection_reason = reason.strip()
            self._decide(request, actor.actor_id)
            return request.to_dto(type_model.code)

        return run_command(
            self._session, "reject_leave", _do,
            actor_id=actor.actor_id, leave_request_id=request_id,
        )

    def cancel_leave(self, request_id: UUID, actor_id: UUID) -> CommandResult[LeaveRequest]:
        """Cancel a PENDING or APPROVED request and release its days."""
        def _do() -> LeaveRequest:
            request, employee, type_model = self._load(request_id)
            previous = request.status
            self._guard_payroll_open(employee, request.start_date, request.end_date)
            self._transition(request, "cancel")

            balance = self._balance(employee, type_model, request.start_date.year, actor_id)
            if previous == LeaveRequestStatus.APPROVED.value:
                balance.used_days = max(Decimal("0"), balance.used_days - request.days)
            else:
                balance.pending_days = max(Decimal("0"), balance.pending_days - request.days)
            balance.updated_by_id = actor_id
            self._decide(request, actor_id)
            return request.to_dto(type_model.code)

        return run_command(
            self._session, "cancel_leave", _do,
            actor_id=actor_id, leave_request_id=request_id,
        )

    # =========================================================================
    # Balances
    # =========================================================================

    def adjust_balance(
        self,
        employee_id: UUID,
        leave_type_code: str,
        year: int,
        delta_days: Decimal,
        actor: Actor,
    ) -> CommandResult[LeaveBalance]:
        """Add ``delta_days`` (may be negative) to the manual adjustment."""
        def _do() -> LeaveBalance:
            employee = self._refs.employee(employee_id)
            type_model = self._leave_type(employee.tenant_id, leave_type_code)
            self._require_approver(actor, employee, "adjust_balance")
            balance = self._balance(employee, type_model, year, actor.actor_id)
            if balance.available + delta_days < 0 and not type_model.allow_advance:
                raise LeaveInsufficientError(
                    str(employee_id), type_model.code, -delta_days, balance.available,
                )
            balance.manual_adjustment += delta_days
            balance.updated_by_id = actor.actor_id
            self._session.flush()
            return balance.to_dto(type_model.code)

        return run_command(
            self._session, "adjust_leave_balance", _do,
            employee_id=employee_id, actor_id=actor.actor_id, delta_days=delta_days,
        )

    def roll_over_year(
        self,
        tenant_id: UUID,
        year: int,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult[BulkRunResult]:
        """Carry unused days from ``year`` into ``year + 1``, capped per type."""
        def _do() -> BulkRunResult:
            employees = self._refs.employees_in_scope(tenant_id)
            return BulkRunner(self._session, "leave_roll_over").run(
                employees,
                lambda e: str(e.employee_id),
                lambda e: self._roll_over_employee(e, year, actor_id),
                cancel_token,
            )

        return run_command(
            self._session, "roll_over_leave_year", _do,
            tenant_id=tenant_id, actor_id=actor_id, year=year,
        )

    def _roll_over_employee(
        self, employee: Employee, year: int, actor_id: UUID,
    ) -> dict[str, str] | None:
        carried: dict[str, str] = {}
        rows = self._session.execute(
            select(LeaveBalanceModel, LeaveTypeModel)
            .join(LeaveTypeModel, LeaveTypeModel.id == LeaveBalanceModel.leave_type_id)
            .where(
                LeaveBalanceModel.employee_id == employee.employee_id,
                LeaveBalanceModel.year == year,
            )
        ).all()
        for balance, type_model in rows:
            days = carry_forward_days(balance.available, type_model.to_dto())
            following = self._balance(employee, type_model, year + 1, actor_id)
            following.carried_forward = days
            following.updated_by_id = actor_id
            carried[type_model.code] = str(days)
        self._session.flush()
        return carried or None

    # =========================================================================
    # Queries
    # =========================================================================

    def entitlement(self, employee_id: UUID, as_of: date) -> list[LeaveEntitlement]:
        """Accrued position of every leave type the employee is eligible for."""
        employee = self._refs.employee(employee_id)
        results = []
        for type_model in self._active_types(employee.tenant_id):
            leave_type = type_model.to_dto()
            if eligibility_problem(employee, leave_type, as_of) is not None:
                continue
            results.append(self._resolve(employee, type_model, as_of))
        return results

    def entitlement_for(
        self, employee_id: UUID, leave_type_code: str, as_of: date,
    ) -> LeaveEntitlement:
        employee = self._refs.employee(employee_id)
        return self._resolve(employee, self._leave_type(employee.tenant_id, leave_type_code), as_of)

    def leave_types(self, tenant_id: UUID) -> list[LeaveType]:
        return [m.to_dto() for m in self._active_types(tenant_id)]

    def balance(self, employee_id: UUID, leave_type_code: str, year: int) -> LeaveBalance | None:
        employee = self._refs.employee(employee_id)
        type_model = self._leave_type(employee.tenant_id, leave_type_code)
        model = self._find_balance(employee_id, type_model.id, year)
        return model.to_dto(type_model.code) if model is not None else None

    def requests(self, employee_id: UUID, year: int) -> list[LeaveRequest]:
        rows = self._session.execute(
            select(LeaveRequestModel, LeaveTypeModel.code)
            .join(LeaveTypeModel, LeaveTypeModel.id == LeaveRequestModel.leave_type_id)
            .where(
                LeaveRequestModel.employee_id == employee_id,
                LeaveRequestModel.start_date >= date(year, 1, 1),
                LeaveRequestModel.start_date <= date(year, 12, 31),
            )
            .order_by(LeaveRequestModel.start_date)
        ).all()
        return [request.to_dto(code) for request, code in rows]

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve(
        self, employee: Employee, type_model: LeaveTypeModel, as_of: date,
    ) -> LeaveEntitlement:
        booked = [
            BookedLeave(r.start_date, r.end_date, r.days, LeaveRequestStatus(r.status))
            for r in self._session.execute(
                select(LeaveRequestModel).where(
                    LeaveRequestModel.employee_id == employee.employee_id,
                    LeaveRequestModel.leave_type_id == type_model.id,
                    LeaveRequestModel.start_date >= date(as_of.year, 1, 1),
                    LeaveRequestModel.start_date <= date(as_of.year, 12, 31),
                    LeaveRequestModel.status.in_(_LIVE_STATUSES),
                )
            ).scalars()
        ]
        balance = self._find_balance(employee.employee_id, type_model.id, as_of.year)
        return resolve_entitlement(
            employee,
            type_model.to_dto(),
            as_of,
            booked,
            carried_forward=balance.carried_forward if balance else Decimal("0"),
            manual_adjustment=balance.manual_adjustment if balance else Decimal("0"),
        )

    def _leave_type(self, tenant_id: UUID, code: str) -> LeaveTypeModel:
        model = self._session.execute(
            select(LeaveTypeModel).where(
                LeaveTypeModel.tenant_id == tenant_id,
                LeaveTypeModel.code == code,
            )
        ).scalar_one_or_none()
        if model is None:
            raise RecordNotFoundError("LeaveType", code)
        return model

    def _active_types(self, tenant_id: UUID) -> list[LeaveTypeModel]:
        return list(
            self._session.execute(
                select(LeaveTypeModel)
                .where(
                    LeaveTypeModel.tenant_id == tenant_id,
                    LeaveTypeModel.is_active.is_(True),
                )
                .order_by(LeaveTypeModel.code)
            ).scalars()
        )

    def _find_balance(
        self, employee_id: UUID, leave_type_id: UUID, year: int,
    ) -> LeaveBalanceModel | None:
        return self._session.execute(
            select(LeaveBalanceModel).where(
                LeaveBalanceModel.employee_id == employee_id,
                LeaveBalanceModel.leave_type_id == leave_type_id,
                LeaveBalanceModel.year == year,
            )
        ).scalar_one_or_none()

    def _balance(
        self,
        employee: Employee,
        type_model: LeaveTypeModel,
        year: int,
        actor_id: UUID,
    ) -> LeaveBalanceModel:
        model = self._find_balance(employee.employee_id, type_model.id, year)
        if model is not None:
            return model
        service_from = max(date(year, 1, 1), employee.hire_date)
        annual = annual_entitlement(
            type_model.to_dto(), years_of_service(employee.hire_date, service_from),
        )
        model = LeaveBalanceModel(
            tenant_id=employee.tenant_id,
            employee_id=employee.employee_id,
            leave_type_id=type_model.id,
            year=year,
            entitled_days=prorated_entitlement(annual, employee.hire_date, year),
            carried_forward=Decimal("0"),
            used_days=Decimal("0"),
            pending_days=Decimal("0"),
            manual_adjustment=Decimal("0"),
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()
        logger.info(
            "leave_balance_opened",
            extra={
                "employee_id": str(employee.employee_id),
                "leave_type": type_model.code,
                "year": year,
                "entitled_days": model.entitled_days,
            },
        )
        return model

    def _load(self, request_id: UUID) -> tuple[LeaveRequestModel, Employee, LeaveTypeModel]:
        request = self._session.get(LeaveRequestModel, request_id)
        if request is None:
            raise RecordNotFoundError("LeaveRequest", str(request_id))
        employee = self._refs.employee(request.employee_id)
        type_model = self._session.get(LeaveTypeModel, request.leave_type_id)
        return request, employee, type_model

    def _reject_overlap(self, employee_id: UUID, start: date, end: date, code: str) -> None:
        clash = self._session.execute(
            select(LeaveRequestModel.id).where(
                LeaveRequestModel.employee_id == employee_id,
                LeaveRequestModel.status.in_(_LIVE_STATUSES),
                LeaveRequestModel.start_date <= end,
                LeaveRequestModel.end_date >= start,
            )
        ).first()
        if clash is not None:
            raise LeaveIneligibleError(
                str(employee_id), code, f"overlaps leave request {clash[0]}",
            )

    def _working_days(self, employee: Employee, start: date, end: date) -> Decimal:
        policy = tenant_policy(self._refs.tenant(employee.tenant_id))
        cal = work_calendar(self._session, employee.tenant_id, policy, start, end)
        return Decimal(cal.working_days_between(start, end))

    def _guard_payroll_open(self, employee: Employee, start: date, end: date) -> None:
        for month in range(start.month, end.month + 1):
            guard_payroll_month(self._session, self._locks, employee, start.year, month)

    def _require_approver(self, actor: Actor, employee: Employee, action: str) -> None:
        check = check_approver(actor, employee)
        if not check.permitted:
            raise ApprovalNotPermittedError(str(actor.actor_id), action, check.reason or "")

    def _transition(self, request: LeaveRequestModel, action: str) -> None:
        transition = resolve_transition(LEAVE_REQUEST_WORKFLOW, request.status, action)
        if transition is None:
            raise InvalidTransitionError(LEAVE_REQUEST_WORKFLOW.name, request.status, action)
        request.status = transition.to_state

    def _decide(self, request: LeaveRequestModel, actor_id: UUID) -> None:
        now: datetime = self._clock.now_utc()
        request.decided_by_id = actor_id
        request.decided_at = now
        request.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "leave_request_decided",
            extra={"leave_request_id": str(request.id), "status": request.status},
        )
