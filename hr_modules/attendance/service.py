"""
Attendance Module Service (``hr_modules.attendance.service``).

Responsibility
--------------
Turns clock events into day records, carries each record through its
lifecycle (complete, auto-close, approve, reject), decides overtime and
answers attendance queries.  All arithmetic is delegated to
``hr_engines``; this module reads inputs, applies results and persists.

Architecture position
---------------------
**Modules layer**.  ``AttendanceService`` is the sole public entry point for
attendance.  It composes the pure engines (``shift_reconciler``,
``day_calculator``, ``auto_closure``, ``approval``) with the kernel
``ReviewQueue``, ``LockService`` and ``BulkRunner``.

Invariants enforced
-------------------
* Every command owns its transaction through ``run_command``; bulk commands
  commit per employee through ``BulkRunner``.
* Slots are written in order only; an out-of-order event is rejected with
  ``InvalidSlotOrderError`` and nothing changes.
* A locked record, or any record for an employee whose payroll scope and
  month is finalised or finalising, is refused with ``RunLockedError``.
* Auto-closed records never carry overtime and always carry an open
  review entry.

Failure modes
-------------
* Engine errors -> rejected ``CommandResult``; session rolled back.
* Unexpected exception -> session rolled back, exception re-raised.
* Bulk item failure -> recorded in ``BulkRunResult``; other employees
  continue.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_config.schema import TenantPolicy
from hr_engines.approval import check_approver, initial_ot_status, resolve_transition
from hr_engines.auto_closure import close_day
from hr_engines.day_calculator import (
    DayContext,
    DayTotals,
    attendance_status,
    compute_day,
    overtime_minutes,
)
from hr_engines.shift_reconciler import (
    CLOSED_PATTERNS,
    classify,
    default_next_slot,
    is_legal_next,
)
from hr_engines.working_days import month_bounds
from hr_kernel.domain.actor import Actor
from hr_kernel.domain.attendance import (
    OTStatus,
    RecordStatus,
    ReviewReason,
    SlotName,
)
from hr_kernel.domain.cancellation import CancellationToken
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.leave import LeaveRequestStatus
from hr_kernel.domain.results import BulkRunResult, CommandResult
from hr_kernel.domain.workflow import Workflow
from hr_kernel.exceptions import (
    ApprovalNotPermittedError,
    ClockActionRejectedError,
    DayAlreadyClosedError,
    HREngineError,
    InvalidSlotOrderError,
    InvalidTransitionError,
    RecordNotFoundError,
    RunLockedError,
    ScheduleAbsentError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.selectors.reference_selector import ReferenceSelector
from hr_kernel.services.bulk_runner import BulkRunner
from hr_kernel.services.lock_service import SYSTEM_ACTOR_ID, LockService
from hr_kernel.services.review_queue import ReviewEvent, ReviewQueue, ReviewSink
from hr_modules._command_helpers import (
    guard_payroll_month,
    run_command,
    tenant_policy,
    with_conflict_retry,
)
from hr_modules.attendance.models import (
    AutoClosedDay,
    CompletedDay,
    DayRecord,
    DecidedDay,
    InProgressDay,
    MonthlyAttendance,
    day_state,
)
from hr_modules.attendance.orm import DayRecordModel
from hr_modules.attendance.workflows import DAY_RECORD_WORKFLOW, OVERTIME_WORKFLOW
from hr_modules.leave.orm import LeaveRequestModel

logger = get_logger("modules.attendance.service")

AUTO_CLOSURE_LOCK_KEY = "auto_closure"


class AttendanceService:
    """
    Day records, overtime decisions and the auto-closure sweep.

    Guarantees
    ----------
    * Commands return ``CommandResult``; engine errors never escape.
    * Command values are DTOs built before commit.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT build schedules or holidays; it only reads them.
    * Does NOT pay anything; payroll reads the records this service writes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        review_sink: ReviewSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._refs = ReferenceSelector(session)
        self._reviews = ReviewQueue(session, self._clock, review_sink)
        self._locks = LockService(session, self._clock)

    # =========================================================================
    # Clock events
    # =========================================================================

    def record_clock_event(
        self,
        employee_id: UUID,
        timestamp: datetime,
        actor_id: UUID,
        action: SlotName | None = None,
        gps: dict[str, Any] | None = None,
        photo_ref: str | None = None,
    ) -> CommandResult[DayRecord]:
        """
        Write one clock event into the employee's day record.

        ``timestamp`` is converted to the tenant's zone.  An event before
        the tenant's overnight cutoff attaches to the previous day while that
        day is still IN_PROGRESS, unless it is explicitly a first clock-in.
        With no ``action`` the next slot in order is filled.

        Postconditions:
            - FULL or NO_BREAK moves the record to COMPLETED and flags OT.
            - Review reasons found while reconciling are queued.
        """
        def _do() -> DayRecord:
            employee = self._refs.employee(employee_id)
            policy = tenant_policy(self._refs.tenant(employee.tenant_id))
            local = timestamp.astimezone(ZoneInfo(policy.timezone))
            minute = local.hour * 60 + local.minute
            evidence = {
                k: v for k, v in (("gps", gps), ("photo_ref", photo_ref))
                if v is not None
            }
            model = with_conflict_retry(
                self._session,
                "DayRecord",
                f"{employee_id}:{local.date()}",
                lambda: self._apply_clock_event(
                    employee, policy, local.date(), minute, action, evidence, actor_id,
                ),
            )
            return model.to_dto()

        return run_command(
            self._session,
            "record_clock_event",
            _do,
            employee_id=employee_id,
            actor_id=actor_id,
            action=action.value if action else None,
        )

    def _apply_clock_event(
        self,
        employee: Employee,
        policy: TenantPolicy,
        local_date: date,
        minute: int,
        action: SlotName | None,
        evidence: dict[str, Any],
        actor_id: UUID,
    ) -> DayRecordModel:
        work_date = self._resolve_work_date(employee, local_date, minute, action, policy)
        if work_date < employee.hire_date:
            raise ClockActionRejectedError(
                str(employee.employee_id), work_date, "before hire date",
            )

        self._guard_payroll_scope(employee, work_date)
        model = self._find_record(employee.employee_id, work_date)
        if model is None:
            model = DayRecordModel(
                tenant_id=employee.tenant_id,
                employee_id=employee.employee_id,
                work_date=work_date,
                evidence={},
                record_status=RecordStatus.IN_PROGRESS.value,
                ot_status=OTStatus.NONE.value,
                created_by_id=actor_id,
            )
            self._session.add(model)
        else:
            self._guard_record_unlocked(model)
            match day_state(model.to_dto()):
                case DecidedDay():
                    raise DayAlreadyClosedError(str(model.id), model.record_status)
                case CompletedDay() | AutoClosedDay():
                    raise ClockActionRejectedError(
                        str(employee.employee_id), work_date,
                        f"record is {model.record_status}",
                    )
                case InProgressDay():
                    pass

        pattern = classify(model.slots)
        if action is None:
            slot = default_next_slot(pattern)
            if slot is None:
                raise ClockActionRejectedError(
                    str(employee.employee_id), work_date, "all slots are filled",
                )
        elif is_legal_next(pattern, action):
            slot = action
        else:
            raise InvalidSlotOrderError(
                str(employee.employee_id), work_date, action.value, pattern.value,
            )

        model.apply_slots(model.slots.with_slot(slot, minute))
        if evidence:
            model.evidence = {**(model.evidence or {}), slot.value: evidence}
        model.updated_by_id = actor_id

        totals = self._recompute(model, employee, policy)
        if totals.pattern in CLOSED_PATTERNS:
            self._transition(model, DAY_RECORD_WORKFLOW, "complete")
            model.ot_status = initial_ot_status(model.ot_minutes).value
        self._session.flush()
        self._queue_reviews(model, totals.review_reasons, actor_id)

        logger.info(
            "clock_event_recorded",
            extra={
                "day_record_id": str(model.id),
                "work_date": work_date,
                "slot": slot.value,
                "minute": minute,
                "pattern": totals.pattern.value,
                "record_status": model.record_status,
            },
        )
        return model

    def _resolve_work_date(
        self,
        employee: Employee,
        local_date: date,
        minute: int,
        action: SlotName | None,
        policy: TenantPolicy,
    ) -> date:
        if action == SlotName.CLOCK_IN_1 or minute >= policy.overnight_cutoff_minutes:
            return local_date
        previous = self._find_record(employee.employee_id, local_date - timedelta(days=1))
        if previous is not None and previous.record_status == RecordStatus.IN_PROGRESS.value:
            return previous.work_date
        return local_date

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_day(
        self,
        record_id: UUID,
        actor: Actor,
        override_schedule: bool = False,
    ) -> CommandResult[DayRecord]:
        """Approve a COMPLETED or AUTO_CLOSED record.

        The record's open review must be resolved first, and a scheduled
        shift must exist unless ``override_schedule`` is set.
        """
        def _do() -> DayRecord:
            model, employee = self._load_for_decision(record_id)
            self._require_approver(actor, employee, "approve_day")
            if model.needs_review:
                raise ApprovalNotPermittedError(
                    str(actor.actor_id), "approve_day", "open review must be resolved first",
                )
            if not override_schedule and self._refs.shift(model.employee_id, model.work_date) is None:
                raise ScheduleAbsentError(str(model.employee_id), model.work_date)
            self._transition(model, DAY_RECORD_WORKFLOW, "approve")
            self._decide(model, actor)
            return model.to_dto()

        return run_command(
            self._session, "approve_day", _do,
            actor_id=actor.actor_id, record_id=record_id,
        )

    def reject_day(self, record_id: UUID, actor: Actor, reason: str) -> CommandResult[DayRecord]:
        def _do() -> DayRecord:
            model, employee = self._load_for_decision(record_id)
            self._require_approver(actor, employee, "reject_day")
            if not reason or not reason.strip():
                raise ApprovalNotPermittedError(
                    str(actor.actor_id), "reject_day", "a rejection reason is required",
                )
            self._transition(model, DAY_RECORD_WORKFLOW, "reject")
            model.rejection_reason = reason.strip()
            self._decide(model, actor)
            return model.to_dto()

        return run_command(
            self._session, "reject_day", _do,
            actor_id=actor.actor_id, record_id=record_id,
        )

    def approve_ot(self, record_id: UUID, actor: Actor) -> CommandResult[DayRecord]:
        """Approve a PENDING overtime.  Only approved OT is paid."""
        return self._decide_ot(record_id, actor, "approve", None)

    def reject_ot(
        self, record_id: UUID, actor: Actor, reason: str | None = None,
    ) -> CommandResult[DayRecord]:
        return self._decide_ot(record_id, actor, "reject", reason)

    def _decide_ot(
        self, record_id: UUID, actor: Actor, action: str, reason: str | None,
    ) -> CommandResult[DayRecord]:
        def _do() -> DayRecord:
            model = self._get_record(record_id)
            employee = self._refs.employee(model.employee_id)
            self._guard_record_unlocked(model)
            self._guard_payroll_scope(employee, model.work_date)
            if model.record_status == RecordStatus.REJECTED.value:
                raise DayAlreadyClosedError(str(model.id), model.record_status)
            self._require_approver(actor, employee, f"{action}_ot")
            transition = resolve_transition(OVERTIME_WORKFLOW, model.ot_status, action)
            if transition is None:
                raise InvalidTransitionError(OVERTIME_WORKFLOW.name, model.ot_status, action)
            model.ot_status = transition.to_state
            model.ot_decided_by_id = actor.actor_id
            model.ot_rejection_reason = reason
            model.updated_by_id = actor.actor_id
            self._session.flush()
            logger.info(
                f"overtime_{action}d",
                extra={
                    "day_record_id": str(model.id),
                    "ot_minutes": model.ot_minutes,
                    "ot_status": model.ot_status,
                },
            )
            return model.to_dto()

        return run_command(
            self._session, f"{action}_ot", _do,
            actor_id=actor.actor_id, record_id=record_id,
        )

    def mark_reviewed(
        self,
        record_id: UUID,
        actor: Actor,
        adjusted_work_minutes: int | None = None,
        note: str | None = None,
    ) -> CommandResult[DayRecord]:
        """Resolve a record's open review entries, optionally correcting its
        work minutes.  Corrected minutes re-derive overtime and attendance."""
        def _do() -> DayRecord:
            model = self._get_record(record_id)
            employee = self._refs.employee(model.employee_id)
            self._guard_record_unlocked(model)
            self._guard_payroll_scope(employee, model.work_date)
            if model.record_status in (RecordStatus.APPROVED.value, RecordStatus.REJECTED.value):
                raise DayAlreadyClosedError(str(model.id), model.record_status)
            self._require_approver(actor, employee, "mark_reviewed")

            if adjusted_work_minutes is not None:
                if adjusted_work_minutes < 0:
                    raise ApprovalNotPermittedError(
                        str(actor.actor_id), "mark_reviewed", "work minutes cannot be negative",
                    )
                policy = tenant_policy(self._refs.tenant(employee.tenant_id))
                self._adjust_work_minutes(model, employee, policy, adjusted_work_minutes)

            resolved = self._reviews.resolve_for_record(model.id, actor.actor_id, note)
            model.needs_review = False
            model.updated_by_id = actor.actor_id
            self._session.flush()
            logger.info(
                "day_record_reviewed",
                extra={
                    "day_record_id": str(model.id),
                    "entries_resolved": resolved,
                    "adjusted_work_minutes": adjusted_work_minutes,
                },
            )
            return model.to_dto()

        return run_command(
            self._session, "mark_reviewed", _do,
            actor_id=actor.actor_id, record_id=record_id,
        )

    def _adjust_work_minutes(
        self,
        model: DayRecordModel,
        employee: Employee,
        policy: TenantPolicy,
        work_minutes: int,
    ) -> None:
        context = self._day_context(employee, model.work_date)
        shift = self._refs.shift(model.employee_id, model.work_date)
        raw_ot, ot = overtime_minutes(work_minutes, policy, employee.is_part_time)
        model.total_work_minutes = work_minutes
        model.raw_ot_minutes = raw_ot
        model.ot_minutes = ot
        model.attendance_status = attendance_status(work_minutes, shift, context).value
        if model.record_status != RecordStatus.IN_PROGRESS.value:
            self._sync_ot_status(model)

    # =========================================================================
    # Bulk operations
    # =========================================================================

    def run_auto_closure(
        self,
        tenant_id: UUID,
        as_of: datetime | None = None,
        cancel_token: CancellationToken | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> CommandResult[BulkRunResult]:
        """
        Close every IN_PROGRESS record dated before today, tenant-local.

        One sweep per tenant at a time (``auto_closure`` lock).  Employees
        are committed one by one; cancellation stops between employees.
        Re-running the sweep over the same state closes nothing new.
        """
        holder = f"auto_closure:{actor_id}"
        try:
            tenant = self._refs.tenant(tenant_id)
            policy = tenant_policy(tenant)
            self._locks.acquire(tenant_id, AUTO_CLOSURE_LOCK_KEY, holder)
            self._session.commit()
        except HREngineError as exc:
            self._session.rollback()
            logger.warning(
                "auto_closure_rejected",
                extra={"tenant_id": str(tenant_id), "error_code": exc.code},
            )
            return CommandResult.rejected(exc)

        try:
            now_local = (as_of or self._clock.now_utc()).astimezone(ZoneInfo(policy.timezone))
            employee_ids = self._session.execute(
                select(DayRecordModel.employee_id)
                .where(
                    DayRecordModel.tenant_id == tenant_id,
                    DayRecordModel.record_status == RecordStatus.IN_PROGRESS.value,
                    DayRecordModel.work_date < now_local.date(),
                )
                .distinct()
            ).scalars().all()

            result = BulkRunner(self._session, "auto_closure").run(
                sorted(employee_ids, key=str),
                str,
                lambda eid: self._close_employee_days(eid, policy, now_local, actor_id),
                cancel_token,
            )
            self._refs.tenant(tenant_id).last_auto_closure_on = now_local.date()
        finally:
            self._locks.release(tenant_id, AUTO_CLOSURE_LOCK_KEY)
            self._session.commit()

        return CommandResult.ok(result)

    def _close_employee_days(
        self,
        employee_id: UUID,
        policy: TenantPolicy,
        now_local: datetime,
        actor_id: UUID,
    ) -> dict[str, Any] | None:
        employee = self._refs.employee(employee_id)
        records = self._session.execute(
            select(DayRecordModel)
            .where(
                DayRecordModel.employee_id == employee_id,
                DayRecordModel.record_status == RecordStatus.IN_PROGRESS.value,
                DayRecordModel.work_date < now_local.date(),
            )
            .order_by(DayRecordModel.work_date)
        ).scalars().all()

        closed: list[str] = []
        for model in records:
            shift = self._refs.shift(employee_id, model.work_date)
            self._guard_record_unlocked(model)
            self._guard_payroll_scope(employee, model.work_date)

            outcome = close_day(
                model.slots, shift, policy, self._day_context(employee, model.work_date),
            )
            model.apply_slots(outcome.slots)
            self._apply_totals(model, outcome.totals)
            self._transition(model, DAY_RECORD_WORKFLOW, "auto_close")
            model.auto_closed = True
            model.needs_review = True
            model.ot_status = initial_ot_status(outcome.totals.ot_minutes).value
            model.updated_by_id = actor_id
            self._session.flush()
            self._queue_reviews(
                model,
                outcome.totals.review_reasons,
                actor_id,
                closing_minute=outcome.closing_minute,
            )
            closed.append(model.work_date.isoformat())

        if not closed:
            return None
        logger.info(
            "day_records_auto_closed",
            extra={"employee_id": str(employee_id), "work_dates": closed},
        )
        return {"closed": closed}

    def recalculate_period(
        self,
        tenant_id: UUID,
        start: date,
        end: date,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        employee_ids: list[UUID] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult[BulkRunResult]:
        """
        Re-derive totals for open records in ``[start, end]`` after a schedule
        or policy change.

        APPROVED, REJECTED and locked records are never touched.  AUTO_CLOSED
        records keep their cap; ones already reviewed are left alone.
        """
        def _do() -> BulkRunResult:
            policy = tenant_policy(self._refs.tenant(tenant_id))
            stmt = (
                select(DayRecordModel.employee_id)
                .where(
                    DayRecordModel.tenant_id == tenant_id,
                    DayRecordModel.work_date >= start,
                    DayRecordModel.work_date <= end,
                )
                .distinct()
            )
            if employee_ids is not None:
                stmt = stmt.where(DayRecordModel.employee_id.in_(employee_ids))
            targets = sorted(self._session.execute(stmt).scalars().all(), key=str)
            return BulkRunner(self._session, "recalculate_period").run(
                targets,
                str,
                lambda eid: self._recalculate_employee(eid, policy, start, end, actor_id),
                cancel_token,
            )

        return run_command(
            self._session, "recalculate_period", _do,
            tenant_id=tenant_id, actor_id=actor_id, start=start, end=end,
        )

    def _recalculate_employee(
        self,
        employee_id: UUID,
        policy: TenantPolicy,
        start: date,
        end: date,
        actor_id: UUID,
    ) -> dict[str, Any] | None:
        employee = self._refs.employee(employee_id)
        records = self._session.execute(
            select(DayRecordModel)
            .where(
                DayRecordModel.employee_id == employee_id,
                DayRecordModel.work_date >= start,
                DayRecordModel.work_date <= end,
                DayRecordModel.is_locked.is_(False),
                DayRecordModel.record_status.in_((
                    RecordStatus.IN_PROGRESS.value,
                    RecordStatus.COMPLETED.value,
                    RecordStatus.AUTO_CLOSED.value,
                )),
            )
            .order_by(DayRecordModel.work_date)
        ).scalars().all()

        changed = 0
        for model in records:
            if model.record_status == RecordStatus.AUTO_CLOSED.value and not model.needs_review:
                continue
            self._guard_payroll_scope(employee, model.work_date)
            before = (model.total_work_minutes, model.ot_minutes, model.attendance_status)
            if model.record_status == RecordStatus.AUTO_CLOSED.value:
                shift = self._refs.shift(employee_id, model.work_date)
                outcome = close_day(
                    model.slots, shift, policy, self._day_context(employee, model.work_date),
                )
                self._apply_totals(model, outcome.totals)
            else:
                self._recompute(model, employee, policy)
                if model.record_status == RecordStatus.COMPLETED.value:
                    self._sync_ot_status(model)
            if before != (model.total_work_minutes, model.ot_minutes, model.attendance_status):
                model.updated_by_id = actor_id
                changed += 1

        self._session.flush()
        if changed == 0:
            return None
        return {"recalculated": changed}

    # =========================================================================
    # Queries
    # =========================================================================

    def get_day_record(self, record_id: UUID) -> DayRecord | None:
        model = self._session.get(DayRecordModel, record_id)
        return model.to_dto() if model is not None else None

    def day_record_for(self, employee_id: UUID, work_date: date) -> DayRecord | None:
        model = self._find_record(employee_id, work_date)
        return model.to_dto() if model is not None else None

    def monthly_attendance(self, employee_id: UUID, year: int, month: int) -> MonthlyAttendance:
        first, last = month_bounds(year, month)
        days = tuple(
            m.to_dto() for m in self._session.execute(
                select(DayRecordModel)
                .where(
                    DayRecordModel.employee_id == employee_id,
                    DayRecordModel.work_date >= first,
                    DayRecordModel.work_date <= last,
                )
                .order_by(DayRecordModel.work_date)
            ).scalars()
        )
        counted = [d for d in days if d.record_status != RecordStatus.REJECTED]
        return MonthlyAttendance(
            employee_id=employee_id,
            year=year,
            month=month,
            days=days,
            work_minutes=sum(d.total_work_minutes for d in counted),
            ot_minutes=sum(d.ot_minutes for d in counted),
            approved_ot_minutes=sum(
                d.ot_minutes for d in counted if d.ot_status == OTStatus.APPROVED
            ),
            late_minutes=sum(d.late_minutes for d in counted),
            status_counts=dict(Counter(d.attendance_status for d in counted)),
        )

    def pending_ot(self, tenant_id: UUID, grouping_id: UUID | None = None) -> list[DayRecord]:
        records = [
            m.to_dto() for m in self._session.execute(
                select(DayRecordModel)
                .where(
                    DayRecordModel.tenant_id == tenant_id,
                    DayRecordModel.ot_status == OTStatus.PENDING.value,
                )
                .order_by(DayRecordModel.work_date)
            ).scalars()
        ]
        if grouping_id is None:
            return records
        return [
            r for r in records
            if self._refs.employee(r.employee_id).grouping_id == grouping_id
        ]

    def open_reviews(self, tenant_id: UUID) -> list[ReviewEvent]:
        return [
            ReviewEvent(
                tenant_id=e.tenant_id,
                employee_id=e.employee_id,
                work_date=e.work_date,
                reason=ReviewReason(e.reason),
                day_record_id=e.day_record_id,
                detail=dict(e.detail or {}),
            )
            for e in self._reviews.open_entries(tenant_id)
        ]

    # =========================================================================
    # Internals
    # =========================================================================

    def _find_record(self, employee_id: UUID, work_date: date) -> DayRecordModel | None:
        return self._session.execute(
            select(DayRecordModel).where(
                DayRecordModel.employee_id == employee_id,
                DayRecordModel.work_date == work_date,
            )
        ).scalar_one_or_none()

    def _get_record(self, record_id: UUID) -> DayRecordModel:
        model = self._session.get(DayRecordModel, record_id)
        if model is None:
            raise RecordNotFoundError("DayRecord", str(record_id))
        return model

    def _load_for_decision(self, record_id: UUID) -> tuple[DayRecordModel, Employee]:
        model = self._get_record(record_id)
        employee = self._refs.employee(model.employee_id)
        self._guard_record_unlocked(model)
        self._guard_payroll_scope(employee, model.work_date)
        if isinstance(day_state(model.to_dto()), DecidedDay):
            raise DayAlreadyClosedError(str(model.id), model.record_status)
        return model, employee

    def _guard_record_unlocked(self, model: DayRecordModel) -> None:
        if model.is_locked:
            raise RunLockedError(
                f"run:{model.payroll_run_id}",
                f"day record {model.id} belongs to a finalised payroll run",
            )

    def _guard_payroll_scope(self, employee: Employee, work_date: date) -> None:
        guard_payroll_month(self._session, self._locks, employee, work_date.year, work_date.month)

    def _require_approver(self, actor: Actor, employee: Employee, action: str) -> None:
        check = check_approver(actor, employee)
        if not check.permitted:
            raise ApprovalNotPermittedError(str(actor.actor_id), action, check.reason or "")

    def _transition(self, model: DayRecordModel, workflow: Workflow, action: str) -> None:
        transition = resolve_transition(workflow, model.record_status, action)
        if transition is None:
            raise InvalidTransitionError(workflow.name, model.record_status, action)
        model.record_status = transition.to_state

    def _decide(self, model: DayRecordModel, actor: Actor) -> None:
        model.decided_by_id = actor.actor_id
        model.decided_at = self._clock.now_utc()
        model.updated_by_id = actor.actor_id
        self._session.flush()
        logger.info(
            "day_record_decided",
            extra={"day_record_id": str(model.id), "record_status": model.record_status},
        )

    def _day_context(self, employee: Employee, work_date: date) -> DayContext:
        on_leave = self._session.execute(
            select(LeaveRequestModel.id)
            .where(
                LeaveRequestModel.employee_id == employee.employee_id,
                LeaveRequestModel.status == LeaveRequestStatus.APPROVED.value,
                LeaveRequestModel.start_date <= work_date,
                LeaveRequestModel.end_date >= work_date,
            )
            .limit(1)
        ).first() is not None
        return DayContext(
            is_public_holiday=self._refs.holiday_on(employee.tenant_id, work_date) is not None,
            on_approved_leave=on_leave,
            is_part_time=employee.is_part_time,
        )

    def _recompute(
        self, model: DayRecordModel, employee: Employee, policy: TenantPolicy,
    ) -> DayTotals:
        shift = self._refs.shift(employee.employee_id, model.work_date)
        totals = compute_day(
            model.slots, shift, policy, self._day_context(employee, model.work_date),
        )
        self._apply_totals(model, totals)
        model.needs_review = model.needs_review or totals.needs_review
        model.wrong_shift = ReviewReason.WRONG_SHIFT in totals.review_reasons
        return totals

    @staticmethod
    def _apply_totals(model: DayRecordModel, totals: DayTotals) -> None:
        model.shift_pattern = totals.pattern.value
        model.total_work_minutes = totals.work_minutes
        model.break_minutes = totals.break_minutes
        model.raw_ot_minutes = totals.raw_ot_minutes
        model.ot_minutes = totals.ot_minutes
        model.late_minutes = totals.late_minutes
        model.attendance_status = totals.attendance_status.value

    @staticmethod
    def _sync_ot_status(model: DayRecordModel) -> None:
        """Keep an undecided OT status in step with the OT minutes."""
        if model.ot_status not in (OTStatus.NONE.value, OTStatus.PENDING.value):
            return
        model.ot_status = initial_ot_status(model.ot_minutes).value

    def _queue_reviews(
        self,
        model: DayRecordModel,
        reasons: tuple[ReviewReason, ...],
        actor_id: UUID,
        **detail: Any,
    ) -> None:
        for reason in reasons:
            self._reviews.enqueue(
                ReviewEvent(
                    tenant_id=model.tenant_id,
                    employee_id=model.employee_id,
                    work_date=model.work_date,
                    reason=reason,
                    day_record_id=model.id,
                    detail=detail,
                ),
                actor_id,
            )
