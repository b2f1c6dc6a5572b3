"""
Shared helpers for module services.

``run_command`` owns the transaction boundary of a single command: commit
on success, roll back on any error.  Engine errors come back as a rejected
``CommandResult``; anything else is re-raised after the rollback.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hr_config.schema import TenantPolicy
from hr_engines.working_days import WorkCalendar
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.results import CommandResult
from hr_kernel.exceptions import ConcurrentUpdateError, HREngineError, RunLockedError
from hr_kernel.logging_config import LogContext, get_logger
from hr_kernel.models.tenant import TenantModel
from hr_kernel.selectors.reference_selector import ReferenceSelector
from hr_kernel.services.lock_service import LockService, payroll_lock_key
from hr_modules.payroll.models import PayrollRunStatus, scopes_for
from hr_modules.payroll.orm import PayrollRunModel

logger = get_logger("modules.commands")

T = TypeVar("T")

DEFAULT_RETRY_ATTEMPTS = 3

SEALED_RUN_STATUSES = (PayrollRunStatus.FINALISED.value, PayrollRunStatus.PAID.value)


def run_command(
    session: Session,
    operation: str,
    fn: Callable[[], T],
    **log_fields: Any,
) -> CommandResult[T]:
    """Run ``fn`` as one transaction and wrap the outcome."""
    extra = {k: str(v) for k, v in log_fields.items() if v is not None}
    with LogContext.bind(operation=operation, **{
        k: v for k, v in log_fields.items()
        if k in ("tenant_id", "employee_id", "actor_id", "run_id")
    }):
        logger.info(f"{operation}_started", extra=extra)
        try:
            value = fn()
            session.commit()
        except HREngineError as exc:
            session.rollback()
            logger.warning(
                f"{operation}_rejected",
                extra={**extra, "error_code": exc.code, "reason": str(exc)},
            )
            return CommandResult.rejected(exc)
        except Exception:
            session.rollback()
            logger.error(f"{operation}_failed", extra=extra, exc_info=True)
            raise
        logger.info(f"{operation}_completed", extra=extra)
        return CommandResult.ok(value)


def with_conflict_retry(
    session: Session,
    entity: str,
    key: str,
    fn: Callable[[], T],
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
) -> T:
    """Run ``fn`` inside a savepoint, re-running it after a unique-constraint race.

    ``fn`` must re-read whatever it depends on; each retry sees the row the
    competing writer committed.
    """
    for attempt in range(1, attempts + 1):
        savepoint = session.begin_nested()
        try:
            result = fn()
            session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "write_conflict_retry",
                extra={"entity": entity, "key": key, "attempt": attempt},
            )
            continue
        savepoint.commit()
        return result
    raise ConcurrentUpdateError(entity, key, attempts)


def tenant_policy(tenant: TenantModel) -> TenantPolicy:
    return TenantPolicy.from_dict(tenant.settings or {}, tenant.id, tenant.timezone)


def work_calendar(
    session: Session,
    tenant_id: UUID,
    policy: TenantPolicy,
    start: date,
    end: date,
) -> WorkCalendar:
    holidays = ReferenceSelector(session).holidays_between(tenant_id, start, end)
    return WorkCalendar(rest_days=policy.rest_days, holidays=frozenset(holidays))


def guard_payroll_month(
    session: Session,
    locks: LockService,
    employee: Employee,
    year: int,
    month: int,
) -> None:
    """Refuse writes while any scope covering the employee is finalised or
    finalising for the month."""
    keys = [s.key for s in scopes_for(employee)]
    closed = session.execute(
        select(PayrollRunModel.scope_key).where(
            PayrollRunModel.tenant_id == employee.tenant_id,
            PayrollRunModel.year == year,
            PayrollRunModel.month == month,
            PayrollRunModel.scope_key.in_(keys),
            PayrollRunModel.status.in_(SEALED_RUN_STATUSES),
        )
    ).first()
    if closed is not None:
        raise RunLockedError(payroll_lock_key(year, month, closed[0]), "payroll run is finalised")
    for key in keys:
        lock_key = payroll_lock_key(year, month, key)
        if locks.is_held(employee.tenant_id, lock_key):
            raise RunLockedError(lock_key, "payroll run is finalising")
