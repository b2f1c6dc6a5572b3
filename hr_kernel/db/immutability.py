"""
ORM-level immutability enforcement.

Payroll finalisation freezes what it paid for.  These listeners fire before
UPDATE/DELETE reaches the database and raise ``ImmutabilityViolationError``
when frozen rows are touched:

Entity            | When immutable
------------------|---------------------------------------------
DayRecord         | after ``is_locked`` was set by FinaliseRun
PayrollItem       | after ``is_frozen`` was set by FinaliseRun
PayrollRun        | after FINALISED, except FINALISED -> PAID
Settlement        | after PROCESSED

The check is "was frozen before this flush", read from attribute history,
so the flush that sets the flag itself goes through.  ``updated_at`` and
``updated_by_id`` are audit metadata and may always change.

Services check the same conditions first and report ``RunLocked``; these
listeners catch any write path that bypasses them.

Model classes are imported inside the functions: modules import the kernel,
not the other way round.

    from hr_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from hr_kernel.db.base import AUDIT_FIELDS
from hr_kernel.exceptions import ImmutabilityViolationError
from hr_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.attrs
        if attr.history.has_changes()
    }


def _was_true(target, field: str) -> bool:
    history = get_history(target, field)
    if history.deleted:
        return bool(history.deleted[0])
    if history.added:
        return False
    return bool(getattr(target, field))


def _previous_value(target, field: str):
    history = get_history(target, field)
    if history.deleted:
        return history.deleted[0]
    if history.added:
        return None
    return getattr(target, field)


def _reject(entity_type: str, target, reason: str) -> None:
    logger.error(
        "immutability_violation",
        extra={"entity_type": entity_type, "entity_id": str(target.id), "reason": reason},
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type, entity_id=str(target.id), reason=reason,
    )


# Day records


def _check_day_record_update(mapper, connection, target):
    if not _was_true(target, "is_locked"):
        return
    changed = _changed_fields(target) - AUDIT_FIELDS
    if changed:
        _reject("DayRecord", target, f"locked by a finalised payroll run ({sorted(changed)})")


def _check_day_record_delete(mapper, connection, target):
    if target.is_locked:
        _reject("DayRecord", target, "locked by a finalised payroll run")


# Payroll items


def _check_payroll_item_update(mapper, connection, target):
    if not _was_true(target, "is_frozen"):
        return
    changed = _changed_fields(target) - AUDIT_FIELDS
    if changed:
        _reject("PayrollItem", target, f"frozen by run finalisation ({sorted(changed)})")


def _check_payroll_item_delete(mapper, connection, target):
    if target.is_frozen:
        _reject("PayrollItem", target, "frozen by run finalisation")


# Payroll runs

_SEALED_RUN_STATUSES = ("FINALISED", "PAID")
_RUN_PAYMENT_FIELDS = frozenset({"status", "paid_at", "paid_by_id"})


def _check_payroll_run_update(mapper, connection, target):
    previous = _previous_value(target, "status")
    if previous not in _SEALED_RUN_STATUSES:
        return
    changed = _changed_fields(target) - AUDIT_FIELDS
    if not changed:
        return
    if previous == "FINALISED" and target.status == "PAID" and changed <= _RUN_PAYMENT_FIELDS:
        return
    _reject("PayrollRun", target, f"run is {previous} ({sorted(changed)})")


def _check_payroll_run_delete(mapper, connection, target):
    if target.status in _SEALED_RUN_STATUSES:
        _reject("PayrollRun", target, f"run is {target.status}")


# Settlements


def _check_settlement_update(mapper, connection, target):
    if _previous_value(target, "status") != "PROCESSED":
        return
    changed = _changed_fields(target) - AUDIT_FIELDS
    if changed:
        _reject("Settlement", target, f"settlement is processed ({sorted(changed)})")


def _check_settlement_delete(mapper, connection, target):
    if target.status == "PROCESSED":
        _reject("Settlement", target, "settlement is processed")


def _listeners():
    from hr_modules.attendance.orm import DayRecordModel
    from hr_modules.payroll.orm import PayrollItemModel, PayrollRunModel
    from hr_modules.settlement.orm import SettlementModel

    return (
        (DayRecordModel, "before_update", _check_day_record_update),
        (DayRecordModel, "before_delete", _check_day_record_delete),
        (PayrollItemModel, "before_update", _check_payroll_item_update),
        (PayrollItemModel, "before_delete", _check_payroll_item_delete),
        (PayrollRunModel, "before_update", _check_payroll_run_update),
        (PayrollRunModel, "before_delete", _check_payroll_run_delete),
        (SettlementModel, "before_update", _check_settlement_update),
        (SettlementModel, "before_delete", _check_settlement_delete),
    )


def register_immutability_listeners() -> None:
    """Install every listener.  Safe to call more than once."""
    for model, event_name, fn in _listeners():
        if not event.contains(model, event_name, fn):
            event.listen(model, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  Tests only."""
    for model, event_name, fn in _listeners():
        _safe_remove_listener(model, event_name, fn)
