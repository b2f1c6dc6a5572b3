"""
Typed exception hierarchy for the HR engine.

Every error the engine can report has its own class, a machine-readable
``code`` class attribute, and structured attributes describing the failing
entity.  Services catch ``HREngineError``, roll back, and surface the code in
a ``CommandResult``; nothing below crosses the command interface as a raised
exception.

    HREngineError (base)
    |
    +-- AttendanceError
    |   +-- InvalidSlotOrderError
    |   +-- ClockActionRejectedError
    |   +-- DayAlreadyClosedError
    |   +-- ScheduleAbsentError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- ApprovalNotPermittedError
    |
    +-- LeaveError
    |   +-- LeaveInsufficientError
    |   +-- LeaveIneligibleError
    |
    +-- ConfigurationError
    |   +-- PolicyMissingError
    |   +-- RateTableMissingError
    |
    +-- PayrollError
    |   +-- RunLockedError
    |
    +-- SettlementError
    |   +-- NoticePolicyViolationError
    |   +-- SettlementAlreadyProcessedError
    |
    +-- RecordNotFoundError
    |
    +-- ConcurrencyError
    |   +-- LockHeldError
    |   +-- ConcurrentUpdateError
    |   +-- OperationCancelledError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Codes are static per class, so ``RunLockedError.code`` can be referenced
without an instance.
"""

from datetime import date
from decimal import Decimal


class HREngineError(Exception):
    """Base exception for all HR engine errors."""

    code: str = "HR_ENGINE_ERROR"


# Attendance


class AttendanceError(HREngineError):
    """Base exception for day-record and clock-event errors."""

    code: str = "ATTENDANCE_ERROR"


class InvalidSlotOrderError(AttendanceError):
    """A clock event would break the in_1 -> out_1 -> in_2 -> out_2 order."""

    code: str = "INVALID_SLOT_ORDER"

    def __init__(self, employee_id: str, work_date: date, slot: str, pattern: str):
        self.employee_id = employee_id
        self.work_date = work_date
        self.slot = slot
        self.pattern = pattern
        super().__init__(
            f"Slot {slot} is not valid after pattern {pattern} "
            f"for employee {employee_id} on {work_date}"
        )


class ClockActionRejectedError(AttendanceError):
    """A clock event arrived for a day that already has all its slots."""

    code: str = "CLOCK_ACTION_REJECTED"

    def __init__(self, employee_id: str, work_date: date, reason: str):
        self.employee_id = employee_id
        self.work_date = work_date
        self.reason = reason
        super().__init__(
            f"Clock action rejected for employee {employee_id} on {work_date}: {reason}"
        )


class DayAlreadyClosedError(AttendanceError):
    """The day record is APPROVED/REJECTED or already belongs to a finalised run."""

    code: str = "DAY_ALREADY_CLOSED"

    def __init__(self, record_id: str, record_status: str):
        self.record_id = record_id
        self.record_status = record_status
        super().__init__(f"Day record {record_id} is closed ({record_status})")


class ScheduleAbsentError(AttendanceError):
    """An operation needs a scheduled shift and none exists."""

    code: str = "SCHEDULE_ABSENT"

    def __init__(self, employee_id: str, work_date: date):
        self.employee_id = employee_id
        self.work_date = work_date
        super().__init__(
            f"No scheduled shift for employee {employee_id} on {work_date}"
        )


# Workflow


class WorkflowError(HREngineError):
    """Base exception for state machine errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """No transition exists for (state, action)."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, from_state: str, action: str):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Workflow {workflow}: no transition from {from_state} on {action}"
        )


class ApprovalNotPermittedError(WorkflowError):
    """The actor may not perform this approval."""

    code: str = "APPROVAL_NOT_PERMITTED"

    def __init__(self, actor_id: str, action: str, reason: str):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {action}: {reason}")


# Leave


class LeaveError(HREngineError):
    """Base exception for leave errors."""

    code: str = "LEAVE_ERROR"


class LeaveInsufficientError(LeaveError):
    """Approving would exceed the balance and the type disallows advance."""

    code: str = "LEAVE_INSUFFICIENT"

    def __init__(
        self,
        employee_id: str,
        leave_type: str,
        requested_days: Decimal,
        available_days: Decimal,
    ):
        self.employee_id = employee_id
        self.leave_type = leave_type
        self.requested_days = requested_days
        self.available_days = available_days
        super().__init__(
            f"Employee {employee_id} requested {requested_days} day(s) of "
            f"{leave_type} but only {available_days} available"
        )


class LeaveIneligibleError(LeaveError):
    """The employee is not eligible for the leave type."""

    code: str = "LEAVE_INELIGIBLE"

    def __init__(self, employee_id: str, leave_type: str, reason: str):
        self.employee_id = employee_id
        self.leave_type = leave_type
        self.reason = reason
        super().__init__(
            f"Employee {employee_id} is not eligible for {leave_type}: {reason}"
        )


# Configuration


class ConfigurationError(HREngineError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class PolicyMissingError(ConfigurationError):
    """A required tenant setting is absent."""

    code: str = "POLICY_MISSING"

    def __init__(self, tenant_id: str, setting: str):
        self.tenant_id = tenant_id
        self.setting = setting
        super().__init__(f"Tenant {tenant_id} is missing required setting {setting}")


class RateTableMissingError(ConfigurationError):
    """No statutory table is loaded for the required period."""

    code: str = "RATE_TABLE_MISSING"

    def __init__(self, period: date):
        self.period = period
        super().__init__(f"No statutory rate table covers {period}")


# Payroll


class PayrollError(HREngineError):
    """Base exception for payroll run errors."""

    code: str = "PAYROLL_ERROR"


class RunLockedError(PayrollError):
    """A finalised (or finalising) run was targeted for mutation."""

    code: str = "RUN_LOCKED"

    def __init__(self, scope: str, reason: str):
        self.scope = scope
        self.reason = reason
        super().__init__(f"Payroll scope {scope} is locked: {reason}")


# Settlement


class SettlementError(HREngineError):
    """Base exception for settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class NoticePolicyViolationError(SettlementError):
    """Settlement figures disagree with the resignation's waiver state."""

    code: str = "NOTICE_POLICY_VIOLATION"

    def __init__(self, settlement_id: str, reason: str):
        self.settlement_id = settlement_id
        self.reason = reason
        super().__init__(f"Settlement {settlement_id}: {reason}")


class SettlementAlreadyProcessedError(SettlementError):
    """The settlement is PROCESSED and its inputs are frozen."""

    code: str = "SETTLEMENT_ALREADY_PROCESSED"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"Settlement {settlement_id} is already processed")


# Lookup


class RecordNotFoundError(HREngineError):
    """A referenced entity does not exist."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity: str, record_id: str):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} not found: {record_id}")


# Concurrency


class ConcurrencyError(HREngineError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class LockHeldError(ConcurrencyError):
    """An advisory lock is held by another operation."""

    code: str = "LOCK_HELD"

    def __init__(self, lock_key: str, holder: str | None = None):
        self.lock_key = lock_key
        self.holder = holder
        super().__init__(f"Lock {lock_key} is held by {holder or 'another operation'}")


class ConcurrentUpdateError(ConcurrencyError):
    """Retries were exhausted while racing another writer."""

    code: str = "CONCURRENT_UPDATE"

    def __init__(self, entity: str, key: str, attempts: int):
        self.entity = entity
        self.key = key
        self.attempts = attempts
        super().__init__(
            f"{entity} {key}: gave up after {attempts} conflicting attempt(s)"
        )


class OperationCancelledError(ConcurrencyError):
    """A bulk operation was cancelled between employees."""

    code: str = "OPERATION_CANCELLED"

    def __init__(self, operation: str, processed: int):
        self.operation = operation
        self.processed = processed
        super().__init__(f"{operation} cancelled after {processed} employee(s)")


# Immutability


class ImmutabilityError(HREngineError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify a frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
