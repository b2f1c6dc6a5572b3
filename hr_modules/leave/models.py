"""
Leave Domain Models (``hr_modules.leave.models``).

Frozen DTOs for balances and requests.  ``LeaveType`` and
``LeaveRequestStatus`` live in ``hr_kernel.domain.leave`` because the pure
entitlement resolver consumes them too.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from hr_kernel.domain.leave import LeaveRequestStatus


@dataclass(frozen=True)
class LeaveBalance:
    """
    Booked position for one (employee, type, year).

    ``available = entitled + carried_forward + manual_adjustment - used - pending``.
    Negative only when the type allows advance leave.
    """

    balance_id: UUID
    employee_id: UUID
    leave_type_code: str
    year: int
    entitled_days: Decimal
    carried_forward: Decimal
    used_days: Decimal
    pending_days: Decimal
    manual_adjustment: Decimal

    @property
    def available(self) -> Decimal:
        return (
            self.entitled_days
            + self.carried_forward
            + self.manual_adjustment
            - self.used_days
            - self.pending_days
        )


@dataclass(frozen=True)
class LeaveRequest:
    request_id: UUID
    employee_id: UUID
    leave_type_code: str
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveRequestStatus
    reason: str | None = None
    rejection_reason: str | None = None
