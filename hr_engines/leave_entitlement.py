"""
Leave entitlement resolver (``hr_engines.leave_entitlement``).

Responsibility
--------------
For a reference date D, an employee and a leave type, derive the accrued
entitlement, what has been taken, what is pending, the advance used and
the days encashable on exit.

    ytd_earned       = half_day(annual * completed_months / 12)
    total            = ytd_earned + carried_forward + manual_adjustment
    available        = total - ytd_taken - future_taken - pending
    advance_used     = max(0, ytd_taken + future_taken - ytd_earned - carried_forward)
    encashable_days  = max(0, min(available, cap))   paid + encashable types only

Months are counted from the later of January 1 and the hire date, and the
month in progress counts once D is its last day.

Architecture position
---------------------
Engines layer: pure; balances are never mutated here.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from hr_kernel.domain.employee import Employee
from hr_kernel.domain.leave import BookedLeave, LeaveRequestStatus, LeaveType

ZERO_DAYS = Decimal("0")
DAYS_PER_SERVICE_YEAR = Decimal("365")


def round_half_day(days: Decimal) -> Decimal:
    """Nearest half day, halves rounding up: 4.25 -> 4.5, 4.2 -> 4.0."""
    return (days * 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 2


def years_of_service(hire_date: date, as_of: date) -> Decimal:
    days = max(0, (as_of - hire_date).days)
    return Decimal(days) / DAYS_PER_SERVICE_YEAR


def completed_months(start: date, end: date) -> int:
    """Whole months from ``start`` up to and including ``end``."""
    if end < start:
        return 0
    after = end + timedelta(days=1)
    months = (after.year - start.year) * 12 + after.month - start.month
    if after.day < start.day:
        months -= 1
    return max(0, months)


def annual_entitlement(leave_type: LeaveType, service_years: Decimal) -> Decimal:
    for tier in leave_type.entitlement_tiers:
        if tier.matches(service_years):
            return tier.days
    return leave_type.annual_entitlement_days


def prorated_entitlement(annual: Decimal, hire_date: date, year: int) -> Decimal:
    """Full-year entitlement for ``year``, pro-rated by month for joiners."""
    if hire_date.year > year:
        return ZERO_DAYS
    if hire_date.year < year:
        return annual
    months = 12 - hire_date.month + 1
    return round_half_day(annual * months / 12)


def eligibility_problem(employee: Employee, leave_type: LeaveType, as_of: date) -> str | None:
    """Why ``employee`` may not take ``leave_type``; None when eligible."""
    if employee.is_part_time and not leave_type.part_time_eligible:
        return "part-time employees have no entitlement"
    if leave_type.gender_restriction is not None and employee.gender != leave_type.gender_restriction:
        return f"only available to {leave_type.gender_restriction.value} employees"
    if leave_type.min_service_days > 0:
        served = (as_of - employee.hire_date).days
        if served < leave_type.min_service_days:
            return f"minimum {leave_type.min_service_days} days of service required"
    return None


@dataclass(frozen=True)
class LeaveEntitlement:
    leave_type_code: str
    as_of: date
    annual_entitlement: Decimal
    ytd_earned: Decimal
    carried_forward: Decimal
    manual_adjustment: Decimal
    total_entitlement: Decimal
    ytd_taken: Decimal
    future_taken: Decimal
    pending: Decimal
    available: Decimal
    advance_used: Decimal
    encashable_days: Decimal
    encashable_type: bool


def resolve_entitlement(
    employee: Employee,
    leave_type: LeaveType,
    as_of: date,
    requests: Iterable[BookedLeave] = (),
    carried_forward: Decimal = ZERO_DAYS,
    manual_adjustment: Decimal = ZERO_DAYS,
) -> LeaveEntitlement:
    """Resolve one leave type's position for ``employee`` on ``as_of``.

    ``requests`` should hold the leave year's requests; rejected and
    cancelled ones are ignored.
    """
    annual = annual_entitlement(leave_type, years_of_service(employee.hire_date, as_of))
    anchor = max(date(as_of.year, 1, 1), employee.hire_date)
    earned = round_half_day(annual * completed_months(anchor, as_of) / 12)
    cf = min(max(ZERO_DAYS, carried_forward), leave_type.carry_forward_max)

    ytd_taken = future_taken = pending = ZERO_DAYS
    for req in requests:
        if req.status == LeaveRequestStatus.APPROVED:
            if req.start_date > as_of:
                future_taken += req.days
            else:
                ytd_taken += req.days
        elif req.status == LeaveRequestStatus.PENDING:
            pending += req.days

    total = earned + cf + manual_adjustment
    available = total - ytd_taken - future_taken - pending
    advance = max(ZERO_DAYS, ytd_taken + future_taken - earned - cf)

    encashable_type = leave_type.is_paid and leave_type.encashable_on_exit
    if encashable_type:
        ceiling = available if leave_type.encashment_cap is None else min(
            available, leave_type.encashment_cap
        )
        encashable = max(ZERO_DAYS, ceiling)
    else:
        encashable = ZERO_DAYS

    return LeaveEntitlement(
        leave_type_code=leave_type.code,
        as_of=as_of,
        annual_entitlement=annual,
        ytd_earned=earned,
        carried_forward=cf,
        manual_adjustment=manual_adjustment,
        total_entitlement=total,
        ytd_taken=ytd_taken,
        future_taken=future_taken,
        pending=pending,
        available=available,
        advance_used=advance,
        encashable_days=encashable,
        encashable_type=encashable_type,
    )


def carry_forward_days(unused: Decimal, leave_type: LeaveType) -> Decimal:
    """Days moving into the next leave year."""
    return min(max(ZERO_DAYS, unused), leave_type.carry_forward_max)
