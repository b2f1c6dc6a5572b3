"""
Earnings composer (``hr_engines.earnings``).

Responsibility
--------------
Compose one employee's gross line for a month from the basic salary, the
month's day lines and the approved pay items.

* Basic is pro-rated by working days for mid-month hire or exit.
* OT pay is ``ot / 60 * hourly_rate * multiplier(day class)``; only
  approved OT counts.
* Part-time employees are paid ``work_minutes / 60 * hourly_rate`` with
  ``(PH multiplier - 1)`` extra on ``extra_pay`` holidays, and receive no
  OT and no allowances.
* Absent days deduct ``basic / working_days_in_month`` each (full-time).
* Allowances, commissions, incentives, OT and holiday pay join the
  statutory base only when the tenant includes them; claims never do.

Architecture position
---------------------
Engines layer: pure, zero I/O.

Failure modes
-------------
* ``ValueError`` for a day line outside the period.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from fractions import Fraction

from hr_config.schema import TenantPolicy
from hr_engines.approval import payable_ot_minutes
from hr_engines.working_days import WorkCalendar, proration_fraction
from hr_kernel.domain.attendance import AttendanceStatus, DayClass, OTStatus
from hr_kernel.domain.employee import Employee, PcbTreatment
from hr_kernel.domain.money import ZERO, money_sum, to_money


class PayItemKind(str, Enum):
    ALLOWANCE = "allowance"
    COMMISSION = "commission"
    INCENTIVE = "incentive"
    CLAIM = "claim"
    BONUS = "bonus"


@dataclass(frozen=True)
class PayItem:
    kind: PayItemKind
    amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class DayLine:
    """The payroll-relevant facts of one day record."""

    work_date: date
    work_minutes: int
    ot_minutes: int
    ot_status: OTStatus
    attendance_status: AttendanceStatus
    day_class: DayClass = DayClass.NORMAL
    extra_pay_holiday: bool = False


@dataclass(frozen=True)
class GrossLine:
    year: int
    month: int
    basic_salary: Decimal
    proration: Fraction
    basic_pay: Decimal
    hourly_rate: Decimal
    work_minutes: int
    ot_minutes: int
    ot_pay: Decimal
    ph_pay: Decimal
    allowances: Decimal
    commissions: Decimal
    incentives: Decimal
    claims: Decimal
    bonus: Decimal
    absent_days: int
    absent_deduction: Decimal
    gross: Decimal
    statutory_base: Decimal
    pcb_regular: Decimal
    pcb_additional: Decimal
    ot_by_class: dict[DayClass, int] = field(default_factory=dict)


def full_time_hourly_rate(employee: Employee, policy: TenantPolicy) -> Decimal:
    """OT base rate: ``basic / standard_work_days / standard hours``."""
    if employee.ot_rate is not None:
        return employee.ot_rate
    if employee.hourly_rate is not None:
        return employee.hourly_rate
    hours = Decimal(policy.standard_daily_minutes) / Decimal(60)
    return employee.basic_salary / Decimal(policy.standard_work_days) / hours


def part_time_hourly_rate(employee: Employee, policy: TenantPolicy) -> Decimal:
    if employee.hourly_rate is not None:
        return employee.hourly_rate
    return policy.part_time_hourly_rate


def multiplier_for(day_class: DayClass, policy: TenantPolicy) -> Decimal:
    m = policy.ot_multipliers
    return {
        DayClass.NORMAL: m.normal,
        DayClass.WEEKEND: m.weekend,
        DayClass.PUBLIC_HOLIDAY: m.public_holiday,
    }[day_class]


def daily_rate(basic_salary: Decimal, working_days: int) -> Decimal:
    if working_days <= 0:
        return ZERO
    return basic_salary / Decimal(working_days)


def count_absent_days(lines: Iterable[DayLine], cal: WorkCalendar) -> int:
    return sum(
        1 for line in lines
        if line.attendance_status == AttendanceStatus.ABSENT
        and cal.is_working_day(line.work_date)
    )


def _sum_kind(items: Sequence[PayItem], kind: PayItemKind) -> Decimal:
    return money_sum(i.amount for i in items if i.kind == kind)


def compose_gross(
    employee: Employee,
    policy: TenantPolicy,
    cal: WorkCalendar,
    year: int,
    month: int,
    days: Sequence[DayLine] = (),
    items: Sequence[PayItem] = (),
    last_day: date | None = None,
    unpaid_leave_days: int = 0,
) -> GrossLine:
    """Compose the gross line for ``employee`` in ``year``/``month``."""
    for line in days:
        if (line.work_date.year, line.work_date.month) != (year, month):
            raise ValueError(f"day line {line.work_date} outside {year}-{month:02d}")

    fraction = proration_fraction(cal, year, month, employee.hire_date, last_day)
    work_minutes = sum(line.work_minutes for line in days)
    working_days = cal.working_days_in_month(year, month)
    ot_by_class: dict[DayClass, int] = {}

    if employee.is_part_time:
        rate = part_time_hourly_rate(employee, policy)
        basic_pay = to_money(Decimal(work_minutes) / Decimal(60) * rate)
        ph_minutes = sum(
            line.work_minutes for line in days
            if line.extra_pay_holiday and line.day_class == DayClass.PUBLIC_HOLIDAY
        )
        ph_pay = to_money(
            Decimal(ph_minutes) / Decimal(60) * rate * (policy.ph_multiplier - 1)
        )
        ot_pay = ZERO
        ot_total = 0
        allowances = ZERO
        absent_days = 0
        absent_deduction = ZERO
    else:
        rate = full_time_hourly_rate(employee, policy)
        basic_pay = to_money(employee.basic_salary * fraction.numerator / fraction.denominator)
        ph_pay = ZERO
        ot_amount = ZERO
        ot_total = 0
        for line in days:
            minutes = payable_ot_minutes(line.ot_minutes, line.ot_status)
            if minutes <= 0:
                continue
            ot_total += minutes
            ot_by_class[line.day_class] = ot_by_class.get(line.day_class, 0) + minutes
            ot_amount += (
                Decimal(minutes) / Decimal(60) * rate * multiplier_for(line.day_class, policy)
            )
        ot_pay = to_money(ot_amount)
        allowances = to_money(_sum_kind(items, PayItemKind.ALLOWANCE))
        absent_days = count_absent_days(days, cal) + unpaid_leave_days
        absent_deduction = to_money(
            daily_rate(employee.basic_salary, working_days) * absent_days
        )
        absent_deduction = min(absent_deduction, basic_pay)

    commissions = to_money(_sum_kind(items, PayItemKind.COMMISSION))
    incentives = to_money(_sum_kind(items, PayItemKind.INCENTIVE))
    claims = to_money(_sum_kind(items, PayItemKind.CLAIM))
    bonus = to_money(_sum_kind(items, PayItemKind.BONUS))

    gross = (
        basic_pay - absent_deduction + ot_pay + ph_pay + allowances
        + commissions + incentives + claims + bonus
    )

    inc = policy.inclusions
    base = basic_pay - absent_deduction
    if inc.overtime:
        base += ot_pay
    if inc.holiday_pay:
        base += ph_pay
    if inc.allowance:
        base += allowances
    if inc.commission:
        base += commissions
    if inc.incentive:
        base += incentives

    pcb_regular = base
    pcb_additional = bonus
    match employee.allowance_pcb:
        case PcbTreatment.NORMAL:
            if not inc.allowance:
                pcb_regular += allowances
        case PcbTreatment.ADDITIONAL:
            if inc.allowance:
                pcb_regular -= allowances
            pcb_additional += allowances
        case PcbTreatment.EXCLUDED:
            if inc.allowance:
                pcb_regular -= allowances

    return GrossLine(
        year=year,
        month=month,
        basic_salary=employee.basic_salary,
        proration=fraction,
        basic_pay=basic_pay,
        hourly_rate=rate,
        work_minutes=work_minutes,
        ot_minutes=ot_total,
        ot_pay=ot_pay,
        ph_pay=ph_pay,
        allowances=allowances,
        commissions=commissions,
        incentives=incentives,
        claims=claims,
        bonus=bonus,
        absent_days=absent_days,
        absent_deduction=absent_deduction,
        gross=to_money(gross),
        statutory_base=to_money(base),
        pcb_regular=to_money(pcb_regular),
        pcb_additional=to_money(pcb_additional),
        ot_by_class=ot_by_class,
    )
