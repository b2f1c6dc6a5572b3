"""
Settlement engine (``hr_engines.settlement``).

Responsibility
--------------
Full-and-final pay for an employee leaving on last working day L.

    required notice   28 / 42 / 56 days for tenure < 24 / < 60 / >= 60 months
    shortfall         max(0, required - (L - notice_date))
    daily_rate        basic / working_days_in_month(L)
    gross             prorated basic + encashment + claims + prorated bonus
                      (+ payment in lieu when the company pays the buyout)
    net               gross - statutory - buyout - advance recovery

Buyout is zero when the notice is waived.  Advance-leave recovery is
policy-gated and clamped to ``[0, gross]``.

Architecture position
---------------------
Engines layer: pure.  Persistence and the PROCESSED freeze live in
``hr_modules.settlement``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from hr_config.schema import BuyoutDirection, NoticeTier, StatutoryTables, TenantPolicy
from hr_engines.earnings import daily_rate
from hr_engines.leave_entitlement import completed_months
from hr_engines.statutory import StatutoryResult, YearToDate, compute_statutory
from hr_engines.working_days import WorkCalendar, proration_fraction
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.money import ZERO, money_sum, to_money


def tenure_months(hire_date: date, last_day: date) -> int:
    if last_day < hire_date:
        return 0
    months = (last_day.year - hire_date.year) * 12 + last_day.month - hire_date.month
    if last_day.day < hire_date.day:
        months -= 1
    return max(0, months)


def required_notice_days(months: int, tiers: Sequence[NoticeTier]) -> int:
    for tier in tiers:
        if tier.below_months is None or months < tier.below_months:
            return tier.notice_days
    return tiers[-1].notice_days


def notice_shortfall(required: int, notice_date: date, last_day: date) -> int:
    given = (last_day - notice_date).days
    return max(0, required - given)


@dataclass(frozen=True)
class LeaveDays:
    """Encashable or advance days for one leave type."""

    leave_type_code: str
    days: Decimal


@dataclass(frozen=True)
class SettlementInputs:
    notice_date: date
    last_day: date
    notice_waived: bool = False
    encashable: tuple[LeaveDays, ...] = ()
    advance_used: tuple[LeaveDays, ...] = ()  # non-encashable types only
    outstanding_claims: Decimal = ZERO
    basic_already_paid: bool = False
    ytd: YearToDate = YearToDate()


@dataclass(frozen=True)
class SettlementComputation:
    tenure_months: int
    required_notice_days: int
    notice_given_days: int
    shortfall_days: int
    working_days_in_month: int
    daily_rate: Decimal
    prorated_basic: Decimal
    encashment_days: Decimal
    encashment: Decimal
    claims: Decimal
    prorated_bonus: Decimal
    payment_in_lieu: Decimal
    gross: Decimal
    statutory: StatutoryResult
    notice_buyout: Decimal
    advance_recovery: Decimal
    net: Decimal
    notice_waived: bool

    @property
    def statutory_deductions(self) -> Decimal:
        return self.statutory.employee_total


def waiver_conflict(
    notice_waived: bool,
    computed_waived: bool,
    shortfall_days: int,
    rate: Decimal,
    notice_buyout: Decimal,
    payment_in_lieu: Decimal,
) -> str | None:
    """Describe a mismatch between stored buyout figures and the waiver flag.

    ``rate`` is the stored daily rate; a shortfall priced at a zero rate owes
    no buyout.
    """
    if computed_waived != notice_waived:
        return "computed under a different waiver state"
    applied = notice_buyout + payment_in_lieu
    if notice_waived and applied != 0:
        return "notice waived but a buyout is still applied"
    expected = ZERO if notice_waived else to_money(shortfall_days * rate)
    if expected > 0 and applied == 0:
        return "notice shortfall without a buyout"
    return None


def compute_settlement(
    employee: Employee,
    policy: TenantPolicy,
    cal: WorkCalendar,
    tables: StatutoryTables,
    inputs: SettlementInputs,
) -> SettlementComputation:
    """Compute the settlement.

    Example (tenure 6 years, basic 5600, 20 working days in February 2026,
    notice 2026-02-01, L 2026-02-15, 5 encashable days): daily rate 280,
    prorated basic 2800, encashment 1400, gross 4200, buyout 42 * 280.
    """
    last_day = inputs.last_day
    if inputs.notice_date > last_day:
        raise ValueError("notice_date is after the last working day")

    months = tenure_months(employee.hire_date, last_day)
    required = required_notice_days(months, policy.notice_tiers)
    given = (last_day - inputs.notice_date).days
    shortfall = notice_shortfall(required, inputs.notice_date, last_day)

    working_days = cal.working_days_in_month(last_day.year, last_day.month)
    rate = daily_rate(employee.basic_salary, working_days)

    if inputs.basic_already_paid:
        prorated_basic = ZERO
    else:
        fraction = proration_fraction(
            cal, last_day.year, last_day.month, employee.hire_date, last_day,
        )
        prorated_basic = to_money(
            employee.basic_salary * fraction.numerator / fraction.denominator
        )

    encash_days = money_sum(max(ZERO, e.days) for e in inputs.encashable)
    encashment = to_money(encash_days * rate * policy.encashment_rate)
    claims = to_money(inputs.outstanding_claims)

    if policy.prorated_bonus_enabled:
        anchor = max(date(last_day.year, 1, 1), employee.hire_date)
        worked = completed_months(anchor, last_day)
        bonus = to_money(
            employee.basic_salary * policy.bonus_months * worked / 12
        )
    else:
        bonus = ZERO

    buyout_amount = ZERO if inputs.notice_waived else to_money(shortfall * rate)
    if policy.buyout_direction == BuyoutDirection.COMPANY_PAYS:
        payment_in_lieu, notice_buyout = buyout_amount, ZERO
    else:
        payment_in_lieu, notice_buyout = ZERO, buyout_amount

    gross = prorated_basic + encashment + claims + bonus + payment_in_lieu
    statutory = compute_statutory(
        tables,
        employee.statutory,
        period_end=last_day,
        statutory_base=gross - claims,
        pcb_regular=prorated_basic,
        pcb_additional=encashment + bonus + payment_in_lieu,
        ytd=inputs.ytd,
    )

    if policy.advance_leave_recovery:
        advance_days = money_sum(max(ZERO, a.days) for a in inputs.advance_used)
        recovery = min(max(ZERO, to_money(advance_days * rate)), gross)
    else:
        recovery = ZERO

    net = gross - statutory.employee_total - notice_buyout - recovery

    return SettlementComputation(
        tenure_months=months,
        required_notice_days=required,
        notice_given_days=given,
        shortfall_days=shortfall,
        working_days_in_month=working_days,
        daily_rate=to_money(rate),
        prorated_basic=prorated_basic,
        encashment_days=encash_days,
        encashment=encashment,
        claims=claims,
        prorated_bonus=bonus,
        payment_in_lieu=payment_in_lieu,
        gross=to_money(gross),
        statutory=statutory,
        notice_buyout=notice_buyout,
        advance_recovery=recovery,
        net=to_money(net),
        notice_waived=inputs.notice_waived,
    )
