"""
Statutory calculator (``hr_engines.statutory``).

Responsibility
--------------
EPF, SOCSO, EIS and PCB for one employee-month from the table version in
force.

* EPF: the base is rounded up to the next RM100 band.  Rates are 11%
  employee and 13% (wage up to 5000) or 12% employer.  From 60 the rates
  are 0% / 4%.  Foreign workers pay a flat 2% / 2%.  Each share rounds to
  the nearest ringgit.
* SOCSO: bucket lookup.  Category 2 (from 60, and foreign workers) is
  employer-only at the category-1 employer share less the employee share.
* EIS: bucket lookup; none from the age cutoff or for foreign workers.
* PCB: annual projection ``ytd + current * (13 - month)`` less reliefs,
  progressive brackets, rebate when chargeable income is at or below the
  threshold.  ``additional`` remuneration is taxed as the difference it
  makes to the annual figure, all in the current month.  The monthly
  amount is floored to sen, raised to the next 5 sen, and dropped when
  below the minimum deduction.

Architecture position
---------------------
Engines layer: pure.  Tables arrive as ``hr_config.schema`` dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from hr_config.schema import (
    EISTable,
    EPFTable,
    PCBTable,
    SOCSOTable,
    StatutoryTables,
)
from hr_kernel.domain.employee import StatutoryProfile
from hr_kernel.domain.money import CENT, ZERO, to_money

RINGGIT = Decimal("1")
FIVE_SEN = Decimal("0.05")


def age_on(date_of_birth: date | None, on: date) -> int | None:
    if date_of_birth is None:
        return None
    years = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


@dataclass(frozen=True)
class Contribution:
    employee: Decimal = ZERO
    employer: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.employee + self.employer


def epf_wage_band(wage: Decimal, band: Decimal) -> Decimal:
    return (wage / band).to_integral_value(rounding=ROUND_CEILING) * band


def epf_contribution(
    wage: Decimal,
    table: EPFTable,
    age: int | None = None,
    is_foreign_worker: bool = False,
) -> Contribution:
    if wage <= 0:
        return Contribution()
    if is_foreign_worker:
        ee_rate, er_rate = table.foreign_employee_rate, table.foreign_employer_rate
    elif age is not None and age >= table.senior_age:
        ee_rate, er_rate = table.senior_employee_rate, table.senior_employer_rate
    else:
        ee_rate = table.employee_rate
        er_rate = (
            table.employer_rate_low
            if wage <= table.employer_threshold
            else table.employer_rate_high
        )
    base = epf_wage_band(wage, table.wage_band)
    return Contribution(
        employee=(base * ee_rate).quantize(RINGGIT, rounding=ROUND_HALF_UP).quantize(CENT),
        employer=(base * er_rate).quantize(RINGGIT, rounding=ROUND_HALF_UP).quantize(CENT),
    )


def socso_contribution(
    wage: Decimal,
    table: SOCSOTable,
    age: int | None = None,
    is_foreign_worker: bool = False,
) -> Contribution:
    if wage <= 0:
        return Contribution()
    row = table.table.lookup(wage)
    category_two = is_foreign_worker or (age is not None and age >= table.category_two_age)
    if category_two:
        return Contribution(employee=ZERO, employer=row.employer - row.employee)
    return Contribution(employee=row.employee, employer=row.employer)


def eis_contribution(
    wage: Decimal,
    table: EISTable,
    age: int | None = None,
    is_foreign_worker: bool = False,
) -> Contribution:
    if wage <= 0 or is_foreign_worker:
        return Contribution()
    if age is not None and age >= table.age_cutoff:
        return Contribution()
    row = table.table.lookup(wage)
    return Contribution(employee=row.employee, employer=row.employer)


@dataclass(frozen=True)
class YearToDate:
    """Figures for earlier months of the same tax year."""

    gross: Decimal = ZERO
    epf: Decimal = ZERO
    socso_eis: Decimal = ZERO
    pcb: Decimal = ZERO


def annual_tax(chargeable: Decimal, table: PCBTable, profile: StatutoryProfile) -> Decimal:
    bracket = table.bracket_for(chargeable)
    tax = (chargeable - bracket.lower) * bracket.rate + bracket.base_tax
    if chargeable <= table.rebate_threshold:
        tax -= table.individual_rebate
        if profile.is_married and not profile.spouse_working:
            tax -= table.spouse_rebate
    return max(ZERO, tax)


def total_reliefs(
    table: PCBTable,
    profile: StatutoryProfile,
    projected_epf: Decimal,
    projected_socso_eis: Decimal,
) -> Decimal:
    r = table.reliefs
    total = r.individual + r.per_child * profile.children_count
    if profile.is_married and not profile.spouse_working:
        total += r.spouse
    total += min(projected_epf, r.epf_cap)
    total += min(projected_socso_eis, r.socso_eis_cap)
    return total


def finalise_pcb(amount: Decimal, minimum: Decimal) -> Decimal:
    if amount <= 0:
        return ZERO
    floored = amount.quantize(CENT, rounding=ROUND_FLOOR)
    rounded = (floored / FIVE_SEN).to_integral_value(rounding=ROUND_CEILING) * FIVE_SEN
    if rounded < minimum:
        return ZERO
    return rounded.quantize(CENT)


def monthly_pcb(
    regular: Decimal,
    month: int,
    table: PCBTable,
    profile: StatutoryProfile,
    epf_employee: Decimal = ZERO,
    socso_eis_employee: Decimal = ZERO,
    additional: Decimal = ZERO,
    ytd: YearToDate = YearToDate(),
) -> Decimal:
    """Monthly tax deduction.

    Example: RM5,000 a month in January, single, no children, EPF 550:
    projected 60,000 less reliefs of 9,000 + 4,000 + 350 leaves 46,650
    chargeable, annual tax 1,299 and 108.25 a month.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    remaining = 13 - month
    projected = ytd.gross + regular * remaining
    reliefs = total_reliefs(
        table,
        profile,
        ytd.epf + epf_employee * remaining,
        ytd.socso_eis + socso_eis_employee * remaining,
    )
    chargeable = max(ZERO, projected - reliefs)
    tax = annual_tax(chargeable, table, profile)
    amount = max(ZERO, (tax - ytd.pcb) / remaining)
    if additional > 0:
        amount += max(ZERO, annual_tax(chargeable + additional, table, profile) - tax)
    return finalise_pcb(amount, table.minimum_deduction)


@dataclass(frozen=True)
class StatutoryResult:
    table_name: str
    epf: Contribution
    socso: Contribution
    eis: Contribution
    pcb: Decimal

    @property
    def employee_total(self) -> Decimal:
        return self.epf.employee + self.socso.employee + self.eis.employee + self.pcb

    @property
    def employer_total(self) -> Decimal:
        return self.epf.employer + self.socso.employer + self.eis.employer


def compute_statutory(
    tables: StatutoryTables,
    profile: StatutoryProfile,
    period_end: date,
    statutory_base: Decimal,
    pcb_regular: Decimal | None = None,
    pcb_additional: Decimal = ZERO,
    ytd: YearToDate = YearToDate(),
) -> StatutoryResult:
    """All four schedules for one month ending ``period_end``."""
    age = age_on(profile.date_of_birth, period_end)
    foreign = profile.is_foreign_worker
    wage = max(ZERO, statutory_base)

    epf = epf_contribution(wage, tables.epf, age, foreign) if profile.epf_enabled else Contribution()
    socso = (
        socso_contribution(wage, tables.socso, age, foreign)
        if profile.socso_enabled else Contribution()
    )
    eis = eis_contribution(wage, tables.eis, age, foreign) if profile.eis_enabled else Contribution()

    if profile.pcb_enabled:
        pcb = monthly_pcb(
            regular=wage if pcb_regular is None else max(ZERO, pcb_regular),
            month=period_end.month,
            table=tables.pcb,
            profile=profile,
            epf_employee=epf.employee,
            socso_eis_employee=socso.employee + eis.employee,
            additional=max(ZERO, pcb_additional),
            ytd=ytd,
        )
    else:
        pcb = ZERO

    return StatutoryResult(
        table_name=tables.name,
        epf=epf,
        socso=socso,
        eis=eis,
        pcb=to_money(pcb),
    )
