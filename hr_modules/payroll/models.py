"""
Payroll Domain Models (``hr_modules.payroll.models``).

Responsibility
--------------
Frozen value objects for payroll scopes, pay components, runs and the
per-employee payroll line.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* Monetary fields are ``Decimal``, never ``float``.
* A company scope has no ``scope_id``; outlet and department scopes do.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from hr_kernel.domain.employee import Employee, GroupingType
from hr_kernel.domain.money import ZERO
from hr_kernel.domain.results import BulkRunResult


class ScopeType(str, Enum):
    COMPANY = "company"
    OUTLET = "outlet"
    DEPARTMENT = "department"


@dataclass(frozen=True)
class PayrollScope:
    scope_type: ScopeType
    scope_id: UUID | None = None

    def __post_init__(self) -> None:
        if (self.scope_type == ScopeType.COMPANY) != (self.scope_id is None):
            raise ValueError("company scope takes no scope_id; grouping scopes need one")

    @classmethod
    def company(cls) -> PayrollScope:
        return cls(ScopeType.COMPANY)

    @property
    def key(self) -> str:
        if self.scope_type == ScopeType.COMPANY:
            return ScopeType.COMPANY.value
        return f"{self.scope_type.value}:{self.scope_id}"

    def includes(self, employee: Employee) -> bool:
        match self.scope_type:
            case ScopeType.COMPANY:
                return True
            case ScopeType.OUTLET:
                return employee.outlet_id == self.scope_id
            case ScopeType.DEPARTMENT:
                return employee.department_id == self.scope_id


def scopes_for(employee: Employee) -> tuple[PayrollScope, PayrollScope]:
    """The company scope and the employee's grouping scope."""
    grouping = (
        ScopeType.OUTLET
        if employee.grouping_type == GroupingType.OUTLET
        else ScopeType.DEPARTMENT
    )
    return PayrollScope.company(), PayrollScope(grouping, employee.grouping_id)


class PayrollRunStatus(str, Enum):
    DRAFT = "DRAFT"
    FINALISED = "FINALISED"
    PAID = "PAID"


class PayComponentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    INCLUDED = "INCLUDED"
    REJECTED = "REJECTED"


class DeductionKind(str, Enum):
    SALARY_ADVANCE = "salary_advance"
    OTHER = "other"


class DeductionStatus(str, Enum):
    PENDING = "PENDING"
    DEDUCTED = "DEDUCTED"


@dataclass(frozen=True)
class PayrollLine:
    """One employee's computed payroll line; what a PayrollItem freezes."""

    employee_id: UUID
    year: int
    month: int
    work_type: str
    basic_salary: Decimal
    proration: str
    basic_pay: Decimal
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
    epf_employee: Decimal
    epf_employer: Decimal
    socso_employee: Decimal
    socso_employer: Decimal
    eis_employee: Decimal
    eis_employer: Decimal
    pcb: Decimal
    advance_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO
    statutory_table: str = ""

    @property
    def statutory_employee(self) -> Decimal:
        return self.epf_employee + self.socso_employee + self.eis_employee + self.pcb

    @property
    def statutory_employer(self) -> Decimal:
        return self.epf_employer + self.socso_employer + self.eis_employer

    @property
    def total_deductions(self) -> Decimal:
        return self.statutory_employee + self.advance_deduction + self.other_deductions

    @property
    def net(self) -> Decimal:
        return self.gross - self.total_deductions

    @property
    def employer_cost(self) -> Decimal:
        return self.gross + self.statutory_employer


@dataclass(frozen=True)
class PayrollRun:
    run_id: UUID
    tenant_id: UUID
    year: int
    month: int
    scope: PayrollScope
    status: PayrollRunStatus
    employee_count: int = 0
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO
    total_employer_cost: Decimal = ZERO
    statutory_table: str = ""


@dataclass(frozen=True)
class PayComponent:
    component_id: UUID
    employee_id: UUID
    kind: str
    amount: Decimal
    payroll_year: int
    payroll_month: int
    status: PayComponentStatus
    description: str = ""


@dataclass(frozen=True)
class PayrollBuild:
    """A built DRAFT run plus the per-employee outcome of building it."""

    run: PayrollRun
    result: BulkRunResult
