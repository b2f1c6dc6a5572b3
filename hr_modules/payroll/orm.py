"""
Payroll ORM Persistence Models (``hr_modules.payroll.orm``).

Responsibility:
    Pay components (claims, allowances, commissions, incentives, bonus),
    salary deductions, payroll runs and their per-employee items.

Invariants enforced:
    - One run per (tenant, year, month, scope_key).
    - One item per (run, employee).
    - A FINALISED or PAID run and its frozen items are immutable
      (``hr_kernel.db.immutability``); only FINALISED -> PAID may follow.
    - Components are never split: carrying one forward rewrites its
      payroll year and month.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.money import ZERO
from hr_modules.payroll.models import (
    DeductionStatus,
    PayComponent,
    PayComponentStatus,
    PayrollLine,
    PayrollRun,
    PayrollRunStatus,
    PayrollScope,
    ScopeType,
)


class PayComponentModel(TrackedBase):
    """A claim, allowance, commission, incentive or bonus for one payroll month."""

    __tablename__ = "pay_components"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payroll_year: Mapped[int] = mapped_column(Integer, nullable=False)
    payroll_month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayComponentStatus.PENDING.value,
    )
    taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    payroll_run_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_pay_component_employee_period", "employee_id", "payroll_year", "payroll_month"),
        Index("idx_pay_component_tenant_status", "tenant_id", "status"),
    )

    def to_dto(self) -> PayComponent:
        return PayComponent(
            component_id=self.id,
            employee_id=self.employee_id,
            kind=self.kind,
            amount=self.amount,
            payroll_year=self.payroll_year,
            payroll_month=self.payroll_month,
            status=PayComponentStatus(self.status),
            description=self.description,
        )

    def __repr__(self) -> str:
        return (
            f"<PayComponentModel {self.kind} {self.amount} "
            f"{self.payroll_year}-{self.payroll_month:02d} {self.status}>"
        )


class DeductionModel(TrackedBase):
    """A salary advance or other deduction taken from one payroll month."""

    __tablename__ = "payroll_deductions"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payroll_year: Mapped[int] = mapped_column(Integer, nullable=False)
    payroll_month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DeductionStatus.PENDING.value,
    )
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    payroll_run_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_deduction_employee_period", "employee_id", "payroll_year", "payroll_month"),
    )

    def __repr__(self) -> str:
        return f"<DeductionModel {self.kind} {self.amount} {self.status}>"


class PayrollRunModel(TrackedBase):
    """
    ORM model for ``PayrollRun``.

    Guarantees:
        - ``scope_key`` is ``company``, ``outlet:<id>`` or ``department:<id>``.
        - Totals are written once, at finalisation.
    """

    __tablename__ = "payroll_runs"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scope_id: Mapped[UUID | None] = mapped_column(nullable=True)
    scope_key: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayrollRunStatus.DRAFT.value,
    )
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_employer_cost: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    statutory_table: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    statutory_checksum: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    finalised_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalised_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    items: Mapped[list["PayrollItemModel"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="PayrollItemModel.employee_number",
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "year", "month", "scope_key", name="uq_payroll_run_period_scope",
        ),
        Index("idx_payroll_run_tenant_period", "tenant_id", "year", "month"),
    )

    @property
    def scope(self) -> PayrollScope:
        return PayrollScope(ScopeType(self.scope_type), self.scope_id)

    def to_dto(self) -> PayrollRun:
        return PayrollRun(
            run_id=self.id,
            tenant_id=self.tenant_id,
            year=self.year,
            month=self.month,
            scope=self.scope,
            status=PayrollRunStatus(self.status),
            employee_count=self.employee_count,
            total_gross=self.total_gross,
            total_deductions=self.total_deductions,
            total_net=self.total_net,
            total_employer_cost=self.total_employer_cost,
            statutory_table=self.statutory_table,
        )

    def __repr__(self) -> str:
        return f"<PayrollRunModel {self.year}-{self.month:02d} {self.scope_key} {self.status}>"


class PayrollItemModel(TrackedBase):
    """One employee's frozen payroll line within a run."""

    __tablename__ = "payroll_items"

    run_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    work_type: Mapped[str] = mapped_column(String(20), nullable=False)

    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    proration: Mapped[str] = mapped_column(String(20), nullable=False, default="1")
    basic_pay: Mapped[Decimal] = mapped_column(nullable=False)
    work_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ot_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ot_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ph_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    allowances: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    commissions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    incentives: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    claims: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    bonus: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    absent_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    absent_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    gross: Mapped[Decimal] = mapped_column(nullable=False)
    statutory_base: Mapped[Decimal] = mapped_column(nullable=False)

    epf_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pcb: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    advance_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net: Mapped[Decimal] = mapped_column(nullable=False)
    employer_cost: Mapped[Decimal] = mapped_column(nullable=False)
    statutory_table: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_frozen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    run: Mapped[PayrollRunModel] = relationship(back_populates="items")

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="uq_payroll_item_run_employee"),
        Index("idx_payroll_item_employee", "employee_id"),
    )

    _LINE_FIELDS = (
        "basic_salary", "proration", "basic_pay", "work_minutes", "ot_minutes",
        "ot_pay", "ph_pay", "allowances", "commissions", "incentives", "claims",
        "bonus", "absent_days", "absent_deduction", "gross", "statutory_base",
        "epf_employee", "epf_employer", "socso_employee", "socso_employer",
        "eis_employee", "eis_employer", "pcb", "advance_deduction",
        "other_deductions", "work_type", "statutory_table",
    )

    def apply_line(self, line: PayrollLine) -> None:
        for name in self._LINE_FIELDS:
            setattr(self, name, getattr(line, name))
        self.net = line.net
        self.employer_cost = line.employer_cost

    def to_line(self, year: int, month: int) -> PayrollLine:
        return PayrollLine(
            employee_id=self.employee_id,
            year=year,
            month=month,
            **{name: getattr(self, name) for name in self._LINE_FIELDS},
        )

    def __repr__(self) -> str:
        return (
            f"<PayrollItemModel {self.employee_number} gross={self.gross} "
            f"net={self.net} frozen={self.is_frozen}>"
        )
