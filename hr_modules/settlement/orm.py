"""
Settlement ORM Persistence Model (``hr_modules.settlement.orm``).

Invariants enforced:
    - One settlement per employee.
    - ``computed_with_waiver`` records the waiver flag the stored figures
      were computed under; processing refuses a mismatch.
    - A PROCESSED settlement is immutable (``hr_kernel.db.immutability``).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hr_engines.settlement import SettlementComputation
from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.money import ZERO
from hr_modules.settlement.models import Settlement, SettlementStatus


class SettlementModel(TrackedBase):
    __tablename__ = "settlements"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    notice_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_working_day: Mapped[date] = mapped_column(Date, nullable=False)
    notice_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    computed_with_waiver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementStatus.DRAFT.value,
    )

    tenure_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_notice_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shortfall_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_rate: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    prorated_basic: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    encashment_days: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    encashment: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    claims: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    prorated_bonus: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    payment_in_lieu: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    gross: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pcb: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    notice_buyout: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    advance_recovery: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    statutory_table: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", name="uq_settlement_employee"),
        Index("idx_settlement_tenant_status", "tenant_id", "status"),
    )

    def apply_computation(self, result: SettlementComputation) -> None:
        self.computed_with_waiver = result.notice_waived
        self.tenure_months = result.tenure_months
        self.required_notice_days = result.required_notice_days
        self.shortfall_days = result.shortfall_days
        self.daily_rate = result.daily_rate
        self.prorated_basic = result.prorated_basic
        self.encashment_days = result.encashment_days
        self.encashment = result.encashment
        self.claims = result.claims
        self.prorated_bonus = result.prorated_bonus
        self.payment_in_lieu = result.payment_in_lieu
        self.gross = result.gross
        self.epf_employee = result.statutory.epf.employee
        self.socso_employee = result.statutory.socso.employee
        self.eis_employee = result.statutory.eis.employee
        self.pcb = result.statutory.pcb
        self.notice_buyout = result.notice_buyout
        self.advance_recovery = result.advance_recovery
        self.net = result.net
        self.statutory_table = result.statutory.table_name

    def to_dto(self) -> Settlement:
        return Settlement(
            settlement_id=self.id,
            employee_id=self.employee_id,
            notice_date=self.notice_date,
            last_working_day=self.last_working_day,
            notice_waived=self.notice_waived,
            status=SettlementStatus(self.status),
            tenure_months=self.tenure_months,
            required_notice_days=self.required_notice_days,
            shortfall_days=self.shortfall_days,
            daily_rate=self.daily_rate,
            prorated_basic=self.prorated_basic,
            encashment_days=self.encashment_days,
            encashment=self.encashment,
            claims=self.claims,
            prorated_bonus=self.prorated_bonus,
            payment_in_lieu=self.payment_in_lieu,
            gross=self.gross,
            epf_employee=self.epf_employee,
            socso_employee=self.socso_employee,
            eis_employee=self.eis_employee,
            pcb=self.pcb,
            notice_buyout=self.notice_buyout,
            advance_recovery=self.advance_recovery,
            net=self.net,
            statutory_table=self.statutory_table,
        )

    def __repr__(self) -> str:
        return (
            f"<SettlementModel {self.employee_id} L={self.last_working_day} "
            f"net={self.net} {self.status}>"
        )
