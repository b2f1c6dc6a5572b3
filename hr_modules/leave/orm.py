"""
Leave ORM Persistence Models (``hr_modules.leave.orm``).

Responsibility:
    Leave types, yearly balances and requests.

Invariants enforced:
    - ``LeaveTypeModel`` unique on (tenant_id, code).
    - ``LeaveBalanceModel`` unique on (employee_id, leave_type_id, year).
    - Day counts are ``Decimal``; half days are legal.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.employee import Gender
from hr_kernel.domain.leave import (
    DEFAULT_CARRY_FORWARD_MAX,
    EntitlementTier,
    LeaveRequestStatus,
    LeaveType,
)


def _tiers_to_json(tiers: tuple[EntitlementTier, ...]) -> list[dict[str, Any]]:
    return [
        {
            "min_years": str(t.min_years),
            "max_years": str(t.max_years) if t.max_years is not None else None,
            "days": str(t.days),
        }
        for t in tiers
    ]


def _tiers_from_json(data: list[dict[str, Any]] | None) -> tuple[EntitlementTier, ...]:
    return tuple(
        EntitlementTier(
            min_years=Decimal(str(t["min_years"])),
            max_years=Decimal(str(t["max_years"])) if t.get("max_years") is not None else None,
            days=Decimal(str(t["days"])),
        )
        for t in data or ()
    )


class LeaveTypeModel(TrackedBase):
    """A tenant's leave type and its policy."""

    __tablename__ = "leave_types"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    annual_entitlement_days: Mapped[Decimal] = mapped_column(nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    encashable_on_exit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    carry_forward_max: Mapped[Decimal] = mapped_column(
        nullable=False, default=DEFAULT_CARRY_FORWARD_MAX,
    )
    encashment_cap: Mapped[Decimal | None] = mapped_column(nullable=True)
    allow_advance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    entitlement_tiers: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    gender_restriction: Mapped[str | None] = mapped_column(String(10), nullable=True)
    min_service_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    part_time_eligible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_leave_type_tenant_code"),
    )

    def to_dto(self) -> LeaveType:
        return LeaveType(
            leave_type_id=self.id,
            code=self.code,
            name=self.name,
            annual_entitlement_days=self.annual_entitlement_days,
            is_paid=self.is_paid,
            encashable_on_exit=self.encashable_on_exit,
            carry_forward_max=self.carry_forward_max,
            encashment_cap=self.encashment_cap,
            allow_advance=self.allow_advance,
            entitlement_tiers=_tiers_from_json(self.entitlement_tiers),
            gender_restriction=Gender(self.gender_restriction) if self.gender_restriction else None,
            min_service_days=self.min_service_days,
            part_time_eligible=self.part_time_eligible,
        )

    @classmethod
    def from_dto(cls, dto: LeaveType, tenant_id: UUID, created_by_id: UUID) -> "LeaveTypeModel":
        return cls(
            id=dto.leave_type_id,
            tenant_id=tenant_id,
            code=dto.code,
            name=dto.name,
            annual_entitlement_days=dto.annual_entitlement_days,
            is_paid=dto.is_paid,
            encashable_on_exit=dto.encashable_on_exit,
            carry_forward_max=dto.carry_forward_max,
            encashment_cap=dto.encashment_cap,
            allow_advance=dto.allow_advance,
            entitlement_tiers=_tiers_to_json(dto.entitlement_tiers),
            gender_restriction=dto.gender_restriction.value if dto.gender_restriction else None,
            min_service_days=dto.min_service_days,
            part_time_eligible=dto.part_time_eligible,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<LeaveTypeModel {self.code}: {self.annual_entitlement_days} days>"


class LeaveBalanceModel(TrackedBase):
    """Booked leave position for one employee, type and calendar year."""

    __tablename__ = "leave_balances"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    entitled_days: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    carried_forward: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    used_days: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pending_days: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    manual_adjustment: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="uq_leave_balance_employee_type_year",
        ),
        Index("idx_leave_balance_tenant_year", "tenant_id", "year"),
    )

    @property
    def available(self) -> Decimal:
        return (
            self.entitled_days
            + self.carried_forward
            + self.manual_adjustment
            - self.used_days
            - self.pending_days
        )

    def to_dto(self, leave_type_code: str):
        from hr_modules.leave.models import LeaveBalance

        return LeaveBalance(
            balance_id=self.id,
            employee_id=self.employee_id,
            leave_type_code=leave_type_code,
            year=self.year,
            entitled_days=self.entitled_days,
            carried_forward=self.carried_forward,
            used_days=self.used_days,
            pending_days=self.pending_days,
            manual_adjustment=self.manual_adjustment,
        )

    def __repr__(self) -> str:
        return (
            f"<LeaveBalanceModel {self.employee_id} {self.year} "
            f"used={self.used_days} pending={self.pending_days}>"
        )


class LeaveRequestModel(TrackedBase):
    __tablename__ = "leave_requests"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    leave_type_id: Mapped[UUID] = mapped_column(ForeignKey("leave_types.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LeaveRequestStatus.PENDING.value,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_leave_request_employee_dates", "employee_id", "start_date", "end_date"),
        Index("idx_leave_request_tenant_status", "tenant_id", "status"),
    )

    def to_dto(self, leave_type_code: str):
        from hr_modules.leave.models import LeaveRequest

        return LeaveRequest(
            request_id=self.id,
            employee_id=self.employee_id,
            leave_type_code=leave_type_code,
            start_date=self.start_date,
            end_date=self.end_date,
            days=self.days,
            status=LeaveRequestStatus(self.status),
            reason=self.reason,
            rejection_reason=self.rejection_reason,
        )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequestModel {self.employee_id} {self.start_date}..{self.end_date} "
            f"{self.days}d {self.status}>"
        )
