"""Leave value objects consumed by the entitlement resolver."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from hr_kernel.domain.employee import Gender

DEFAULT_CARRY_FORWARD_MAX = Decimal("5")


class LeaveRequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class EntitlementTier:
    """Annual days for service years in ``[min_years, max_years)``."""

    min_years: Decimal
    max_years: Decimal | None
    days: Decimal

    def matches(self, years: Decimal) -> bool:
        if years < self.min_years:
            return False
        return self.max_years is None or years < self.max_years


@dataclass(frozen=True)
class LeaveType:
    leave_type_id: UUID
    code: str
    name: str
    annual_entitlement_days: Decimal
    is_paid: bool = True
    encashable_on_exit: bool = False
    carry_forward_max: Decimal = DEFAULT_CARRY_FORWARD_MAX
    encashment_cap: Decimal | None = None
    allow_advance: bool = False
    entitlement_tiers: tuple[EntitlementTier, ...] = ()
    gender_restriction: Gender | None = None
    min_service_days: int = 0
    part_time_eligible: bool = False


@dataclass(frozen=True)
class BookedLeave:
    """A leave request as the resolver sees it."""

    start_date: date
    end_date: date
    days: Decimal
    status: LeaveRequestStatus

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError("leave end_date precedes start_date")
        if self.days <= 0:
            raise ValueError("leave days must be positive")

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
