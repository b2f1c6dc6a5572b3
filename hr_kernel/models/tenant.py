"""
Tenant and public-holiday persistence.

A tenant carries its policy knobs as a JSON ``settings`` document; the
``hr_config`` layer turns that document into a frozen ``TenantPolicy`` and
reports missing required knobs as ``PolicyMissingError``.
"""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.schedule import PublicHoliday

DEFAULT_TIMEZONE = "Asia/Kuala_Lumpur"


class TenantModel(TrackedBase):
    """One company using the engine."""

    __tablename__ = "tenants"

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    grouping_type: Mapped[str] = mapped_column(String(20), nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default=DEFAULT_TIMEZONE,
    )
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    last_auto_closure_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("code", name="uq_tenant_code"),
    )

    def __repr__(self) -> str:
        return f"<TenantModel {self.code} ({self.grouping_type}, {self.timezone})>"


class PublicHolidayModel(TrackedBase):
    """A public holiday observed by one tenant."""

    __tablename__ = "public_holidays"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    extra_pay: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "holiday_date", name="uq_public_holiday_tenant_date"),
        Index("idx_public_holiday_date", "holiday_date"),
    )

    def to_dto(self) -> PublicHoliday:
        return PublicHoliday(
            holiday_date=self.holiday_date,
            name=self.name,
            extra_pay=self.extra_pay,
        )

    def __repr__(self) -> str:
        return f"<PublicHolidayModel {self.holiday_date} {self.name}>"
