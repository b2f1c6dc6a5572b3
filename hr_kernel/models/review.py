"""Administrator review queue entries."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase


class ReviewStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class ReviewEntryModel(TrackedBase):
    """A day record an administrator must look at."""

    __tablename__ = "review_entries"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    day_record_id: Mapped[UUID | None] = mapped_column(nullable=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    detail: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.OPEN.value,
    )
    resolved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_review_entry_tenant_status", "tenant_id", "status"),
        Index("idx_review_entry_day_record", "day_record_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReviewEntryModel {self.reason} {self.employee_id} "
            f"{self.work_date} ({self.status})>"
        )
