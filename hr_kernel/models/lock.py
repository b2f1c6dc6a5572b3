"""Advisory lock rows.  A unique (tenant, key) pair is the lock itself."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase


class ProcessingLockModel(TrackedBase):
    __tablename__ = "processing_locks"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    lock_key: Mapped[str] = mapped_column(String(200), nullable=False)
    holder: Mapped[str] = mapped_column(String(200), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "lock_key", name="uq_processing_lock_tenant_key"),
    )

    def __repr__(self) -> str:
        return f"<ProcessingLockModel {self.lock_key} held by {self.holder}>"
