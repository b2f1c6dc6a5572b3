"""
ReviewQueue -- persisted administrator review entries plus an optional sink.

Entries are raised on AUTO_CLOSED and on every transition that sets
``needs_review``.  Enqueueing is idempotent per (day record, reason) while
the entry is OPEN, so re-running the sweep or re-reconciling a day does not
duplicate work for administrators.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.domain.attendance import ReviewReason
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import RecordNotFoundError
from hr_kernel.logging_config import get_logger
from hr_kernel.models.review import ReviewEntryModel, ReviewStatus

logger = get_logger("services.review_queue")


@dataclass(frozen=True)
class ReviewEvent:
    """What the event sink receives."""

    tenant_id: UUID
    employee_id: UUID
    work_date: date
    reason: ReviewReason
    day_record_id: UUID | None = None
    detail: dict[str, Any] = field(default_factory=dict)


ReviewSink = Callable[[ReviewEvent], None]


class ReviewQueue:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        event_sink: ReviewSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._event_sink = event_sink

    def enqueue(
        self,
        event: ReviewEvent,
        actor_id: UUID,
    ) -> ReviewEntryModel:
        if event.day_record_id is not None:
            existing = self._session.execute(
                select(ReviewEntryModel).where(
                    ReviewEntryModel.day_record_id == event.day_record_id,
                    ReviewEntryModel.reason == event.reason.value,
                    ReviewEntryModel.status == ReviewStatus.OPEN.value,
                )
            ).scalar_one_or_none()
            if existing is not None:
                return existing

        entry = ReviewEntryModel(
            tenant_id=event.tenant_id,
            employee_id=event.employee_id,
            day_record_id=event.day_record_id,
            work_date=event.work_date,
            reason=event.reason.value,
            detail={k: str(v) for k, v in event.detail.items()},
            status=ReviewStatus.OPEN.value,
            created_by_id=actor_id,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "review_entry_queued",
            extra={
                "review_entry_id": str(entry.id),
                "employee_id": str(event.employee_id),
                "work_date": event.work_date,
                "reason": event.reason.value,
            },
        )
        if self._event_sink is not None:
            self._event_sink(event)
        return entry

    def resolve(
        self,
        entry_id: UUID,
        actor_id: UUID,
        note: str | None = None,
    ) -> ReviewEntryModel:
        entry = self._session.get(ReviewEntryModel, entry_id)
        if entry is None:
            raise RecordNotFoundError("ReviewEntry", str(entry_id))
        self._close(entry, actor_id, note)
        return entry

    def resolve_for_record(
        self,
        day_record_id: UUID,
        actor_id: UUID,
        note: str | None = None,
    ) -> int:
        """Resolve every open entry for a day record; returns how many."""
        entries = self.open_entries_for_record(day_record_id)
        for entry in entries:
            self._close(entry, actor_id, note)
        return len(entries)

    def open_entries(self, tenant_id: UUID) -> list[ReviewEntryModel]:
        return list(
            self._session.execute(
                select(ReviewEntryModel)
                .where(
                    ReviewEntryModel.tenant_id == tenant_id,
                    ReviewEntryModel.status == ReviewStatus.OPEN.value,
                )
                .order_by(ReviewEntryModel.work_date)
            ).scalars()
        )

    def open_entries_for_record(self, day_record_id: UUID) -> list[ReviewEntryModel]:
        return list(
            self._session.execute(
                select(ReviewEntryModel).where(
                    ReviewEntryModel.day_record_id == day_record_id,
                    ReviewEntryModel.status == ReviewStatus.OPEN.value,
                )
            ).scalars()
        )

    def _close(self, entry: ReviewEntryModel, actor_id: UUID, note: str | None) -> None:
        entry.status = ReviewStatus.RESOLVED.value
        entry.resolved_by_id = actor_id
        entry.resolved_at = self._clock.now_utc()
        entry.resolution_note = note
        entry.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "review_entry_resolved",
            extra={"review_entry_id": str(entry.id), "reason": entry.reason},
        )
