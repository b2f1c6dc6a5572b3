"""
Tests for the administrator review queue.
"""

from datetime import date
from uuid import uuid4

import pytest

from hr_kernel.domain.attendance import ReviewReason
from hr_kernel.exceptions import RecordNotFoundError
from hr_kernel.models.review import ReviewStatus
from hr_kernel.services.review_queue import ReviewEvent, ReviewQueue
from tests.conftest import TEST_ACTOR_ID


@pytest.fixture
def sink_events() -> list:
    return []


@pytest.fixture
def queue(session, clock, sink_events) -> ReviewQueue:
    return ReviewQueue(session, clock, sink_events.append)


def _event(tenant, employee, record_id, reason=ReviewReason.AUTO_CLOCK_OUT) -> ReviewEvent:
    return ReviewEvent(
        tenant_id=tenant.id,
        employee_id=employee.employee_id,
        work_date=date(2026, 2, 2),
        reason=reason,
        day_record_id=record_id,
        detail={"closing_minute": 0},
    )


def test_enqueue_notifies_sink(queue, session, tenant, employee, sink_events):
    entry = queue.enqueue(_event(tenant, employee, uuid4()), TEST_ACTOR_ID)
    session.commit()

    assert entry.status == ReviewStatus.OPEN.value
    assert entry.detail == {"closing_minute": "0"}
    assert len(sink_events) == 1
    assert sink_events[0].reason == ReviewReason.AUTO_CLOCK_OUT


def test_enqueue_is_idempotent_per_open_reason(queue, session, tenant, employee, sink_events):
    record_id = uuid4()
    first = queue.enqueue(_event(tenant, employee, record_id), TEST_ACTOR_ID)
    second = queue.enqueue(_event(tenant, employee, record_id), TEST_ACTOR_ID)
    queue.enqueue(_event(tenant, employee, record_id, ReviewReason.WRONG_SHIFT), TEST_ACTOR_ID)
    session.commit()

    assert first.id == second.id
    assert len(sink_events) == 2
    assert len(queue.open_entries_for_record(record_id)) == 2


def test_resolve_for_record(queue, session, tenant, employee):
    record_id = uuid4()
    queue.enqueue(_event(tenant, employee, record_id), TEST_ACTOR_ID)
    queue.enqueue(_event(tenant, employee, record_id, ReviewReason.WRONG_SHIFT), TEST_ACTOR_ID)

    resolved = queue.resolve_for_record(record_id, TEST_ACTOR_ID, note="checked CCTV")
    session.commit()

    assert resolved == 2
    assert queue.open_entries(tenant.id) == []


def test_resolved_reason_can_be_raised_again(queue, session, tenant, employee, sink_events):
    record_id = uuid4()
    entry = queue.enqueue(_event(tenant, employee, record_id), TEST_ACTOR_ID)
    queue.resolve(entry.id, TEST_ACTOR_ID)
    again = queue.enqueue(_event(tenant, employee, record_id), TEST_ACTOR_ID)
    session.commit()

    assert again.id != entry.id
    assert len(sink_events) == 2


def test_resolve_unknown_entry(queue):
    with pytest.raises(RecordNotFoundError):
        queue.resolve(uuid4(), TEST_ACTOR_ID)
