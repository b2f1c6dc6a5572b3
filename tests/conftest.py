"""
Pytest fixtures for the HR engine test suite.

Provides:
- In-memory SQLite engine and sessions (fresh tables for every test)
- Deterministic clock and the bundled statutory tables
- Tenant, employee, shift, holiday and leave-type factories
- Actors for each approval level
- Structured log capture

No external database is needed; ``build_engine("sqlite://")`` shares one
in-memory connection across every session a test opens.
"""

import json
import logging
from collections.abc import Generator
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import Session, sessionmaker

from hr_config import load_statutory_tables
from hr_kernel.db.engine import build_engine, create_tables, drop_tables
from hr_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from hr_kernel.domain.actor import Actor, ActorRole
from hr_kernel.domain.attendance import parse_hhmm
from hr_kernel.domain.clock import DeterministicClock
from hr_kernel.domain.employee import Employee
from hr_kernel.domain.leave import LeaveType
from hr_kernel.domain.schedule import ScheduledShift
from hr_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from hr_kernel.models.employee import EmployeeModel
from hr_kernel.models.schedule import ScheduledShiftModel
from hr_kernel.models.tenant import PublicHolidayModel, TenantModel
from hr_modules.attendance.service import AttendanceService
from hr_modules.leave.orm import LeaveTypeModel
from hr_modules.leave.service import LeaveService
from hr_modules.payroll.service import PayrollService
from hr_modules.settlement.service import SettlementService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

KL = ZoneInfo("Asia/Kuala_Lumpur")

OUTLET_ID = UUID("00000000-0000-4000-a000-000000000001")
OTHER_OUTLET_ID = UUID("00000000-0000-4000-a000-000000000002")
DEPARTMENT_ID = UUID("00000000-0000-4000-a000-000000000003")

DEFAULT_SETTINGS = {
    "standard_daily_minutes": 450,
    "ot_rounding": {"method": "30MIN", "direction": "NEAREST", "minimum_minutes": 60},
    "rest_days": [5, 6],
}


def local_dt(day: date, hhmm: str) -> datetime:
    """Tenant-local (Kuala Lumpur) timestamp for ``day`` at ``hhmm``."""
    minute = parse_hhmm(hhmm)
    return datetime(day.year, day.month, day.day, minute // 60, minute % 60, tzinfo=KL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture hr_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, attendance_service):
            attendance_service.record_clock_event(...)
            logs = captured_logs()
            assert any(r["message"] == "clock_event_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("hr_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    """Listeners are registered once and stay active for the whole suite."""
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Clock, tables, actors
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="session")
def statutory_tables():
    return load_statutory_tables()


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def manager() -> Actor:
    return Actor(actor_id=uuid4(), role=ActorRole.MANAGER)


@pytest.fixture
def supervisor() -> Actor:
    return Actor(actor_id=uuid4(), role=ActorRole.SUPERVISOR, grouping_id=OUTLET_ID)


@pytest.fixture
def staff_actor() -> Actor:
    return Actor(actor_id=uuid4(), role=ActorRole.STAFF, grouping_id=OUTLET_ID)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_tenant(session):
    """Factory: persist a tenant with ``DEFAULT_SETTINGS`` merged with overrides."""
    counter = iter(range(1, 1000))

    def _create(settings: dict | None = None, replace_settings: bool = False, **kwargs) -> TenantModel:
        merged = dict(settings or {}) if replace_settings else {**DEFAULT_SETTINGS, **(settings or {})}
        n = next(counter)
        tenant = TenantModel(
            code=kwargs.pop("code", f"T{n:03d}-{uuid4().hex[:6]}"),
            name=kwargs.pop("name", f"Tenant {n}"),
            grouping_type=kwargs.pop("grouping_type", "OUTLET"),
            timezone=kwargs.pop("timezone", "Asia/Kuala_Lumpur"),
            settings=merged,
            created_by_id=TEST_ACTOR_ID,
            **kwargs,
        )
        session.add(tenant)
        session.commit()
        return tenant

    return _create


@pytest.fixture
def tenant(create_tenant) -> TenantModel:
    return create_tenant()


@pytest.fixture
def make_employee(session, tenant):
    """Factory: persist an employee and return its ``Employee`` snapshot."""
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> Employee:
        n = next(counter)
        tenant_id = overrides.pop("tenant_id", tenant.id)
        if "department_id" not in overrides and "outlet_id" not in overrides:
            overrides["outlet_id"] = OUTLET_ID
        fields = {
            "employee_id": uuid4(),
            "tenant_id": tenant_id,
            "employee_number": f"E{n:04d}",
            "name": f"Employee {n}",
            "hire_date": date(2020, 1, 1),
            "basic_salary": Decimal("5000"),
            **overrides,
        }
        employee = Employee(**fields)
        session.add(EmployeeModel.from_dto(employee, TEST_ACTOR_ID))
        session.commit()
        return employee

    return _make


@pytest.fixture
def employee(make_employee) -> Employee:
    return make_employee()


@pytest.fixture
def make_shift(session):
    """Factory: persist a scheduled shift.  Times are ``"HH:MM"`` strings."""

    def _make(
        employee: Employee,
        work_date: date,
        start: str = "09:00",
        end: str = "18:00",
        break_minutes: int = 60,
        is_off: bool = False,
    ) -> ScheduledShift:
        shift = ScheduledShift(
            employee_id=employee.employee_id,
            work_date=work_date,
            shift_start=parse_hhmm(start),
            shift_end=parse_hhmm(end),
            break_minutes=break_minutes,
            is_off=is_off,
        )
        session.add(ScheduledShiftModel.from_dto(shift, employee.tenant_id, TEST_ACTOR_ID))
        session.commit()
        return shift

    return _make


@pytest.fixture
def make_holiday(session, tenant):
    def _make(holiday_date: date, name: str = "Public Holiday", extra_pay: bool = True):
        holiday = PublicHolidayModel(
            tenant_id=tenant.id,
            holiday_date=holiday_date,
            name=name,
            extra_pay=extra_pay,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(holiday)
        session.commit()
        return holiday

    return _make


@pytest.fixture
def make_leave_type(session, tenant):
    """Factory: persist a leave type for the default tenant."""

    def _make(code: str = "AL", annual_days: str = "12", **kwargs) -> LeaveType:
        leave_type = LeaveType(
            leave_type_id=uuid4(),
            code=code,
            name=kwargs.pop("name", f"{code} leave"),
            annual_entitlement_days=Decimal(annual_days),
            **kwargs,
        )
        session.add(LeaveTypeModel.from_dto(leave_type, tenant.id, TEST_ACTOR_ID))
        session.commit()
        return leave_type

    return _make


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def review_events() -> list:
    """Review events delivered to the sink, in order."""
    return []


@pytest.fixture
def attendance_service(session, clock, review_events) -> AttendanceService:
    return AttendanceService(session, clock, review_events.append)


@pytest.fixture
def leave_service(session, clock) -> LeaveService:
    return LeaveService(session, clock)


@pytest.fixture
def payroll_service(session, clock, statutory_tables) -> PayrollService:
    return PayrollService(session, statutory_tables, clock)


@pytest.fixture
def settlement_service(session, clock, statutory_tables) -> SettlementService:
    return SettlementService(session, statutory_tables, clock)
