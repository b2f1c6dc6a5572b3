"""
EngineContainer -- explicit dependency container for the HR engine.

Contract:
    Holds the session factory, clock, statutory tables and review sink, and
    hands out module services bound to a session.  Single place where the
    engine's dependencies are composed; there are no process globals.

Architecture: hr_services (top-level).  Imports modules; nothing imports
    this package.

Invariants enforced:
    - Every service handed out shares the container's clock.
    - Statutory tables are replaced only by ``reload_statutory_tables``;
      services created earlier keep the set they were given.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.orm import Session

from hr_config import StatutoryTableSet, load_statutory_tables
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.logging_config import get_logger
from hr_kernel.services.review_queue import ReviewSink
from hr_modules.attendance.service import AttendanceService
from hr_modules.leave.service import LeaveService
from hr_modules.payroll.service import PayrollService
from hr_modules.settlement.service import SettlementService
from hr_services.sweep_scheduler import AutoClosureScheduler

logger = get_logger("services.container")


class EngineContainer:
    """Composes module services.

    Contract:
        - ``session()`` yields a session from the factory and closes it.
        - ``attendance()`` / ``leave()`` / ``payroll()`` / ``settlement()``
          return services bound to the given session.
        - ``create_scheduler()`` returns an unstarted sweep scheduler.

    Non-goals:
        - Does NOT commit -- each service command owns its transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        statutory_tables: StatutoryTableSet | None = None,
        review_sink: ReviewSink | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._tables = statutory_tables if statutory_tables is not None else load_statutory_tables()
        self._review_sink = review_sink

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def statutory_tables(self) -> StatutoryTableSet:
        return self._tables

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def attendance(self, session: Session) -> AttendanceService:
        return AttendanceService(session, self._clock, self._review_sink)

    def leave(self, session: Session) -> LeaveService:
        return LeaveService(session, self._clock)

    def payroll(self, session: Session) -> PayrollService:
        return PayrollService(session, self._tables, self._clock)

    def settlement(self, session: Session) -> SettlementService:
        return SettlementService(session, self._tables, self._clock)

    def create_scheduler(self, tick_interval_seconds: int = 60) -> AutoClosureScheduler:
        """A sweep scheduler sharing this container's clock and sessions.  Not started."""
        return AutoClosureScheduler(
            self._session_factory,
            self.attendance,
            self._clock,
            tick_interval_seconds,
        )

    def reload_statutory_tables(self, paths: list[Path] | None = None) -> StatutoryTableSet:
        """Load a fresh table set; later services see it, earlier ones do not."""
        self._tables = load_statutory_tables(paths)
        logger.info(
            "statutory_tables_reloaded",
            extra={"tables": [t.name for t in self._tables.tables]},
        )
        return self._tables
