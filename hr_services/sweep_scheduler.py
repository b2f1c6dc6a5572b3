"""
AutoClosureScheduler -- in-process polling trigger for the daily sweep.

Contract:
    ``tick()`` fires ``AttendanceService.run_auto_closure`` for every active
    tenant whose local wall clock has reached its ``auto_closure_minute``
    and whose last sweep was on an earlier local day.  ``start()`` /
    ``stop()`` run ``tick()`` on a background thread.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - At most one sweep per tenant per local day from this scheduler; the
      sweep's own lock guards against other triggers.
    - Stop is honoured between tenants.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import date, datetime

from sqlalchemy.orm import Session

from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import HREngineError
from hr_kernel.logging_config import get_logger
from hr_kernel.selectors.reference_selector import ReferenceSelector
from hr_modules._command_helpers import tenant_policy
from hr_modules.attendance.service import AttendanceService

logger = get_logger("services.sweep_scheduler")


def sweep_due(
    now_local: datetime,
    auto_closure_minute: int,
    last_run_on: date | None,
) -> bool:
    """Pure: has today's sweep moment passed without a sweep today?"""
    if last_run_on is not None and last_run_on >= now_local.date():
        return False
    return now_local.hour * 60 + now_local.minute >= auto_closure_minute


class AutoClosureScheduler:
    """Polls tenants and runs the auto-closure sweep when due.

    Non-goals:
        - NOT a distributed scheduler (the sweep lock serialises instances).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        service_factory: Callable[[Session], AttendanceService],
        clock: Clock | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Run every due sweep; returns how many ran."""
        session = self._session_factory()
        try:
            return self._sweep_due_tenants(session)
        except Exception:
            session.rollback()
            logger.exception("sweep_tick_failed")
            return 0
        finally:
            session.close()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="auto-closure-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("sweep_scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("sweep_scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)

    def _sweep_due_tenants(self, session: Session) -> int:
        refs = ReferenceSelector(session)
        due = []
        for tenant in refs.active_tenants():
            try:
                policy = tenant_policy(tenant)
            except HREngineError as exc:
                logger.warning(
                    "sweep_tenant_skipped",
                    extra={"tenant_id": str(tenant.id), "error_code": exc.code},
                )
                continue
            now_local = self._clock.now_local(policy.timezone)
            if sweep_due(now_local, policy.auto_closure_minute, tenant.last_auto_closure_on):
                due.append(tenant.id)
        session.commit()

        fired = 0
        service = self._service_factory(session)
        for tenant_id in due:
            if self._stop_event.is_set():
                break
            result = service.run_auto_closure(tenant_id, as_of=self._clock.now_utc())
            fired += 1
            logger.info(
                "sweep_fired",
                extra={
                    "tenant_id": str(tenant_id),
                    "succeeded": result.is_success,
                    "error_code": result.error_code,
                },
            )
        return fired
