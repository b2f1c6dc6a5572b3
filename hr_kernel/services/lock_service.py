"""
LockService -- advisory locks as rows in ``processing_locks``.

Contract:
    ``acquire()`` inserts a (tenant, key) row inside a SAVEPOINT; the unique
    constraint turns a concurrent holder into ``LockHeldError``.  Expired rows
    are purged before the insert so a crashed holder cannot block forever.

Keys in use:
    ``auto_closure``                         one sweep per tenant
    ``payroll:<YYYY-MM>:company``            run finalisation, company scope
    ``payroll:<YYYY-MM>:outlet:<id>``        outlet scope
    ``payroll:<YYYY-MM>:department:<id>``    department scope

Non-goals:
    Does NOT commit.  Callers commit after acquire so other sessions see it.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import LockHeldError
from hr_kernel.logging_config import get_logger
from hr_kernel.models.lock import ProcessingLockModel

logger = get_logger("services.lock")

DEFAULT_TTL_SECONDS = 3600
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def payroll_lock_key(year: int, month: int, scope_key: str) -> str:
    return f"payroll:{year:04d}-{month:02d}:{scope_key}"


class LockService:
    """Acquire, release and inspect advisory locks."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def acquire(
        self,
        tenant_id: UUID,
        lock_key: str,
        holder: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> ProcessingLockModel:
        now = self._clock.now_utc()
        self._purge_expired(tenant_id, lock_key, now)

        savepoint = self._session.begin_nested()
        try:
            lock = ProcessingLockModel(
                tenant_id=tenant_id,
                lock_key=lock_key,
                holder=holder,
                acquired_at=now,
                expires_at=now + timedelta(seconds=ttl_seconds),
                created_by_id=SYSTEM_ACTOR_ID,
            )
            self._session.add(lock)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            existing = self._find(tenant_id, lock_key)
            logger.warning(
                "lock_contended",
                extra={
                    "lock_key": lock_key,
                    "holder": holder,
                    "current_holder": existing.holder if existing else None,
                },
            )
            raise LockHeldError(lock_key, existing.holder if existing else None)
        savepoint.commit()

        logger.info(
            "lock_acquired",
            extra={"tenant_id": str(tenant_id), "lock_key": lock_key, "holder": holder},
        )
        return lock

    def release(self, tenant_id: UUID, lock_key: str) -> bool:
        result = self._session.execute(
            delete(ProcessingLockModel).where(
                ProcessingLockModel.tenant_id == tenant_id,
                ProcessingLockModel.lock_key == lock_key,
            )
        )
        released = result.rowcount > 0
        if released:
            logger.info(
                "lock_released",
                extra={"tenant_id": str(tenant_id), "lock_key": lock_key},
            )
        return released

    def is_held(self, tenant_id: UUID, lock_key: str) -> bool:
        lock = self._find(tenant_id, lock_key)
        if lock is None:
            return False
        return _as_utc(lock.expires_at) > self._clock.now_utc()

    def _find(self, tenant_id: UUID, lock_key: str) -> ProcessingLockModel | None:
        return self._session.execute(
            select(ProcessingLockModel).where(
                ProcessingLockModel.tenant_id == tenant_id,
                ProcessingLockModel.lock_key == lock_key,
            )
        ).scalar_one_or_none()

    def _purge_expired(self, tenant_id: UUID, lock_key: str, now: datetime) -> None:
        lock = self._find(tenant_id, lock_key)
        if lock is not None and _as_utc(lock.expires_at) <= now:
            logger.warning(
                "lock_expired_purged",
                extra={"lock_key": lock_key, "holder": lock.holder},
            )
            self._session.delete(lock)
            self._session.flush()
