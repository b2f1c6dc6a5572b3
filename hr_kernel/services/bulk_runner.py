"""
BulkRunner -- per-employee commit loop with cooperative cancellation.

Contract:
    Each item runs inside the caller's session and is committed on its own.
    A failing item is rolled back and recorded; the loop moves on.  The
    cancellation token is checked between items only, so completed employees
    stay committed and no global rollback happens.

    The item function returns a dict of result data, or ``None`` to mark the
    item SKIPPED (nothing to do).
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from hr_kernel.domain.cancellation import CancellationToken
from hr_kernel.domain.results import (
    BulkItemResult,
    BulkItemStatus,
    BulkRunResult,
    BulkRunStatus,
)
from hr_kernel.exceptions import HREngineError
from hr_kernel.logging_config import get_logger

logger = get_logger("services.bulk_runner")

T = TypeVar("T")


class BulkRunner:
    def __init__(self, session: Session, operation: str):
        self._session = session
        self._operation = operation

    def run(
        self,
        items: Iterable[T],
        item_key: Callable[[T], str],
        fn: Callable[[T], dict[str, Any] | None],
        cancel_token: CancellationToken | None = None,
    ) -> BulkRunResult:
        start = time.monotonic()
        items = list(items)
        results: list[BulkItemResult] = []
        succeeded = failed = skipped = 0
        cancelled = False

        logger.info(
            f"{self._operation}_started",
            extra={"operation": self._operation, "total_items": len(items)},
        )

        for item in items:
            if cancel_token is not None and cancel_token.is_cancelled:
                cancelled = True
                logger.warning(
                    f"{self._operation}_cancelled",
                    extra={"operation": self._operation, "processed": len(results)},
                )
                break

            key = item_key(item)
            item_start = time.monotonic()
            try:
                data = fn(item)
                self._session.commit()
            except HREngineError as exc:
                self._session.rollback()
                failed += 1
                logger.warning(
                    f"{self._operation}_item_failed",
                    extra={"item_key": key, "error_code": exc.code},
                )
                results.append(BulkItemResult(
                    item_key=key,
                    status=BulkItemStatus.FAILED,
                    error_code=exc.code,
                    error_message=str(exc),
                    duration_ms=int((time.monotonic() - item_start) * 1000),
                ))
                continue
            except Exception as exc:
                self._session.rollback()
                failed += 1
                logger.error(
                    f"{self._operation}_item_crashed",
                    extra={"item_key": key},
                    exc_info=True,
                )
                results.append(BulkItemResult(
                    item_key=key,
                    status=BulkItemStatus.FAILED,
                    error_code="UNHANDLED_EXCEPTION",
                    error_message=str(exc),
                    duration_ms=int((time.monotonic() - item_start) * 1000),
                ))
                continue

            status = BulkItemStatus.SKIPPED if data is None else BulkItemStatus.SUCCEEDED
            if data is None:
                skipped += 1
            else:
                succeeded += 1
            results.append(BulkItemResult(
                item_key=key,
                status=status,
                result_data=data,
                duration_ms=int((time.monotonic() - item_start) * 1000),
            ))

        if cancelled:
            status = BulkRunStatus.CANCELLED
        elif failed == 0:
            status = BulkRunStatus.COMPLETED
        elif succeeded == 0 and skipped == 0:
            status = BulkRunStatus.FAILED
        else:
            status = BulkRunStatus.PARTIALLY_COMPLETED

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"{self._operation}_completed",
            extra={
                "operation": self._operation,
                "status": status.value,
                "succeeded": succeeded,
                "failed": failed,
                "skipped": skipped,
                "duration_ms": duration_ms,
            },
        )
        return BulkRunResult(
            operation=self._operation,
            status=status,
            total_items=len(items),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=tuple(results),
            duration_ms=duration_ms,
        )
