"""
Command and bulk-run result types.

Commands never raise engine errors across the interface; they return a
``CommandResult`` whose ``error_code`` is the ``code`` of the
``HREngineError`` that stopped them.  Bulk operations (sweep, recalculate,
payroll build) return a ``BulkRunResult`` with one ``BulkItemResult`` per
employee.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from hr_kernel.exceptions import HREngineError

T = TypeVar("T")


class CommandStatus(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    """Outcome of a single command."""

    status: CommandStatus
    value: T | None = None
    error_code: str | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == CommandStatus.SUCCEEDED

    @classmethod
    def ok(cls, value: T | None = None) -> CommandResult[T]:
        return cls(status=CommandStatus.SUCCEEDED, value=value)

    @classmethod
    def rejected(cls, error: HREngineError) -> CommandResult[T]:
        details = {
            k: v for k, v in vars(error).items()
            if not k.startswith("_")
        }
        return cls(
            status=CommandStatus.REJECTED,
            error_code=error.code,
            message=str(error),
            details=details,
        )


class BulkItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class BulkRunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BulkItemResult:
    """Result of processing one employee inside a bulk operation."""

    item_key: str
    status: BulkItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class BulkRunResult:
    """Result of a bulk operation.  Completed items stay committed on cancel."""

    operation: str
    status: BulkRunStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BulkItemResult, ...] = ()
    duration_ms: int = 0

    @property
    def is_success(self) -> bool:
        return self.status == BulkRunStatus.COMPLETED

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped
