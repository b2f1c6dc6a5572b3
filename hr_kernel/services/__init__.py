"""Kernel services shared by every HR module."""

from hr_kernel.services.bulk_runner import BulkRunner
from hr_kernel.services.lock_service import LockService
from hr_kernel.services.review_queue import ReviewEvent, ReviewQueue

__all__ = ["BulkRunner", "LockService", "ReviewEvent", "ReviewQueue"]
