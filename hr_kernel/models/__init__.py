"""Shared ORM models: tenants, employees, schedules, holidays, locks, review queue."""

from hr_kernel.models.employee import EmployeeModel
from hr_kernel.models.lock import ProcessingLockModel
from hr_kernel.models.review import ReviewEntryModel, ReviewStatus
from hr_kernel.models.schedule import ScheduledShiftModel
from hr_kernel.models.tenant import PublicHolidayModel, TenantModel

__all__ = [
    "EmployeeModel",
    "ProcessingLockModel",
    "PublicHolidayModel",
    "ReviewEntryModel",
    "ReviewStatus",
    "ScheduledShiftModel",
    "TenantModel",
]
