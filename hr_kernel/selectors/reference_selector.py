"""
ReferenceSelector -- reads the inputs the engines consume.

Tenants, employees, scheduled shifts and public holidays are environment
inputs; every calculation in ``hr_engines`` receives them as DTOs from here.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from hr_kernel.domain.employee import Employee, EmploymentStatus
from hr_kernel.domain.schedule import PublicHoliday, ScheduledShift
from hr_kernel.exceptions import RecordNotFoundError
from hr_kernel.models.employee import EmployeeModel
from hr_kernel.models.schedule import ScheduledShiftModel
from hr_kernel.models.tenant import PublicHolidayModel, TenantModel
from hr_kernel.selectors.base import BaseSelector


class ReferenceSelector(BaseSelector[TenantModel]):

    def tenant(self, tenant_id: UUID) -> TenantModel:
        tenant = self.session.get(TenantModel, tenant_id)
        if tenant is None:
            raise RecordNotFoundError("Tenant", str(tenant_id))
        return tenant

    def active_tenants(self) -> list[TenantModel]:
        return list(
            self.session.execute(
                select(TenantModel).where(TenantModel.is_active.is_(True))
            ).scalars()
        )

    def employee_model(self, employee_id: UUID) -> EmployeeModel:
        model = self.session.get(EmployeeModel, employee_id)
        if model is None:
            raise RecordNotFoundError("Employee", str(employee_id))
        return model

    def employee(self, employee_id: UUID) -> Employee:
        return self.employee_model(employee_id).to_dto()

    def employees_in_scope(
        self,
        tenant_id: UUID,
        outlet_id: UUID | None = None,
        department_id: UUID | None = None,
        include_exited: bool = False,
    ) -> list[Employee]:
        stmt = select(EmployeeModel).where(EmployeeModel.tenant_id == tenant_id)
        if outlet_id is not None:
            stmt = stmt.where(EmployeeModel.outlet_id == outlet_id)
        if department_id is not None:
            stmt = stmt.where(EmployeeModel.department_id == department_id)
        if not include_exited:
            stmt = stmt.where(
                EmployeeModel.employment_status != EmploymentStatus.EXITED.value
            )
        stmt = stmt.order_by(EmployeeModel.employee_number)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def shift(self, employee_id: UUID, work_date: date) -> ScheduledShift | None:
        model = self.session.execute(
            select(ScheduledShiftModel).where(
                ScheduledShiftModel.employee_id == employee_id,
                ScheduledShiftModel.work_date == work_date,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def shifts_between(
        self, employee_id: UUID, start: date, end: date,
    ) -> dict[date, ScheduledShift]:
        rows = self.session.execute(
            select(ScheduledShiftModel).where(
                ScheduledShiftModel.employee_id == employee_id,
                ScheduledShiftModel.work_date >= start,
                ScheduledShiftModel.work_date <= end,
            )
        ).scalars()
        return {r.work_date: r.to_dto() for r in rows}

    def holidays_between(
        self, tenant_id: UUID, start: date, end: date,
    ) -> dict[date, PublicHoliday]:
        rows = self.session.execute(
            select(PublicHolidayModel).where(
                PublicHolidayModel.tenant_id == tenant_id,
                PublicHolidayModel.holiday_date >= start,
                PublicHolidayModel.holiday_date <= end,
            )
        ).scalars()
        return {r.holiday_date: r.to_dto() for r in rows}

    def holiday_on(self, tenant_id: UUID, on: date) -> PublicHoliday | None:
        return self.holidays_between(tenant_id, on, on).get(on)
