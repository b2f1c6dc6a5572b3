"""Employee persistence.  Exactly one of outlet_id / department_id is set."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TrackedBase
from hr_kernel.domain.employee import (
    Employee,
    EmployeeRole,
    EmploymentStatus,
    Gender,
    PcbTreatment,
    StatutoryProfile,
    WorkType,
)


class EmployeeModel(TrackedBase):
    """
    ORM model for ``Employee``.

    Guarantees:
        - ``employee_number`` is unique within a tenant.
        - The grouping check constraint rejects rows with both or neither of
          outlet and department.
    """

    __tablename__ = "employees"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    work_type: Mapped[str] = mapped_column(String(20), nullable=False)
    employment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    outlet_id: Mapped[UUID | None] = mapped_column(nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    gender: Mapped[str | None] = mapped_column(String(10), nullable=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    ot_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    allowance_pcb: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PcbTreatment.NORMAL.value,
    )

    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_foreign_worker: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_married: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    spouse_working: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    children_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    epf_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    socso_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    eis_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pcb_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ic_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    epf_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    socso_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_number", name="uq_employee_tenant_number"),
        CheckConstraint(
            "(outlet_id IS NULL) <> (department_id IS NULL)",
            name="ck_employee_single_grouping",
        ),
        Index("idx_employee_tenant_status", "tenant_id", "employment_status"),
        Index("idx_employee_outlet", "outlet_id"),
        Index("idx_employee_department", "department_id"),
    )

    def to_dto(self) -> Employee:
        return Employee(
            employee_id=self.id,
            tenant_id=self.tenant_id,
            employee_number=self.employee_number,
            name=self.name,
            hire_date=self.hire_date,
            basic_salary=self.basic_salary,
            work_type=WorkType(self.work_type),
            employment_status=EmploymentStatus(self.employment_status),
            role=EmployeeRole(self.role),
            outlet_id=self.outlet_id,
            department_id=self.department_id,
            gender=Gender(self.gender) if self.gender else None,
            hourly_rate=self.hourly_rate,
            ot_rate=self.ot_rate,
            allowance_pcb=PcbTreatment(self.allowance_pcb),
            statutory=StatutoryProfile(
                date_of_birth=self.date_of_birth,
                is_foreign_worker=self.is_foreign_worker,
                is_married=self.is_married,
                spouse_working=self.spouse_working,
                children_count=self.children_count,
                epf_enabled=self.epf_enabled,
                socso_enabled=self.socso_enabled,
                eis_enabled=self.eis_enabled,
                pcb_enabled=self.pcb_enabled,
            ),
        )

    @classmethod
    def from_dto(cls, dto: Employee, created_by_id: UUID) -> "EmployeeModel":
        return cls(
            id=dto.employee_id,
            tenant_id=dto.tenant_id,
            employee_number=dto.employee_number,
            name=dto.name,
            hire_date=dto.hire_date,
            basic_salary=dto.basic_salary,
            work_type=dto.work_type.value,
            employment_status=dto.employment_status.value,
            role=dto.role.value,
            outlet_id=dto.outlet_id,
            department_id=dto.department_id,
            gender=dto.gender.value if dto.gender else None,
            hourly_rate=dto.hourly_rate,
            ot_rate=dto.ot_rate,
            allowance_pcb=dto.allowance_pcb.value,
            date_of_birth=dto.statutory.date_of_birth,
            is_foreign_worker=dto.statutory.is_foreign_worker,
            is_married=dto.statutory.is_married,
            spouse_working=dto.statutory.spouse_working,
            children_count=dto.statutory.children_count,
            epf_enabled=dto.statutory.epf_enabled,
            socso_enabled=dto.statutory.socso_enabled,
            eis_enabled=dto.statutory.eis_enabled,
            pcb_enabled=dto.statutory.pcb_enabled,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<EmployeeModel {self.employee_number}: {self.name} "
            f"({self.work_type}, {self.employment_status})>"
        )
