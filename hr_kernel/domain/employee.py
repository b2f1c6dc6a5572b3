"""
Employee value objects.

Tagged variants (work type, grouping, role, PCB treatment) are enums; the
employee belongs to exactly one grouping, an outlet or a department, never
both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class WorkType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"


class EmploymentStatus(str, Enum):
    PROBATION = "PROBATION"
    CONFIRMED = "CONFIRMED"
    RESIGNING = "RESIGNING"
    EXITED = "EXITED"


class EmployeeRole(str, Enum):
    STAFF = "STAFF"
    SUPERVISOR = "SUPERVISOR"
    MANAGER = "MANAGER"
    DIRECTOR = "DIRECTOR"

    @property
    def level(self) -> int:
        return {"STAFF": 1, "SUPERVISOR": 2, "MANAGER": 3, "DIRECTOR": 4}[self.value]


class GroupingType(str, Enum):
    OUTLET = "OUTLET"
    DEPARTMENT = "DEPARTMENT"


class PcbTreatment(str, Enum):
    """How allowances enter the monthly tax calculation."""

    NORMAL = "normal"
    ADDITIONAL = "additional"
    EXCLUDED = "excluded"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


@dataclass(frozen=True)
class StatutoryProfile:
    """Attributes that drive EPF, SOCSO, EIS and PCB."""

    date_of_birth: date | None = None
    is_foreign_worker: bool = False
    is_married: bool = False
    spouse_working: bool = True
    children_count: int = 0
    epf_enabled: bool = True
    socso_enabled: bool = True
    eis_enabled: bool = True
    pcb_enabled: bool = True

    def __post_init__(self) -> None:
        if self.children_count < 0:
            raise ValueError("children_count cannot be negative")


@dataclass(frozen=True)
class Employee:
    """Immutable snapshot of an employee used by the pure engines."""

    employee_id: UUID
    tenant_id: UUID
    employee_number: str
    name: str
    hire_date: date
    basic_salary: Decimal
    work_type: WorkType = WorkType.FULL_TIME
    employment_status: EmploymentStatus = EmploymentStatus.CONFIRMED
    role: EmployeeRole = EmployeeRole.STAFF
    outlet_id: UUID | None = None
    department_id: UUID | None = None
    gender: Gender | None = None
    hourly_rate: Decimal | None = None
    ot_rate: Decimal | None = None
    allowance_pcb: PcbTreatment = PcbTreatment.NORMAL
    statutory: StatutoryProfile = field(default_factory=StatutoryProfile)

    def __post_init__(self) -> None:
        if (self.outlet_id is None) == (self.department_id is None):
            raise ValueError(
                f"Employee {self.employee_number} must belong to exactly one "
                f"of outlet or department"
            )
        if self.basic_salary < 0:
            raise ValueError("basic_salary cannot be negative")

    @property
    def grouping_id(self) -> UUID:
        return self.outlet_id if self.outlet_id is not None else self.department_id

    @property
    def grouping_type(self) -> GroupingType:
        return GroupingType.OUTLET if self.outlet_id is not None else GroupingType.DEPARTMENT

    @property
    def is_part_time(self) -> bool:
        return self.work_type == WorkType.PART_TIME
