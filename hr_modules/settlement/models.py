"""
Settlement Domain Models (``hr_modules.settlement.models``).

``Settlement`` is the stored view of a ``SettlementComputation``: the dates
and waiver flag it was computed from plus every figure, so a PROCESSED
settlement can be reproduced and audited without recomputing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from hr_kernel.domain.money import ZERO


class SettlementStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSED = "PROCESSED"


@dataclass(frozen=True)
class Settlement:
    settlement_id: UUID | None
    employee_id: UUID
    notice_date: date
    last_working_day: date
    notice_waived: bool
    status: SettlementStatus
    tenure_months: int
    required_notice_days: int
    shortfall_days: int
    daily_rate: Decimal
    prorated_basic: Decimal
    encashment_days: Decimal
    encashment: Decimal
    claims: Decimal
    prorated_bonus: Decimal
    payment_in_lieu: Decimal
    gross: Decimal
    epf_employee: Decimal = ZERO
    socso_employee: Decimal = ZERO
    eis_employee: Decimal = ZERO
    pcb: Decimal = ZERO
    notice_buyout: Decimal = ZERO
    advance_recovery: Decimal = ZERO
    net: Decimal = ZERO
    statutory_table: str = ""

    @property
    def statutory_deductions(self) -> Decimal:
        return self.epf_employee + self.socso_employee + self.eis_employee + self.pcb

    @property
    def is_processed(self) -> bool:
        return self.status == SettlementStatus.PROCESSED
