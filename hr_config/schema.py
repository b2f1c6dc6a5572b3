"""
HR configuration schema.

Two kinds of configuration feed the engines:

* ``TenantPolicy`` -- per-tenant knobs persisted as JSON on the tenant row
  (standard day, OT rounding, rest days, statutory base inclusions, pay
  multipliers, notice tiers).  ``TenantPolicy.from_dict`` turns that
  document into a frozen dataclass and raises ``PolicyMissingError`` when a
  required knob is absent.
* ``StatutoryTables`` -- EPF / SOCSO / EIS / PCB schedules with an
  effective-from/to window, loaded from YAML by ``hr_config.loader``.

Both are read-only after load; a reload is an explicit admin action.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Self
from uuid import UUID

from hr_kernel.exceptions import PolicyMissingError, RateTableMissingError
from hr_kernel.logging_config import get_logger

logger = get_logger("config.schema")

DEFAULT_TIMEZONE = "Asia/Kuala_Lumpur"
SATURDAY = 5
SUNDAY = 6


# ---------------------------------------------------------------------------
# Overtime
# ---------------------------------------------------------------------------


class RoundingMethod(str, Enum):
    MINUTE = "MINUTE"
    QUARTER_HOUR = "15MIN"
    HALF_HOUR = "30MIN"
    HOUR = "HOUR"

    @property
    def granularity(self) -> int:
        return {"MINUTE": 1, "15MIN": 15, "30MIN": 30, "HOUR": 60}[self.value]


class RoundingDirection(str, Enum):
    NEAREST = "NEAREST"
    DOWN = "DOWN"
    UP = "UP"


@dataclass(frozen=True)
class OTRoundingPolicy:
    method: RoundingMethod = RoundingMethod.HALF_HOUR
    direction: RoundingDirection = RoundingDirection.DOWN
    minimum_minutes: int = 60

    def __post_init__(self) -> None:
        if self.minimum_minutes < 0:
            raise ValueError("minimum_minutes cannot be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            method=RoundingMethod(data.get("method", cls.method.value)),
            direction=RoundingDirection(data.get("direction", cls.direction.value)),
            minimum_minutes=int(data.get("minimum_minutes", cls.minimum_minutes)),
        )


@dataclass(frozen=True)
class OTMultipliers:
    normal: Decimal = Decimal("1.5")
    weekend: Decimal = Decimal("1.5")
    public_holiday: Decimal = Decimal("2.0")

    def __post_init__(self) -> None:
        for name in ("normal", "weekend", "public_holiday"):
            if getattr(self, name) <= 0:
                raise ValueError(f"OT multiplier {name} must be positive")


@dataclass(frozen=True)
class StatutoryInclusions:
    """Which earnings join the statutory contribution base besides basic pay."""

    allowance: bool = False
    overtime: bool = False
    holiday_pay: bool = False
    incentive: bool = False
    commission: bool = True


@dataclass(frozen=True)
class NoticeTier:
    """Required notice for tenure below ``below_months`` (None = no upper bound)."""

    below_months: int | None
    notice_days: int


DEFAULT_NOTICE_TIERS: tuple[NoticeTier, ...] = (
    NoticeTier(below_months=24, notice_days=28),
    NoticeTier(below_months=60, notice_days=42),
    NoticeTier(below_months=None, notice_days=56),
)


class BuyoutDirection(str, Enum):
    EMPLOYEE_PAYS = "employee_pays"
    COMPANY_PAYS = "company_pays"


# ---------------------------------------------------------------------------
# Tenant policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantPolicy:
    """
    Frozen per-tenant rule set.

    ``standard_daily_minutes`` is required; every other knob has a default.
    ``ot_threshold_minutes`` falls back to the standard day.
    """

    tenant_id: UUID
    standard_daily_minutes: int
    ot_threshold_minutes: int | None = None
    ot_rounding: OTRoundingPolicy = field(default_factory=OTRoundingPolicy)
    ot_multipliers: OTMultipliers = field(default_factory=OTMultipliers)
    rest_days: frozenset[int] = frozenset({SATURDAY, SUNDAY})
    inclusions: StatutoryInclusions = field(default_factory=StatutoryInclusions)
    timezone: str = DEFAULT_TIMEZONE
    ph_multiplier: Decimal = Decimal("2.0")
    standard_work_days: int = 22
    part_time_hourly_rate: Decimal = Decimal("8.72")
    auto_closure_minute: int = 0
    overnight_cutoff_minutes: int = 420
    late_grace_minutes: int = 10
    wrong_shift_tolerance_minutes: int = 120
    notice_tiers: tuple[NoticeTier, ...] = DEFAULT_NOTICE_TIERS
    buyout_direction: BuyoutDirection = BuyoutDirection.EMPLOYEE_PAYS
    encashment_rate: Decimal = Decimal("1.0")
    advance_leave_recovery: bool = False
    prorated_bonus_enabled: bool = False
    bonus_months: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.standard_daily_minutes <= 0:
            raise ValueError("standard_daily_minutes must be positive")
        if not self.rest_days <= frozenset(range(7)):
            raise ValueError(f"rest_days must be weekday numbers 0-6, got {sorted(self.rest_days)}")
        if len(self.rest_days) == 7:
            raise ValueError("a week needs at least one working day")
        if not 0 <= self.auto_closure_minute < 1440:
            raise ValueError("auto_closure_minute must be within a day")
        if self.standard_work_days <= 0:
            raise ValueError("standard_work_days must be positive")
        if not self.notice_tiers or self.notice_tiers[-1].below_months is not None:
            raise ValueError("notice_tiers must end with an open-ended tier")

    @property
    def threshold_minutes(self) -> int:
        if self.ot_threshold_minutes is not None:
            return self.ot_threshold_minutes
        return self.standard_daily_minutes

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        tenant_id: UUID,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> Self:
        """Build from the tenant ``settings`` JSON document."""
        if data.get("standard_daily_minutes") is None:
            raise PolicyMissingError(str(tenant_id), "standard_daily_minutes")

        kwargs: dict[str, Any] = {
            "tenant_id": tenant_id,
            "standard_daily_minutes": int(data["standard_daily_minutes"]),
            "timezone": timezone,
        }
        if data.get("ot_threshold_minutes") is not None:
            kwargs["ot_threshold_minutes"] = int(data["ot_threshold_minutes"])
        if "ot_rounding" in data:
            kwargs["ot_rounding"] = OTRoundingPolicy.from_dict(data["ot_rounding"])
        if "ot_multipliers" in data:
            kwargs["ot_multipliers"] = OTMultipliers(
                **{k: Decimal(str(v)) for k, v in data["ot_multipliers"].items()}
            )
        if "rest_days" in data:
            kwargs["rest_days"] = frozenset(int(d) for d in data["rest_days"])
        if "inclusions" in data:
            kwargs["inclusions"] = StatutoryInclusions(**data["inclusions"])
        if "notice_tiers" in data:
            kwargs["notice_tiers"] = tuple(
                NoticeTier(
                    below_months=t.get("below_months"),
                    notice_days=int(t["notice_days"]),
                )
                for t in data["notice_tiers"]
            )
        if "buyout_direction" in data:
            kwargs["buyout_direction"] = BuyoutDirection(data["buyout_direction"])
        for key in ("ph_multiplier", "part_time_hourly_rate", "encashment_rate", "bonus_months"):
            if key in data:
                kwargs[key] = Decimal(str(data[key]))
        for key in (
            "standard_work_days",
            "auto_closure_minute",
            "overnight_cutoff_minutes",
            "late_grace_minutes",
            "wrong_shift_tolerance_minutes",
        ):
            if key in data:
                kwargs[key] = int(data[key])
        for key in ("advance_leave_recovery", "prorated_bonus_enabled"):
            if key in data:
                kwargs[key] = bool(data[key])

        logger.debug(
            "tenant_policy_loaded",
            extra={"tenant_id": str(tenant_id), "keys": sorted(data.keys())},
        )
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Statutory tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EPFTable:
    employee_rate: Decimal = Decimal("0.11")
    employer_rate_low: Decimal = Decimal("0.13")
    employer_rate_high: Decimal = Decimal("0.12")
    employer_threshold: Decimal = Decimal("5000")
    wage_band: Decimal = Decimal("100")
    senior_age: int = 60
    senior_employee_rate: Decimal = Decimal("0")
    senior_employer_rate: Decimal = Decimal("0.04")
    foreign_employee_rate: Decimal = Decimal("0.02")
    foreign_employer_rate: Decimal = Decimal("0.02")


@dataclass(frozen=True)
class ContributionRow:
    """``max_wage is None`` marks the above-ceiling row."""

    max_wage: Decimal | None
    employee: Decimal
    employer: Decimal


@dataclass(frozen=True)
class ContributionTable:
    rows: tuple[ContributionRow, ...]

    def __post_init__(self) -> None:
        if not self.rows or self.rows[-1].max_wage is not None:
            raise ValueError("contribution table must end with an above-ceiling row")
        bounded = [r.max_wage for r in self.rows[:-1]]
        if bounded != sorted(bounded):
            raise ValueError("contribution table rows must be sorted by max_wage")

    def lookup(self, wage: Decimal) -> ContributionRow:
        for row in self.rows:
            if row.max_wage is None or wage <= row.max_wage:
                return row
        return self.rows[-1]


@dataclass(frozen=True)
class SOCSOTable:
    """Category 1 below ``category_two_age``; category 2 (employer only) from it."""

    table: ContributionTable
    category_two_age: int = 60


@dataclass(frozen=True)
class EISTable:
    table: ContributionTable
    age_cutoff: int = 57


@dataclass(frozen=True)
class PCBBracket:
    """Chargeable income above ``lower`` taxed at ``rate`` on top of ``base_tax``."""

    lower: Decimal
    rate: Decimal
    base_tax: Decimal


@dataclass(frozen=True)
class PCBReliefs:
    individual: Decimal = Decimal("9000")
    spouse: Decimal = Decimal("4000")
    per_child: Decimal = Decimal("2000")
    epf_cap: Decimal = Decimal("4000")
    socso_eis_cap: Decimal = Decimal("350")


@dataclass(frozen=True)
class PCBTable:
    brackets: tuple[PCBBracket, ...]
    reliefs: PCBReliefs = field(default_factory=PCBReliefs)
    rebate_threshold: Decimal = Decimal("35000")
    individual_rebate: Decimal = Decimal("400")
    spouse_rebate: Decimal = Decimal("400")
    minimum_deduction: Decimal = Decimal("10")

    def __post_init__(self) -> None:
        if not self.brackets or self.brackets[0].lower != 0:
            raise ValueError("PCB brackets must start at zero")

    def bracket_for(self, chargeable: Decimal) -> PCBBracket:
        chosen = self.brackets[0]
        for bracket in self.brackets:
            if chargeable > bracket.lower:
                chosen = bracket
        return chosen


@dataclass(frozen=True)
class StatutoryTables:
    name: str
    effective_from: date
    epf: EPFTable
    socso: SOCSOTable
    eis: EISTable
    pcb: PCBTable
    effective_to: date | None = None
    checksum: str = ""

    def covers(self, on: date) -> bool:
        if on < self.effective_from:
            return False
        return self.effective_to is None or on <= self.effective_to


@dataclass(frozen=True)
class StatutoryTableSet:
    """All loaded table versions; ``for_period`` picks the one in force."""

    tables: tuple[StatutoryTables, ...]

    def for_period(self, on: date) -> StatutoryTables:
        matches = [t for t in self.tables if t.covers(on)]
        if not matches:
            raise RateTableMissingError(on)
        return max(matches, key=lambda t: t.effective_from)
