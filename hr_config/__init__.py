"""
HR configuration: tenant policy schema and statutory tables.

    from hr_config import load_statutory_tables, TenantPolicy

    tables = load_statutory_tables().for_period(date(2026, 2, 1))
"""

from hr_config.loader import compute_checksum, load_statutory_tables
from hr_config.schema import (
    BuyoutDirection,
    NoticeTier,
    OTMultipliers,
    OTRoundingPolicy,
    RoundingDirection,
    RoundingMethod,
    StatutoryInclusions,
    StatutoryTables,
    StatutoryTableSet,
    TenantPolicy,
)

__all__ = [
    "BuyoutDirection",
    "NoticeTier",
    "OTMultipliers",
    "OTRoundingPolicy",
    "RoundingDirection",
    "RoundingMethod",
    "StatutoryInclusions",
    "StatutoryTables",
    "StatutoryTableSet",
    "TenantPolicy",
    "compute_checksum",
    "load_statutory_tables",
]
