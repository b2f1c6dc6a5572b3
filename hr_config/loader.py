"""
Configuration loader (``hr_config.loader``).

Responsibility
--------------
Parses statutory table YAML into frozen ``hr_config.schema`` dataclasses and
stamps each table set with a SHA-256 checksum of its canonical data, so the
tables in force for a payroll run are traceable to a specific file.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid dates or amounts  -> ``ValueError`` / ``decimal.InvalidOperation``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from hr_config.schema import (
    ContributionRow,
    ContributionTable,
    EISTable,
    EPFTable,
    PCBBracket,
    PCBReliefs,
    PCBTable,
    SOCSOTable,
    StatutoryTables,
    StatutoryTableSet,
)
from hr_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DATA_DIR = Path(__file__).parent / "data"


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _decimal_fields(data: dict[str, Any], int_fields: tuple[str, ...] = ()) -> dict[str, Any]:
    return {
        k: int(v) if k in int_fields else _dec(v)
        for k, v in data.items()
    }


def parse_contribution_table(rows: list[list[Any]]) -> ContributionTable:
    return ContributionTable(rows=tuple(
        ContributionRow(
            max_wage=_dec(max_wage) if max_wage is not None else None,
            employee=_dec(employee),
            employer=_dec(employer),
        )
        for max_wage, employee, employer in rows
    ))


def parse_pcb(data: dict[str, Any]) -> PCBTable:
    brackets = tuple(
        PCBBracket(lower=_dec(lower), rate=_dec(rate), base_tax=_dec(base))
        for lower, rate, base in data["brackets"]
    )
    extra = {
        k: _dec(data[k])
        for k in ("rebate_threshold", "individual_rebate", "spouse_rebate", "minimum_deduction")
        if k in data
    }
    return PCBTable(
        brackets=brackets,
        reliefs=PCBReliefs(**_decimal_fields(data.get("reliefs", {}))),
        **extra,
    )


def parse_statutory_tables(data: dict[str, Any]) -> StatutoryTables:
    """Parse one table version.  Requires name, effective_from and all four schedules."""
    socso = data["socso"]
    eis = data["eis"]
    return StatutoryTables(
        name=data["name"],
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        epf=EPFTable(**_decimal_fields(data["epf"], int_fields=("senior_age",))),
        socso=SOCSOTable(
            table=parse_contribution_table(socso["rows"]),
            category_two_age=int(socso.get("category_two_age", 60)),
        ),
        eis=EISTable(
            table=parse_contribution_table(eis["rows"]),
            age_cutoff=int(eis.get("age_cutoff", 57)),
        ),
        pcb=parse_pcb(data["pcb"]),
        checksum=compute_checksum(data),
    )


def load_statutory_tables(paths: list[Path] | None = None) -> StatutoryTableSet:
    """Load table versions from ``paths`` (default: every YAML under data/)."""
    if paths is None:
        paths = sorted(DATA_DIR.glob("statutory_*.yaml"))
    tables = tuple(parse_statutory_tables(load_yaml_file(p)) for p in paths)
    for t in tables:
        logger.info(
            "statutory_tables_loaded",
            extra={
                "table_name": t.name,
                "effective_from": t.effective_from,
                "effective_to": t.effective_to,
                "checksum": t.checksum,
            },
        )
    return StatutoryTableSet(tables=tables)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form.  Identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
