"""
Payroll exports: bank disbursement and statutory contribution files.

Writes a finalised run's items as CSV (``csv.DictWriter``; configurable
delimiter, encoding and quoting) or as an XLSX workbook via openpyxl, one
sheet per statutory body plus a summary.  Amounts are written as two-place
strings to CSV and as numbers to XLSX.
"""

from __future__ import annotations

import csv
from collections.abc import Sequence
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font

from hr_kernel.domain.money import money_sum

_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "nonnumeric": csv.QUOTE_NONNUMERIC,
}

BANK_COLUMNS = ("employee_number", "name", "net")

STATUTORY_COLUMNS = (
    "employee_number",
    "name",
    "statutory_base",
    "epf_employee",
    "epf_employer",
    "socso_employee",
    "socso_employer",
    "eis_employee",
    "eis_employer",
    "pcb",
)

# sheet -> the amount columns it carries
STATUTORY_SHEETS = {
    "EPF": ("epf_employee", "epf_employer"),
    "SOCSO": ("socso_employee", "socso_employer"),
    "EIS": ("eis_employee", "eis_employer"),
    "PCB": ("pcb",),
}


class ExportKind(str, Enum):
    BANK_CSV = "bank_csv"
    STATUTORY_CSV = "statutory_csv"
    STATUTORY_XLSX = "statutory_xlsx"


def _get_quoting(options: dict[str, Any]) -> int:
    q = options.get("quoting", "minimal")
    if isinstance(q, int):
        return q
    return _QUOTING.get(str(q).lower(), csv.QUOTE_MINIMAL)


def _text(value: Any) -> str:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return "" if value is None else str(value)


def write_csv(
    path: Path,
    columns: Sequence[str],
    rows: Sequence[dict[str, Any]],
    options: dict[str, Any] | None = None,
) -> int:
    """Write ``rows`` under a header of ``columns``; returns the row count."""
    options = options or {}
    with path.open("w", encoding=options.get("encoding", "utf-8"), newline="") as f:
        writer = csv.DictWriter(
            f,
            fieldnames=list(columns),
            delimiter=options.get("delimiter", ","),
            quoting=_get_quoting(options),
            extrasaction="ignore",
        )
        if options.get("has_header", True):
            writer.writeheader()
        for row in rows:
            writer.writerow({c: _text(row.get(c)) for c in columns})
    return len(rows)


def write_statutory_workbook(
    path: Path,
    rows: Sequence[dict[str, Any]],
    period: str,
) -> int:
    """One sheet per statutory body, plus a per-body summary sheet."""
    wb = Workbook()
    summary = wb.active
    summary.title = "Summary"
    summary.append(["Period", period])
    summary.append([])
    summary.append(["Body", "Employee", "Employer", "Total"])
    for cell in summary[3]:
        cell.font = Font(bold=True)

    for sheet_name, amount_columns in STATUTORY_SHEETS.items():
        ws = wb.create_sheet(sheet_name)
        ws.append(["employee_number", "name", "statutory_base", *amount_columns])
        for cell in ws[1]:
            cell.font = Font(bold=True)
        for row in rows:
            ws.append([
                row["employee_number"],
                row["name"],
                float(row["statutory_base"]),
                *(float(row[c]) for c in amount_columns),
            ])
        employee_total = money_sum(row[amount_columns[0]] for row in rows)
        employer_total = (
            money_sum(row[amount_columns[1]] for row in rows)
            if len(amount_columns) > 1 else Decimal("0")
        )
        summary.append([
            sheet_name,
            float(employee_total),
            float(employer_total),
            float(employee_total + employer_total),
        ])

    wb.save(path)
    return len(rows)
