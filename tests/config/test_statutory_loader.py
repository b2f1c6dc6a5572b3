"""
Tests for statutory table loading and version selection.
"""

from datetime import date
from decimal import Decimal

import pytest
import yaml

from hr_config import compute_checksum, load_statutory_tables
from hr_config.loader import DATA_DIR, load_yaml_file, parse_date, parse_statutory_tables
from hr_config.schema import (
    ContributionRow,
    ContributionTable,
    PCBBracket,
    PCBTable,
)
from hr_kernel.exceptions import RateTableMissingError

BUNDLED = DATA_DIR / "statutory_my_2024.yaml"


class TestBundledTables:
    def test_loads_my_2024(self, statutory_tables):
        tables = statutory_tables.for_period(date(2026, 2, 28))

        assert tables.name == "MY-2024"
        assert tables.effective_from == date(2024, 1, 1)
        assert tables.effective_to is None
        assert len(tables.checksum) == 64

    def test_ceiling_rows(self, statutory_tables):
        tables = statutory_tables.for_period(date(2026, 2, 28))

        assert tables.socso.table.lookup(Decimal("99999")).employee == Decimal("29.75")
        assert tables.eis.table.lookup(Decimal("99999")).employer == Decimal("11.90")

    def test_pcb_brackets(self, statutory_tables):
        pcb = statutory_tables.for_period(date(2026, 2, 28)).pcb

        assert pcb.bracket_for(Decimal("46650")).lower == Decimal("35000")
        assert pcb.bracket_for(Decimal("35000")).lower == Decimal("20000")
        assert pcb.bracket_for(Decimal("0")).rate == 0

    def test_checksum_is_stable(self):
        data = load_yaml_file(BUNDLED)
        assert compute_checksum(data) == compute_checksum(dict(reversed(list(data.items()))))
        assert parse_statutory_tables(data).checksum == compute_checksum(data)


class TestVersioning:
    def test_newer_version_wins_from_its_start(self, tmp_path):
        data = load_yaml_file(BUNDLED)
        data["name"] = "MY-2026"
        data["effective_from"] = "2026-07-01"
        newer = tmp_path / "statutory_my_2026.yaml"
        newer.write_text(yaml.safe_dump(data))

        table_set = load_statutory_tables([BUNDLED, newer])

        assert table_set.for_period(date(2026, 6, 30)).name == "MY-2024"
        assert table_set.for_period(date(2026, 7, 31)).name == "MY-2026"

    def test_closed_version(self, tmp_path):
        data = load_yaml_file(BUNDLED)
        data["effective_to"] = "2024-12-31"
        path = tmp_path / "statutory_closed.yaml"
        path.write_text(yaml.safe_dump(data))

        table_set = load_statutory_tables([path])
        with pytest.raises(RateTableMissingError) as exc_info:
            table_set.for_period(date(2025, 1, 31))
        assert exc_info.value.code == "RATE_TABLE_MISSING"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_statutory_tables([tmp_path / "absent.yaml"])


class TestValidation:
    def test_contribution_table_needs_ceiling_row(self):
        with pytest.raises(ValueError):
            ContributionTable((ContributionRow(Decimal("100"), Decimal("1"), Decimal("2")),))

    def test_contribution_rows_sorted(self):
        with pytest.raises(ValueError):
            ContributionTable((
                ContributionRow(Decimal("200"), Decimal("1"), Decimal("2")),
                ContributionRow(Decimal("100"), Decimal("1"), Decimal("2")),
                ContributionRow(None, Decimal("1"), Decimal("2")),
            ))

    def test_pcb_must_start_at_zero(self):
        with pytest.raises(ValueError):
            PCBTable((PCBBracket(Decimal("5000"), Decimal("0.01"), Decimal("0")),))

    def test_parse_date(self):
        assert parse_date("2026-02-01") == date(2026, 2, 1)
        assert parse_date(date(2026, 2, 1)) == date(2026, 2, 1)
        with pytest.raises(ValueError):
            parse_date(20260201)
