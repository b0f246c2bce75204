"""Tests for CSV and JSON export of detail rows."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

import pytest

from idscheck.compliance.report import DetailRow
from idscheck.export import CSV_HEADER, to_csv, to_json, write_csv, write_json


@pytest.fixture()
def rows() -> list[DetailRow]:
    return [
        DetailRow(
            rule_id="R1",
            rule_title="Wall fire rating",
            global_id="A",
            entity_class="IFCWALL",
            property_path="Pset_WallCommon.FireRating",
            expected="Values: 60, 90",
            actual="60",
            status="PASSED",
        ),
        DetailRow(
            rule_id="R1",
            rule_title='Wall "fire" rating',
            global_id="B",
            entity_class="IFCWALL",
            property_path="Pset_WallCommon.FireRating",
            reason="Value does not match expected list (60, 90)",
            actual="30\nminutes",
            status="FAILED",
        ),
        DetailRow(
            rule_id="R1",
            rule_title="Wall fire rating",
            global_id="C",
            entity_class="IFCDOOR",
            reason="Entity not applicable",
            status="NA",
        ),
    ]


class TestCsv:
    def test_header_and_crlf(self, rows):
        text = to_csv(rows)
        assert text.startswith(",".join(CSV_HEADER) + "\r\n")
        assert text.endswith("\r\n")

    def test_column_order(self, rows):
        first_data_line = to_csv(rows).split("\r\n")[1]
        assert first_data_line == (
            "R1,Wall fire rating,PASSED,A,IFCWALL,Pset_WallCommon.FireRating,"
            '"Values: 60, 90",60,'
        )

    def test_comma_in_reason_is_quoted(self, rows):
        text = to_csv(rows)
        assert '"Value does not match expected list (60, 90)"' in text

    def test_quotes_doubled_and_newlines_quoted(self, rows):
        text = to_csv(rows)
        assert '"Wall ""fire"" rating"' in text
        assert '"30\nminutes"' in text

    def test_parses_back(self, rows):
        records = list(csv.reader(io.StringIO(to_csv(rows), newline="")))
        assert records[0] == CSV_HEADER
        assert len(records) == 4
        assert records[2][7] == "30\nminutes"
        assert records[3][5:8] == ["", "", ""]

    def test_empty(self):
        assert to_csv([]) == ",".join(CSV_HEADER) + "\r\n"

    def test_no_filtering(self, rows):
        records = list(csv.reader(io.StringIO(to_csv(rows), newline="")))
        assert [r[2] for r in records[1:]] == ["PASSED", "FAILED", "NA"]

    def test_write(self, rows, tmp_path: Path):
        path = write_csv(rows, tmp_path / "out" / "report.csv")
        assert path.read_bytes().startswith(b"RuleId,RuleTitle,Status")
        assert b"\r\n" in path.read_bytes()


class TestJson:
    def test_camel_case_objects(self, rows):
        data = json.loads(to_json(rows))
        assert len(data) == 3
        assert data[0]["ruleId"] == "R1"
        assert data[0]["ifcClass"] == "IFCWALL"
        assert data[0]["propertyPath"] == "Pset_WallCommon.FireRating"
        assert data[2]["propertyPath"] is None
        assert data[2]["status"] == "NA"

    def test_write(self, rows, tmp_path: Path):
        path = write_json(rows, tmp_path / "report.json")
        assert json.loads(path.read_text(encoding="utf-8"))[1]["globalId"] == "B"
