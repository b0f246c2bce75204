"""Result export: detail rows to CSV and JSON.

The exporter serializes exactly the rows it is given; filtering belongs to
the caller (see ``ValidationSession.filter_rows``).
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Iterable

from idscheck.compliance.report import DetailRow

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "RuleId",
    "RuleTitle",
    "Status",
    "GlobalId",
    "IfcClass",
    "Property",
    "Expected",
    "Actual",
    "Reason",
]


def _csv_record(row: DetailRow) -> list[str]:
    return [
        row.rule_id,
        row.rule_title,
        row.status,
        row.global_id,
        row.entity_class,
        row.property_path or "",
        row.expected or "",
        row.actual or "",
        row.reason or "",
    ]


def to_csv(rows: Iterable[DetailRow]) -> str:
    """Render *rows* as CSV with CRLF line endings.

    Fields holding a comma, quote or newline are quoted, inner quotes doubled.
    """
    buf = io.StringIO(newline="")
    writer = csv.writer(buf, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow(_csv_record(row))
    return buf.getvalue()


def to_json(rows: Iterable[DetailRow], *, indent: int | None = 2) -> str:
    """Render *rows* as a JSON array of camelCase objects."""
    return json.dumps([row.to_dict() for row in rows], indent=indent, ensure_ascii=False)


def write_csv(rows: Iterable[DetailRow], path: str | Path) -> Path:
    """Write *rows* as CSV to *path* and return the path."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(to_csv(rows), encoding="utf-8", newline="")
    logger.info("Wrote CSV report to %s", p)
    return p


def write_json(rows: Iterable[DetailRow], path: str | Path) -> Path:
    """Write *rows* as JSON to *path* and return the path."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(to_json(rows), encoding="utf-8")
    logger.info("Wrote JSON report to %s", p)
    return p
