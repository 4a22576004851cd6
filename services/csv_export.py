"""CSV export of result rows."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any

UTF8_BOM = "\ufeff"


def rows_to_csv(rows: list[dict[str, Any]], with_bom: bool = False) -> str:
    """Serialize *rows* with the first row's keys as header.

    ``None`` becomes an empty cell; values with commas, quotes or newlines
    are quoted.
    """
    if not rows:
        return ""
    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if row.get(h) is None else row.get(h) for h in headers])
    text = buffer.getvalue().rstrip("\n")
    return f"{UTF8_BOM}{text}" if with_bom else text


def export_rows(rows: list[dict[str, Any]], path: str | Path) -> Path:
    """Write *rows* to *path* as UTF-8 CSV with BOM (Excel friendly)."""
    target = Path(path)
    target.write_text(rows_to_csv(rows, with_bom=True), encoding="utf-8")
    return target
