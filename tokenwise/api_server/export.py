"""
Export helpers for the HTTP surface: CSV rendering of flat records.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping


def _csv_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return ""
    if isinstance(value, str):
        return '"' + value.replace('"', '""') + '"'
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_csv(records: Iterable[Mapping[str, Any]]) -> str:
    """
    Render records as CSV text.

    Header = keys of the first record. String fields are double-quoted, numbers
    are left bare, None becomes an empty field. Fields joined by ",", rows by "\\n".
    Empty input gives "".
    """
    rows = list(records)
    if not rows:
        return ""
    headers = list(rows[0].keys())
    lines = [",".join(headers)]
    for row in rows:
        lines.append(",".join(_csv_value(row.get(h)) for h in headers))
    return "\n".join(lines)
