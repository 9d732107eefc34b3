from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

TRUNCATE_AT = 100
ELLIPSIS = "..."

# null | bool | number | string | list | mapping
JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


def stringify_value(value: JsonValue) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)


def truncate_text(text: str, max_length: int = TRUNCATE_AT) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS


def collect_columns(records: Sequence[Any]) -> List[str]:
    keys = set()
    for record in records:
        if isinstance(record, Mapping):
            keys.update(str(k) for k in record.keys())
    return sorted(keys)


@dataclass(frozen=True)
class Cell:
    full: str

    @property
    def is_long(self) -> bool:
        return len(self.full) > TRUNCATE_AT

    @property
    def compact(self) -> str:
        return truncate_text(self.full)


@dataclass(frozen=True)
class ResultTable:
    """Records laid out under the union of their keys, in the given order."""

    columns: List[str]
    rows: List[List[Cell]]

    @classmethod
    def from_records(cls, records: Sequence[Any], limit: Optional[int] = None) -> "ResultTable":
        items = list(records if limit is None else records[:limit])
        columns = collect_columns(items)
        rows: List[List[Cell]] = []
        for record in items:
            mapping = record if isinstance(record, Mapping) else {}
            rows.append([Cell(stringify_value(mapping.get(col))) for col in columns])
        return cls(columns=columns, rows=rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def summary(self) -> str:
        count = len(self.rows)
        return f"Showing {count} result{'' if count == 1 else 's'} in table format"

    def cell(self, row: int, column: str) -> Cell:
        return self.rows[row][self.columns.index(column)]

    def render_text(self, max_width: int = 40) -> str:
        """Plain fixed-width rendering with a leading row number column."""
        if not self.rows:
            return "(no results)"
        width = max(4, int(max_width))
        header = ["#"] + self.columns
        body = [
            [str(idx + 1)] + [_one_line(cell.compact, width) for cell in row]
            for idx, row in enumerate(self.rows)
        ]
        widths = [
            max(len(_one_line(header[i], width)), *(len(line[i]) for line in body))
            for i in range(len(header))
        ]
        lines = [
            " | ".join(_one_line(h, width).ljust(widths[i]) for i, h in enumerate(header)),
            "-+-".join("-" * w for w in widths),
        ]
        for line in body:
            lines.append(" | ".join(value.ljust(widths[i]) for i, value in enumerate(line)))
        return "\n".join(lines)


def _one_line(text: str, width: int) -> str:
    flat = " ".join(text.split())
    if len(flat) <= width:
        return flat
    return flat[: max(1, width - 1)] + "…"
