"""Plain-text tables for list-style command output."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Mapping, Sequence

from imgapi_cli.errors import InvalidFieldError

COLUMN_GAP = "  "
PLACEHOLDER = "-"


def _split(fields: str | None) -> list[str]:
    if not fields:
        return []
    return [item.strip() for item in fields.split(",") if item.strip()]


def _cell(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _width(value: Any) -> int:
    return 0 if value is None else len(_cell(value))


def _compare_values(a: Any, b: Any) -> int:
    if a == b:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    try:
        return -1 if a < b else 1
    except TypeError:
        left, right = _cell(a), _cell(b)
        if left == right:
            return 0
        return -1 if left < right else 1


def sort_records(items: Sequence[Mapping[str, Any]], sort_keys: Sequence[str]) -> list:
    """Stable multi-key sort; a ``-`` prefix sorts that key descending."""
    keys = []
    for key in sort_keys:
        descending = key.startswith("-")
        keys.append((key[1:] if descending else key, descending))

    def compare(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        for field, descending in keys:
            result = _compare_values(a.get(field), b.get(field))
            if result:
                return -result if descending else result
        return 0

    return sorted(items, key=cmp_to_key(compare))


def validate_fields(
    columns: str, valid_fields: str, sort: str | None = None
) -> tuple[list[str], list[str]]:
    """Split and check column and sort field lists against ``valid_fields``."""
    valid = set(_split(valid_fields))
    column_names = _split(columns)
    sort_keys = _split(sort)
    for column in column_names:
        if column not in valid:
            raise InvalidFieldError("output", column)
    for key in sort_keys:
        field = key[1:] if key.startswith("-") else key
        if not field or field not in valid:
            raise InvalidFieldError("sort", key)
    return column_names, sort_keys


def tabulate(
    items: Sequence[Mapping[str, Any]],
    *,
    columns: str,
    valid_fields: str,
    sort: str | None = None,
    skip_header: bool = False,
) -> list[str]:
    """Render ``items`` as aligned text rows.

    ``columns``, ``valid_fields`` and ``sort`` are comma-separated field
    lists. Every column and sort field must be a valid field, otherwise
    ``InvalidFieldError`` names the first offender. An empty ``items``
    renders nothing, not even the header.
    """
    if not items:
        return []

    column_names, sort_keys = validate_fields(columns, valid_fields, sort)

    widths = {column: 0 for column in column_names}
    for item in items:
        for column in column_names:
            widths[column] = max(widths[column], _width(item.get(column)))

    rows = sort_records(items, sort_keys) if sort_keys else list(items)

    def render(cells: Sequence[str]) -> str:
        padded = [cell.ljust(widths[column]) for column, cell in zip(column_names, cells)]
        return COLUMN_GAP.join(padded).rstrip()

    lines = []
    if not skip_header:
        lines.append(render([column.upper() for column in column_names]))
    for item in rows:
        lines.append(render([_cell(item.get(column)) for column in column_names]))
    return lines
