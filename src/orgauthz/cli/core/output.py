"""Table and JSON printers shared by the orgauthz commands."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

import typer

__all__ = ["ColumnSpec", "print_json", "print_rows"]

# (header, key or attribute name | callable taking the row)
ColumnSpec = tuple[str, str | Callable[[Any], Any]]

_EMPTY = "-"
_GUTTER = "  "


def _cell(row: Any, source: str | Callable[[Any], Any]) -> str:
    if callable(source):
        value = source(row)
    elif isinstance(row, Mapping):
        value = row.get(source)
    else:
        value = getattr(row, source, None)
    return _EMPTY if value is None or value == "" else str(value)


def print_rows(rows: Iterable[Any], columns: Sequence[ColumnSpec]) -> None:
    """Print a header line followed by one padded line per row."""

    headers = [header for header, _ in columns]
    table = [[_cell(row, source) for _, source in columns] for row in rows]
    if not table:
        typer.echo("No results.")
        return

    widths = [max(len(line[index]) for line in (headers, *table)) for index in range(len(headers))]
    for line in (headers, *table):
        typer.echo(_GUTTER.join(text.ljust(width) for text, width in zip(line, widths)).rstrip())


def print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str))
