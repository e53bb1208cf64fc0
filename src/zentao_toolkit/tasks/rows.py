"""Read task rows from a spreadsheet export.

The input is either CSV text (comma, semicolon or tab separated) or an `.xlsx`
workbook, whose first worksheet is read. Either way the first non-blank row
holds the headers.

Each row names a story id, a deadline token, and one person per configured
prefix column (e.g. frontend / backend / script). People are given by real
name; accounts are resolved later against the user list.
"""

from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from zentao_toolkit.state.manager import ColumnMapping

logger = logging.getLogger(__name__)

_BARE_DAY = re.compile(r"^\d{1,2}$")


class RowParseError(ValueError):
    """Raised when row input cannot be turned into task rows."""


@dataclass(frozen=True, slots=True)
class Assignee:
    prefix: str
    realname: str
    account: str = ""


@dataclass(frozen=True, slots=True)
class SourceRow:
    id: int
    deadline: str
    assignees: tuple[Assignee, ...] = field(default_factory=tuple)


def normalize_text(content: str) -> str:
    """Strip a UTF-8 BOM and normalise line endings."""

    if content.startswith("\ufeff"):
        content = content[1:]
    return content.replace("\r\n", "\n").replace("\r", "\n")


def detect_delimiter(header_line: str) -> str:
    commas = header_line.count(",")
    semicolons = header_line.count(";")
    tabs = header_line.count("\t")
    if tabs > commas and tabs > semicolons:
        return "\t"
    if semicolons > commas:
        return ";"
    return ","


def format_due_date(token: str, month: str) -> str:
    """Expand a bare day number into a date within `month` (`YYYY-MM`).

    `"5"` in `"2024-03"` becomes `"2024-03-05"`. Anything else is returned
    unchanged.
    """

    token = token.strip()
    if not token:
        return ""
    if "-" in token:
        return token
    if _BARE_DAY.match(token):
        return f"{month}-{token.zfill(2)}"
    return token


def _parse_id(value: str) -> int | None:
    match = re.match(r"^\s*(\d+)", value)
    return int(match.group(1)) if match else None


def _cell(cells: list[str], index: int) -> str:
    return cells[index] if index < len(cells) else ""


def parse_rows(content: str, mapping: ColumnMapping) -> list[SourceRow]:
    """Parse CSV text into rows using the configured column names.

    Rows whose id is not a number, or that name nobody in any prefix column,
    are skipped.

    Raises:
        RowParseError: if the input is empty, a required column is missing, or
            no usable row remains.
    """

    text = normalize_text(content).strip()
    if not text:
        raise RowParseError("File is empty")

    delimiter = detect_delimiter(text.split("\n", 1)[0])
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    return _rows_from_table(list(reader), mapping, source=f"csv delimiter {delimiter!r}")


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_workbook(path: Path, mapping: ColumnMapping) -> list[SourceRow]:
    """Parse the first worksheet of an `.xlsx` workbook.

    Cells are read as values (formulas resolved to their cached results).
    Whole numbers stored as floats lose their `.0` and date cells become
    `YYYY-MM-DD`, so they read the same as in a CSV export.
    """

    try:
        workbook = load_workbook(filename=path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        raise RowParseError(f"{path.name}: not a readable .xlsx workbook ({e})") from e

    try:
        if not workbook.worksheets:
            raise RowParseError(f"{path.name}: workbook has no worksheets")
        sheet = workbook.worksheets[0]
        source = f"worksheet {sheet.title!r}"
        table = [
            [_cell_text(value) for value in values]
            for values in sheet.iter_rows(values_only=True)
        ]
    finally:
        workbook.close()

    return _rows_from_table(table, mapping, source=source)


def _rows_from_table(
    table: list[list[str]], mapping: ColumnMapping, *, source: str
) -> list[SourceRow]:
    records = iter(table)
    headers: list[str] = []
    for values in records:
        if any(v.strip() for v in values):
            headers = [h.strip() for h in values]
            break
    if not headers:
        raise RowParseError("File is empty")

    missing: list[str] = []
    if mapping.id_column not in headers:
        missing.append(f'ID column "{mapping.id_column}"')
    if mapping.deadline_column not in headers:
        missing.append(f'Deadline column "{mapping.deadline_column}"')
    if missing:
        raise RowParseError(
            f"Required columns not found: {', '.join(missing)}. "
            f"Available columns: {', '.join(h for h in headers if h)}"
        )

    id_index = headers.index(mapping.id_column)
    deadline_index = headers.index(mapping.deadline_column)
    prefix_indices = [(p, headers.index(p)) for p in mapping.prefix_columns if p in headers]

    rows: list[SourceRow] = []
    data_rows = 0
    for values in records:
        if not any(v.strip() for v in values):
            continue
        data_rows += 1
        cells = [v.strip() for v in values]

        row_id = _parse_id(_cell(cells, id_index))
        if row_id is None:
            continue

        assignees = tuple(
            Assignee(prefix=prefix, realname=_cell(cells, index))
            for prefix, index in prefix_indices
            if _cell(cells, index)
        )
        if not assignees:
            continue

        deadline = _cell(cells, deadline_index)
        rows.append(SourceRow(id=row_id, deadline=deadline, assignees=assignees))

    if not rows:
        raise RowParseError(
            f"No valid data rows found. Processed {data_rows} data rows but none contained "
            "a valid ID and at least one assignee."
        )

    logger.info(
        "Parsed task rows",
        extra={"rows": len(rows), "data_rows": data_rows, "source": source},
    )
    return rows


def read_rows_file(path: Path, mapping: ColumnMapping) -> list[SourceRow]:
    """Read and parse a CSV export or `.xlsx` workbook from disk."""

    suffix = path.suffix.lower()
    if suffix == ".xlsx":
        return parse_workbook(path, mapping)
    if suffix == ".xls":
        raise RowParseError(f"{path.name}: legacy .xls is not supported; save it as .xlsx or CSV")
    return parse_rows(path.read_text(encoding="utf-8-sig"), mapping)
