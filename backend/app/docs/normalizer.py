"""Tabular normalizer - spreadsheets and delimited text to Markdown tables."""

import csv
import io
import zipfile
from collections.abc import Iterable, Sequence
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from backend.app.errors import NormalizationError
from backend.app.models.documents import DELIMITED_TYPES, WORKBOOK_TYPES

_DELIMITERS = {"csv": ",", "tsv": "\t"}


def normalize_tabular(data: bytes, file_type: str) -> str:
    """Convert a tabular payload into Markdown text.

    Pure function with no I/O beyond parsing the given bytes. Identical input
    always yields byte-identical output.

    Args:
        data: Raw file bytes
        file_type: Declared format tag (xlsx, xlsm, xls, csv, tsv)

    Returns:
        Markdown text without a trailing newline

    Raises:
        NormalizationError: If the payload cannot be parsed or the type is not tabular
    """
    kind = file_type.lower()
    if kind in WORKBOOK_TYPES:
        return workbook_to_markdown(data)
    if kind in DELIMITED_TYPES:
        return delimited_to_markdown(data, delimiter=_DELIMITERS[kind])
    raise NormalizationError(f"Unsupported tabular type: {file_type!r}")


def workbook_to_markdown(data: bytes) -> str:
    """Render every sheet of a workbook as a headed Markdown table.

    Strategy:
        1. Sheets in workbook order, each headed "## Sheet: <name>"
        2. Rows with no values are skipped
        3. First remaining row is the header; table width is the widest
           non-empty column in the sheet
        4. Sheets with no rows emit only their heading
        5. Sheets are separated by a blank line
    """
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise NormalizationError(f"Unreadable workbook: {e}") from e

    try:
        sheets = [
            (sheet.title, [list(row) for row in sheet.iter_rows(values_only=True)])
            for sheet in workbook.worksheets
        ]
    except Exception as e:
        # Corrupt sheet XML surfaces as assorted parser errors
        raise NormalizationError(f"Unreadable worksheet: {e}") from e
    finally:
        workbook.close()

    blocks: list[str] = []
    for title, all_rows in sheets:
        rows = [row for row in all_rows if _last_filled_index(row) >= 0]

        heading = f"## Sheet: {title}"
        if not rows:
            blocks.append(heading)
            continue

        width = max(_last_filled_index(row) for row in rows) + 1
        table = render_table(_fit(rows[0], width), (_fit(row, width) for row in rows[1:]))
        blocks.append(f"{heading}\n\n{table}")

    return "\n\n".join(blocks)


def delimited_to_markdown(data: bytes, *, delimiter: str = ",") -> str:
    """Render delimited text as one Markdown table.

    The first row supplies the field names (column order preserved). Each
    following record becomes a body row in that column order; absent fields
    render as empty cells. N records produce exactly N + 2 lines; no records
    produce an empty string.
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise NormalizationError(f"Delimited input is not valid UTF-8: {e}") from e

    reader = csv.DictReader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    try:
        records = list(reader)
        headers = list(reader.fieldnames or [])
    except csv.Error as e:
        raise NormalizationError(f"Malformed delimited input at line {reader.line_num}: {e}") from e

    if not records:
        return ""

    return render_table(headers, ([record.get(h) for h in headers] for record in records))


def render_table(headers: Sequence[Any], rows: Iterable[Sequence[Any]]) -> str:
    """Render a header plus body rows as pipe-delimited Markdown lines."""
    width = len(headers)
    lines = [
        _render_row(headers),
        "| " + " | ".join("---" for _ in range(width)) + " |",
    ]
    for row in rows:
        cells = list(row)
        if len(cells) < width:
            cells.extend([None] * (width - len(cells)))
        lines.append(_render_row(cells))
    return "\n".join(lines)


def _render_row(cells: Sequence[Any]) -> str:
    return "| " + " | ".join(_cell_text(cell) for cell in cells) + " |"


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    text = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    return text.replace("|", "\\|")


def _fit(row: Sequence[Any], width: int) -> list[Any]:
    cells = list(row[:width])
    cells.extend([None] * (width - len(cells)))
    return cells


def _last_filled_index(row: Sequence[Any]) -> int:
    for index in range(len(row) - 1, -1, -1):
        if row[index] is not None and row[index] != "":
            return index
    return -1
