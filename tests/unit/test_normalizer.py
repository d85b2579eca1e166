"""Unit tests for the tabular normalizer.

Tests cover:
1. Delimited text: header order, N+2 lines, absent fields, empty input
2. Workbooks: per-sheet headings, empty sheets, sheet order, determinism
3. Malformed input raises NormalizationError
"""

import io

import pytest
from openpyxl import Workbook

from backend.app.docs.normalizer import (
    delimited_to_markdown,
    normalize_tabular,
    render_table,
    workbook_to_markdown,
)
from backend.app.errors import NormalizationError


def _workbook_bytes(sheets: dict[str, list[list[object]]]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title=title)
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestDelimited:
    """Delimited text to Markdown."""

    def test_n_records_produce_n_plus_two_lines(self) -> None:
        data = b"name,amount\nalpha,1\nbeta,2\ngamma,3\n"

        output = delimited_to_markdown(data)

        assert output.split("\n") == [
            "| name | amount |",
            "| --- | --- |",
            "| alpha | 1 |",
            "| beta | 2 |",
            "| gamma | 3 |",
        ]

    def test_header_order_follows_first_record(self) -> None:
        output = delimited_to_markdown(b"z,a,m\n1,2,3\n")

        assert output.split("\n")[0] == "| z | a | m |"

    def test_absent_fields_render_empty(self) -> None:
        output = delimited_to_markdown(b"a,b,c\n1\n")

        assert output.split("\n")[2] == "| 1 |  |  |"

    def test_empty_input_yields_empty_output(self) -> None:
        assert delimited_to_markdown(b"") == ""

    def test_header_only_yields_empty_output(self) -> None:
        assert delimited_to_markdown(b"a,b\n") == ""

    def test_tsv_uses_tab_delimiter(self) -> None:
        output = normalize_tabular(b"a\tb\n1\t2\n", "tsv")

        assert output == "| a | b |\n| --- | --- |\n| 1 | 2 |"

    def test_utf8_bom_is_stripped(self) -> None:
        output = delimited_to_markdown("\ufeffname\nx\n".encode("utf-8"))

        assert output.startswith("| name |")

    def test_pipes_and_newlines_are_escaped(self) -> None:
        output = delimited_to_markdown(b'note\n"a|b\nc"\n')

        assert output.split("\n")[2] == "| a\\|b c |"

    def test_invalid_utf8_raises(self) -> None:
        with pytest.raises(NormalizationError, match="UTF-8"):
            delimited_to_markdown(b"a,b\n\xff\xfe,1\n")

    def test_unterminated_quote_raises(self) -> None:
        with pytest.raises(NormalizationError):
            delimited_to_markdown(b'a,b\n"x,1\n')

    def test_declared_type_is_case_insensitive(self) -> None:
        assert normalize_tabular(b"a\n1\n", "CSV") == "| a |\n| --- |\n| 1 |"


class TestWorkbook:
    """Workbook to Markdown."""

    def test_sheets_render_in_order_with_headings(self) -> None:
        data = _workbook_bytes(
            {
                "Revenue": [["Region", "Total"], ["North", 10], ["South", 20]],
                "Costs": [["Item", "Cost"], ["Rent", 5]],
            }
        )

        output = workbook_to_markdown(data)

        assert output == (
            "## Sheet: Revenue\n\n"
            "| Region | Total |\n| --- | --- |\n| North | 10 |\n| South | 20 |\n\n"
            "## Sheet: Costs\n\n"
            "| Item | Cost |\n| --- | --- |\n| Rent | 5 |"
        )

    def test_empty_sheet_emits_heading_only(self) -> None:
        data = _workbook_bytes({"Empty": [], "Data": [["a"], [1]]})

        output = workbook_to_markdown(data)

        assert output.startswith("## Sheet: Empty\n\n## Sheet: Data\n\n")

    def test_missing_cells_render_empty(self) -> None:
        data = _workbook_bytes({"S": [["a", "b", "c"], [1, None, 3], [None, 2]]})

        lines = workbook_to_markdown(data).split("\n")

        assert lines[4] == "| 1 |  | 3 |"
        assert lines[5] == "|  | 2 |  |"

    def test_output_is_deterministic(self) -> None:
        data = _workbook_bytes({"S": [["k", "v"], ["x", 1.5], ["y", None]]})

        assert normalize_tabular(data, "xlsx") == normalize_tabular(data, "xlsx")

    def test_garbage_bytes_raise(self) -> None:
        with pytest.raises(NormalizationError):
            normalize_tabular(b"definitely not a workbook", "xlsx")

    def test_non_tabular_type_raises(self) -> None:
        with pytest.raises(NormalizationError, match="Unsupported"):
            normalize_tabular(b"%PDF-1.4", "pdf")


def test_render_table_pads_short_rows() -> None:
    assert render_table(["a", "b"], [["1"]]) == "| a | b |\n| --- | --- |\n| 1 |  |"
