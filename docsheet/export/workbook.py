"""Spreadsheet export of structured results.

Builds one sheet per extraction task (or a single sheet for the table
backend) and writes them to an ``.xlsx`` workbook with openpyxl.
"""

import io
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import openpyxl
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from docsheet.errors import ExportError
from docsheet.ocr.backend import BackendKind
from docsheet.ocr.document import Document
from docsheet.utils.logger import get_logger

logger = get_logger(__name__)

TABLE_SHEET_NAME = "Extracted Data"
EMPTY_TABLE_SHEET_NAME = "No Data Found"
EMPTY_TABLE_MESSAGE = "No structured data was found."
EMPTY_TASK_MESSAGE = "No structured data was generated for this task."

MAX_SHEET_TITLE = 31
MAX_COLUMN_WIDTH = 60

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")

_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def cell_text(value: str) -> str:
    """Drop control characters that cannot be stored in an ``.xlsx`` cell."""
    return ILLEGAL_CHARACTERS_RE.sub("", value)


@dataclass
class Sheet:
    """One output table.

    ``header`` is ``None`` for placeholder sheets, which hold a single
    explanatory row instead of records.
    """

    name: str
    header: list[str] | None = None
    rows: list[list[str]] = field(default_factory=list)

    @classmethod
    def from_records(cls, name: str, records: list[dict[str, str]]) -> "Sheet":
        """Tabulate records, ordering columns by first appearance."""
        header: list[str] = []
        for record in records:
            header.extend(key for key in record if key not in header)
        rows = [[record.get(key, "") for key in header] for record in records]
        return cls(name=name, header=header, rows=rows)

    @classmethod
    def placeholder(cls, name: str, message: str) -> "Sheet":
        return cls(name=name, rows=[[message]])


def sheet_title(name: str) -> str:
    """Make ``name`` a valid Excel sheet title."""
    title = _INVALID_TITLE_CHARS.sub("", cell_text(name)).strip()[:MAX_SHEET_TITLE]
    return title or "Sheet"


def build_sheets(document: Document) -> list[Sheet]:
    """Collect the sheets to export for a document.

    Raises:
        ExportError: If the document has no tasks or nothing exportable.
    """
    if document.engine == BackendKind.TEXTRACT:
        if document.structured_rows:
            return [Sheet.from_records(TABLE_SHEET_NAME, document.structured_rows)]
        return [Sheet.placeholder(EMPTY_TABLE_SHEET_NAME, EMPTY_TABLE_MESSAGE)]

    if not document.tasks:
        raise ExportError("Please add at least one extraction task.")

    sheets: list[Sheet] = []
    for task in document.tasks:
        if not task.has_headers:
            logger.warning("Task %s has no headers, skipping its sheet", task.name)
            continue
        records = document.task_rows(task)
        if records:
            sheets.append(Sheet.from_records(task.name, records))
        else:
            sheets.append(Sheet.placeholder(task.name, EMPTY_TASK_MESSAGE))

    if not sheets:
        raise ExportError("No valid data could be generated from your tasks.")
    return sheets


def write_workbook(sheets: list[Sheet], target: str | Path | BinaryIO) -> None:
    """Write sheets to an ``.xlsx`` file or binary stream."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    for sheet in sheets:
        ws = wb.create_sheet(title=sheet_title(sheet.name))
        first_row = 1
        if sheet.header is not None:
            for col_idx, name in enumerate(sheet.header, start=1):
                cell = ws.cell(row=1, column=col_idx, value=cell_text(name))
                cell.font = HEADER_FONT
                cell.fill = HEADER_FILL
                cell.alignment = Alignment(horizontal="center")
            ws.freeze_panes = "A2"
            first_row = 2

        for row_idx, row in enumerate(sheet.rows, start=first_row):
            for col_idx, value in enumerate(row, start=1):
                ws.cell(row=row_idx, column=col_idx, value=cell_text(value))

        # Approximate auto-fit
        for col_idx in range(1, ws.max_column + 1):
            width = max(
                (len(str(c.value)) for c in ws[get_column_letter(col_idx)] if c.value),
                default=0,
            )
            ws.column_dimensions[get_column_letter(col_idx)].width = (
                min(MAX_COLUMN_WIDTH, width) + 3
            )

    wb.save(target)
    logger.info("Wrote workbook with %d sheets", len(sheets))


def workbook_bytes(document: Document) -> bytes:
    """Export a document to ``.xlsx`` bytes."""
    buffer = io.BytesIO()
    write_workbook(build_sheets(document), buffer)
    return buffer.getvalue()
