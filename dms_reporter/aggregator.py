"""Pivot the downloaded DMS alert sheet into plate × alert-type counts."""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import openpyxl
import xlrd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from dms_reporter.errors import AggregationError
from dms_reporter.json_logger import JsonLogger, log_event

PIVOT_SHEET_NAME = "Summary_Pivot"
PLATE_COLUMN_LABEL = "ทะเบียนรถ"
TOTAL_COLUMN_LABEL = "รวมทั้งหมด"

PLATE_HEADER_CUES = ("ทะเบียน", "License", "ชื่อรถ")
TYPE_HEADER_CUES = ("ชนิด", "Type", "Alarm", "Event")
FALLBACK_PLATE_COLUMN = 1
FALLBACK_TYPE_COLUMN = 2

MIN_COLUMN_WIDTH = 10
EMPTY_CELL_WIDTH = 10

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(fill_type="solid", start_color="FFD3D3D3", end_color="FFD3D3D3")
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
THIN = Side(style="thin")
CELL_BORDER = Border(top=THIN, left=THIN, bottom=THIN, right=THIN)

DEFAULT_SHEET_TITLE = "Sheet1"
_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")

_XLSX_MAGIC = b"PK\x03\x04"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass
class PivotTable:
    counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    alert_types: List[str] = field(default_factory=list)

    def rows(self) -> Iterable[List[Any]]:
        for plate, per_type in self.counts.items():
            values = [per_type.get(alert_type, 0) for alert_type in self.alert_types]
            yield [plate, *values, sum(values)]

    def header(self) -> List[str]:
        return [PLATE_COLUMN_LABEL, *self.alert_types, TOTAL_COLUMN_LABEL]


def build_pivot(rows: Iterable[Tuple[Any, Any]]) -> PivotTable:
    """Count (plate, alert type) pairs; plates keep first-seen order."""

    counts: Dict[str, Dict[str, int]] = {}
    seen_types: set[str] = set()
    for raw_plate, raw_type in rows:
        plate = _cell_text(raw_plate)
        alert_type = _cell_text(raw_type)
        if not plate or not alert_type:
            continue
        per_type = counts.setdefault(plate, {})
        per_type[alert_type] = per_type.get(alert_type, 0) + 1
        seen_types.add(alert_type)
    return PivotTable(counts=counts, alert_types=sorted(seen_types))


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_match(headers: Sequence[str], cues: Sequence[str]) -> int | None:
    for index, header in enumerate(headers, start=1):
        if header and any(cue in header for cue in cues):
            return index
    return None


def locate_columns(headers: Sequence[Any], *, logger: JsonLogger | None = None) -> Tuple[int, int]:
    """Return 1-based (plate, alert type) column indices from the header row."""

    texts = [_cell_text(header) for header in headers]
    plate_index = _first_match(texts, PLATE_HEADER_CUES)
    type_index = _first_match(texts, TYPE_HEADER_CUES)

    if plate_index is None:
        plate_index = FALLBACK_PLATE_COLUMN
        if logger:
            log_event(
                logger=logger,
                phase="aggregate",
                status="warn",
                message='"License" header not found. Defaulting to Column 1.',
                headers=texts,
            )
    if type_index is None:
        type_index = FALLBACK_TYPE_COLUMN
        if logger:
            log_event(
                logger=logger,
                phase="aggregate",
                status="warn",
                message='"Type" header not found. Defaulting to Column 2.',
                headers=texts,
            )
    return plate_index, type_index


def format_sheet(sheet: Worksheet) -> None:
    """Bold shaded header, thin borders everywhere, widths fitted to content."""

    if sheet.max_row < 1 or sheet.max_column < 1:
        return

    for cell in sheet[1]:
        cell.font = HEADER_FONT
        cell.alignment = HEADER_ALIGNMENT
        cell.fill = HEADER_FILL

    for column in sheet.iter_cols(min_row=1, max_row=sheet.max_row, max_col=sheet.max_column):
        longest = 0
        for cell in column:
            value = cell.value
            length = len(str(value)) if value not in (None, "") else EMPTY_CELL_WIDTH
            longest = max(longest, length)
            cell.border = CELL_BORDER
        letter = column[0].column_letter
        sheet.column_dimensions[letter].width = (
            MIN_COLUMN_WIDTH if longest < MIN_COLUMN_WIDTH else longest + 2
        )


def write_pivot_sheet(workbook: Workbook, pivot: PivotTable) -> Worksheet:
    if PIVOT_SHEET_NAME in workbook.sheetnames:
        workbook.remove(workbook[PIVOT_SHEET_NAME])
    sheet = workbook.create_sheet(PIVOT_SHEET_NAME)
    sheet.append(pivot.header())
    for row in pivot.rows():
        sheet.append(row)
    format_sheet(sheet)
    return sheet


def _looks_like_html(head: bytes) -> bool:
    lowered = head[:512].decode("utf-8", errors="ignore").lower()
    return "<html" in lowered or "<!doctype html" in lowered or "<table" in lowered


def _coerce_xls_value(value: Any, ctype: int) -> Any:
    if ctype == xlrd.XL_CELL_EMPTY:
        return None
    if ctype == xlrd.XL_CELL_NUMBER and float(value).is_integer():
        return int(value)
    return value


def sheet_title_for(raw: str) -> str:
    """Excel sheet titles: at most 31 chars, none of ``[]:*?/\\``."""

    title = _INVALID_TITLE_CHARS.sub("", raw or "").strip().strip("'")[:31]
    if not title or title == PIVOT_SHEET_NAME:
        return DEFAULT_SHEET_TITLE
    return title


def _workbook_from_rows(rows: Iterable[Sequence[Any]], title: str) -> Workbook:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title_for(title)
    for row in rows:
        sheet.append(list(row))
    return workbook


def _load_legacy_xls(path: Path) -> Workbook:
    book = xlrd.open_workbook(str(path))
    source = book.sheet_by_index(0)
    rows = (
        [_coerce_xls_value(cell.value, cell.ctype) for cell in source.row(index)]
        for index in range(source.nrows)
    )
    return _workbook_from_rows(rows, source.name)


def _load_delimited(path: Path) -> Workbook:
    with path.open("r", newline="", encoding="utf-8-sig", errors="replace") as handle:
        sample = handle.read(4096)
        handle.seek(0)
        try:
            dialect = csv.Sniffer().sniff(sample, delimiters=",\t;")
        except csv.Error:
            dialect = csv.excel
        return _workbook_from_rows(csv.reader(handle, dialect), path.stem)


def load_workbook(path: Path) -> Workbook:
    """Open ``path`` as an openpyxl workbook whatever its on-disk format."""

    with path.open("rb") as handle:
        head = handle.read(512)
    if head.startswith(_XLSX_MAGIC):
        return openpyxl.load_workbook(path)
    if head.startswith(_OLE_MAGIC):
        return _load_legacy_xls(path)
    if _looks_like_html(head):
        raise AggregationError(f"{path.name} contains HTML, not a spreadsheet")
    return _load_delimited(path)


def summarize_workbook(workbook: Workbook, *, logger: JsonLogger | None = None) -> PivotTable:
    sheet = workbook.worksheets[0]
    if sheet.max_row < 1:
        raise AggregationError("first sheet is empty")

    format_sheet(sheet)
    headers = [cell.value for cell in sheet[1]]
    plate_index, type_index = locate_columns(headers, logger=logger)
    if max(plate_index, type_index) > sheet.max_column:
        raise AggregationError(
            f"sheet has {sheet.max_column} column(s); need column {max(plate_index, type_index)}"
        )

    pairs = (
        (row[plate_index - 1], row[type_index - 1])
        for row in sheet.iter_rows(min_row=2, max_col=sheet.max_column, values_only=True)
    )
    pivot = build_pivot(pairs)
    write_pivot_sheet(workbook, pivot)
    return pivot


def output_path_for(path: Path) -> Path:
    if path.suffix.lower() == ".xlsx":
        return path
    return path.with_suffix(".xlsx")


def summarize_report(path: Path, *, logger: JsonLogger) -> Path:
    """Add the pivot sheet to the report and return the path to send.

    Never raises: on any failure the original file is returned untouched so
    the report is still delivered.
    """

    path = Path(path)
    log_event(logger=logger, phase="aggregate", message="Processing Excel file", path=str(path))
    try:
        workbook = load_workbook(path)
        pivot = summarize_workbook(workbook, logger=logger)
        output = output_path_for(path)
        workbook.save(output)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="aggregate",
            status="error",
            message="Error processing Excel file",
            path=str(path),
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        return path

    log_event(
        logger=logger,
        phase="aggregate",
        message="Excel file processed",
        path=str(output),
        plates=len(pivot.counts),
        alert_types=pivot.alert_types,
    )
    return output
