"""Statement file loading.

Reads an uploaded CSV or XLSX bank statement into raw rows keyed by column
header. CSV files always carry their header on the first line. Workbook
exports usually prepend title and account metadata rows, so every sheet is
scanned for the row that looks like a transaction header (a date keyword next
to a debit, credit or amount keyword).
"""

from __future__ import annotations

import csv
import datetime as dt
import io
import zipfile
from xml.etree.ElementTree import ParseError as XMLParseError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import ParseError
from .logging_setup import get_logger
from .normalizer import normalize_text, parse_date

logger = get_logger("finance_tracker.data_loader")

RawRow = Dict[str, Any]

SUPPORTED_FORMATS = ("csv", "xlsx")

# Keyword groups used to recognize a header row, Spanish and English.
# Keywords are compared against normalized cell text.
HEADER_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("date", ("fecha", "date")),
    ("reference", ("referencia", "ref", "reference")),
    ("detail", ("detalle", "descripcion", "description", "concepto", "detail")),
    ("debit", ("debito", "debit", "cargo", "withdrawal", "retiro")),
    ("credit", ("credito", "credit", "deposito", "deposit", "abono")),
    ("balance", ("balance", "saldo")),
    ("amount", ("monto", "amount", "importe")),
]

CUTOFF_LABELS = ("fecha de corte", "statement cutoff", "cutoff date")

_WORKBOOK_ERRORS = (InvalidFileException, zipfile.BadZipFile, XMLParseError, KeyError, ValueError, OSError)


@dataclass
class SheetRows:
    name: str
    header_index: int
    headers: List[str]
    rows: List[RawRow] = field(default_factory=list)
    cutoff_date: Optional[dt.date] = None


def detect_format(filename: str) -> str:
    suffix = Path(filename or "").suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_FORMATS:
        raise ParseError(f"Unsupported file type: {filename or '(unnamed)'}. Upload a .csv or .xlsx file.")
    return suffix


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def header_groups(cells: Sequence[Any]) -> set:
    """Return the keyword groups present among a row's cells."""
    found = set()
    for cell in cells:
        norm = normalize_text(cell)
        if not norm:
            continue
        for group, keywords in HEADER_KEYWORDS:
            if any(kw in norm for kw in keywords):
                found.add(group)
    return found


def detect_header_row(rows: Sequence[Sequence[Any]]) -> int:
    """Index of the first row that qualifies as a header, else 0."""
    for idx, row in enumerate(rows):
        groups = header_groups(row or ())
        if "date" in groups and groups & {"debit", "credit", "amount"}:
            return idx
    return 0


def find_cutoff_date(rows: Sequence[Sequence[Any]]) -> Optional[dt.date]:
    """Locate a "fecha de corte" label and parse the first date after it."""
    for i, row in enumerate(rows):
        cells = list(row or ())
        for j, cell in enumerate(cells):
            if not any(label in normalize_text(cell) for label in CUTOFF_LABELS):
                continue
            # Same row, to the right of the label
            for candidate in cells[j + 1:]:
                parsed = parse_date(candidate)
                if parsed:
                    return dt.date.fromisoformat(parsed)
            # Then the first filled cell of each row below it
            for below in rows[i + 1:]:
                candidate = next((c for c in (below or ()) if not _is_empty(c)), None)
                parsed = parse_date(candidate)
                if parsed:
                    return dt.date.fromisoformat(parsed)
            return None
    return None


def _unique_headers(raw_headers: Sequence[Any]) -> List[str]:
    seen: Dict[str, int] = {}
    headers: List[str] = []
    for value in raw_headers:
        name = _cell_text(value)
        if not name:
            headers.append("")
            continue
        count = seen.get(name, 0) + 1
        seen[name] = count
        headers.append(name if count == 1 else f"{name} ({count})")
    return headers


def _first_in_group(headers: Sequence[str], group: str) -> Optional[int]:
    for idx, header in enumerate(headers):
        if header and group in header_groups([header]):
            return idx
    return None


def _detail_spill_columns(headers: Sequence[str]) -> Tuple[Optional[int], List[int]]:
    """Detail column index and the unnamed columns between it and the debit column.

    Some exports spread long descriptions over blank-header cells to the right
    of the detail column; their text belongs to the detail.
    """

    detail_idx = _first_in_group(headers, "detail")
    debit_idx = _first_in_group(headers, "debit")
    if detail_idx is None or debit_idx is None:
        return detail_idx, []
    return detail_idx, [i for i in range(detail_idx + 1, debit_idx) if not headers[i]]


def rows_from_matrix(name: str, matrix: Sequence[Sequence[Any]]) -> SheetRows:
    """Turn one sheet's cell matrix into keyed raw rows."""
    header_index = detect_header_row(matrix)
    headers = _unique_headers(matrix[header_index] if matrix else ())
    detail_idx, spill = _detail_spill_columns(headers)
    sheet = SheetRows(
        name=name,
        header_index=header_index,
        headers=[h for h in headers if h],
        cutoff_date=find_cutoff_date(matrix),
    )
    for row in matrix[header_index + 1:]:
        cells = list(row or ())
        record: RawRow = {}
        for idx, header in enumerate(headers):
            if not header:
                continue
            record[header] = cells[idx] if idx < len(cells) else None
        extra = [_cell_text(cells[i]) for i in spill if i < len(cells) and not _is_empty(cells[i])]
        if extra:
            detail_header = headers[detail_idx]
            parts = [_cell_text(record[detail_header])] + extra
            record[detail_header] = " ".join(p for p in parts if p)
        if all(_is_empty(v) for v in record.values()):
            continue
        sheet.rows.append(record)
    return sheet


def load_xlsx_bytes(data: bytes) -> List[SheetRows]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except _WORKBOOK_ERRORS as exc:
        raise ParseError(f"Unable to read the workbook: {exc}") from exc

    sheets: List[SheetRows] = []
    try:
        for ws in workbook.worksheets:
            # Read-only sheets parse their XML lazily, here
            try:
                matrix = [list(r) for r in ws.iter_rows(values_only=True)]
            except _WORKBOOK_ERRORS as exc:
                raise ParseError(f"Unable to read sheet {ws.title!r}: {exc}") from exc
            if not matrix:
                continue
            sheet = rows_from_matrix(ws.title, matrix)
            logger.debug(
                "sheet %r: header at row %d, %d data rows, cutoff=%s",
                sheet.name,
                sheet.header_index,
                len(sheet.rows),
                sheet.cutoff_date,
            )
            sheets.append(sheet)
    finally:
        workbook.close()
    return sheets


def load_csv_bytes(data: bytes, name: str = "csv") -> List[SheetRows]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError("Unable to decode the uploaded file. Ensure it is UTF-8 encoded.") from exc

    reader = csv.DictReader(io.StringIO(text, newline=""))
    fieldnames = [f for f in (reader.fieldnames or []) if f and f.strip()]
    if not fieldnames:
        raise ParseError("CSV appears to have no header row.")

    sheet = SheetRows(name=name, header_index=0, headers=[f.strip() for f in fieldnames])
    try:
        for row in reader:
            record = {k.strip(): v for k, v in row.items() if k and k.strip()}
            if all(_is_empty(v) for v in record.values()):
                continue
            sheet.rows.append(record)
    except csv.Error as exc:
        raise ParseError(f"Malformed CSV: {exc}") from exc
    return [sheet]


def read_statement(data: bytes, file_format: str) -> List[SheetRows]:
    """Parse statement bytes in the declared format."""
    fmt = (file_format or "").lower().lstrip(".")
    if fmt == "csv":
        return load_csv_bytes(data)
    if fmt == "xlsx":
        return load_xlsx_bytes(data)
    raise ParseError(f"Unsupported file format: {file_format!r}")


def iter_raw_rows(sheets: Iterable[SheetRows]) -> Iterator[RawRow]:
    """All rows of all sheets, in sheet order then row order."""
    for sheet in sheets:
        yield from sheet.rows


def column_names(sheets: Iterable[SheetRows]) -> List[str]:
    names: List[str] = []
    for sheet in sheets:
        for header in sheet.headers:
            if header not in names:
                names.append(header)
    return names
