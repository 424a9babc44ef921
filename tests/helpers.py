"""Builders for in-memory statement workbooks."""

from __future__ import annotations

import io
import zipfile
from typing import Dict, List, Sequence

from openpyxl import Workbook

STATEMENT_HEADER: List[str] = ["Fecha", "Referencia", "Descripción", "Débitos", "Créditos", "Balance"]


def build_xlsx(sheets: Dict[str, Sequence[Sequence[object]]]) -> bytes:
    wb = Workbook()
    first = True
    for name, rows in sheets.items():
        if first:
            ws = wb.active
            ws.title = name
            first = False
        else:
            ws = wb.create_sheet(name)
        for row in rows:
            ws.append(list(row))
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def bank_statement_xlsx() -> bytes:
    """A typical export: title and account rows, a cutoff date, then data."""
    return build_xlsx(
        {
            "Movimientos": [
                ["Banco Popular", None, None],
                ["Cuenta de ahorro", "123-456", None],
                ["Fecha de corte", None, None],
                ["31/05/2024", None, None],
                STATEMENT_HEADER,
                ["01/05", "1001", "UBER*TRIP", "500.00", None, "9500.00"],
                ["03/05", "1002", "SUPERMERCADO NACIONAL", "1,250.75", None, "8249.25"],
                ["05/05", "1003", "NOMINA EMPRESA", None, "45,000.00", "53249.25"],
                ["07/05", "1004", "TRANSFERENCIA A TERCEROS", "300.00", None, "52949.25"],
            ]
        }
    )


def truncate_sheet_xml(data: bytes, member: str = "xl/worksheets/sheet1.xml") -> bytes:
    """Rewrite a workbook with one sheet's XML cut in half."""
    out = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as src, zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
        for item in src.infolist():
            content = src.read(item.filename)
            if item.filename == member:
                content = content[: len(content) // 2]
            dst.writestr(item, content)
    return out.getvalue()
