import datetime as dt

import pytest

from finance_tracker.data_loader import (
    column_names,
    detect_format,
    detect_header_row,
    find_cutoff_date,
    iter_raw_rows,
    load_csv_bytes,
    read_statement,
    rows_from_matrix,
)
from finance_tracker.errors import ParseError
from finance_tracker.normalizer import parse_date

from .helpers import bank_statement_xlsx, truncate_sheet_xml

HEADER = ["Fecha", "Descripción", "Débito", "Crédito"]


@pytest.mark.parametrize("preamble", range(6))
def test_detect_header_row_after_metadata(preamble):
    matrix = [[f"Linea {i}", None] for i in range(preamble)]
    matrix.append(HEADER)
    matrix.append(["01/05/2024", "UBER*TRIP", "500", None])
    assert detect_header_row(matrix) == preamble


def test_detect_header_row_accepts_amount_column():
    matrix = [["Cuenta", "001"], ["Date", "Description", "Amount"], ["2024-05-01", "x", "1"]]
    assert detect_header_row(matrix) == 1


def test_detect_header_row_defaults_to_first_row():
    assert detect_header_row([["a", "b"], ["c", "d"]]) == 0
    assert detect_header_row([]) == 0


def test_find_cutoff_date_right_of_label():
    matrix = [["Fecha de corte:", None, "31/05/2024"], HEADER]
    assert find_cutoff_date(matrix) == dt.date(2024, 5, 31)


def test_find_cutoff_date_below_label():
    matrix = [["Fecha de Corte"], [None, "15/01/2024"], HEADER]
    assert find_cutoff_date(matrix) == dt.date(2024, 1, 15)


def test_find_cutoff_date_missing():
    assert find_cutoff_date([HEADER, ["01/05/2024", "x", "1", None]]) is None


def test_rows_from_matrix_skips_blank_rows_and_dedupes_headers():
    matrix = [
        ["Fecha", "Monto", "Monto"],
        ["01/05/2024", "10", "20"],
        [None, "", "  "],
        ["02/05/2024", "30"],
    ]
    sheet = rows_from_matrix("Hoja1", matrix)
    assert sheet.headers == ["Fecha", "Monto", "Monto (2)"]
    assert sheet.rows == [
        {"Fecha": "01/05/2024", "Monto": "10", "Monto (2)": "20"},
        {"Fecha": "02/05/2024", "Monto": "30", "Monto (2)": None},
    ]


def test_detect_format():
    assert detect_format("enero.XLSX") == "xlsx"
    assert detect_format("movimientos.csv") == "csv"
    with pytest.raises(ParseError):
        detect_format("statement.pdf")
    with pytest.raises(ParseError):
        detect_format("")


def test_read_xlsx_with_preamble_and_cutoff(bank_statement):
    sheets = read_statement(bank_statement, "xlsx")
    assert len(sheets) == 1
    sheet = sheets[0]
    assert sheet.name == "Movimientos"
    assert sheet.header_index == 4
    assert sheet.cutoff_date == dt.date(2024, 5, 31)
    assert len(sheet.rows) == 4
    assert sheet.rows[0]["Descripción"] == "UBER*TRIP"


def test_read_xlsx_concatenates_sheets_in_order(make_xlsx):
    data = make_xlsx(
        {
            "Mayo": [HEADER, ["01/05/2024", "A", "1", None]],
            "Junio": [["Banco"], HEADER, ["01/06/2024", "B", "2", None], ["02/06/2024", "C", None, "3"]],
        }
    )
    sheets = read_statement(data, "xlsx")
    assert [s.name for s in sheets] == ["Mayo", "Junio"]
    assert [r["Descripción"] for r in iter_raw_rows(sheets)] == ["A", "B", "C"]
    assert column_names(sheets) == HEADER


def test_read_xlsx_keeps_native_dates(make_xlsx):
    data = make_xlsx({"Hoja": [HEADER, [dt.date(2024, 3, 15), "A", 12.5, None]]})
    row = read_statement(data, "xlsx")[0].rows[0]
    assert parse_date(row["Fecha"]) == "2024-03-15"
    assert row["Débito"] == 12.5


def test_read_xlsx_rejects_garbage():
    with pytest.raises(ParseError):
        read_statement(b"not a workbook", "xlsx")


def test_load_csv():
    data = "\ufeffDate,Description,Amount\n2024-05-01,Coffee,3.50\n,,\n".encode("utf-8")
    sheets = load_csv_bytes(data)
    assert sheets[0].headers == ["Date", "Description", "Amount"]
    assert sheets[0].rows == [{"Date": "2024-05-01", "Description": "Coffee", "Amount": "3.50"}]


def test_load_csv_errors():
    with pytest.raises(ParseError):
        load_csv_bytes(b"\xff\xfe\x00bad")
    with pytest.raises(ParseError):
        load_csv_bytes(b"")


def test_read_statement_unknown_format():
    with pytest.raises(ParseError):
        read_statement(b"", "ods")


def test_read_xlsx_rejects_truncated_sheet():
    with pytest.raises(ParseError, match="Unable to read"):
        read_statement(truncate_sheet_xml(bank_statement_xlsx()), "xlsx")


def test_unnamed_columns_after_detail_extend_it():
    matrix = [
        ["Fecha", "Referencia", "Detalle", None, None, "Débito", "Crédito"],
        ["01/05/2024", "1", "PAGO TARJETA", "CREDITO", "BHD", "100", None],
        ["02/05/2024", "2", None, "COMPRA EN", "COLMADO", "50", None],
        ["03/05/2024", "3", "NOMINA", None, None, None, "900"],
    ]
    sheet = rows_from_matrix("Hoja1", matrix)
    assert [r["Detalle"] for r in sheet.rows] == ["PAGO TARJETA CREDITO BHD", "COMPRA EN COLMADO", "NOMINA"]
    assert sheet.headers == ["Fecha", "Referencia", "Detalle", "Débito", "Crédito"]


def test_unnamed_columns_after_debit_are_ignored():
    matrix = [
        ["Fecha", "Detalle", "Débito", None],
        ["01/05/2024", "PAGO", "100", "nota"],
    ]
    assert rows_from_matrix("Hoja1", matrix).rows == [{"Fecha": "01/05/2024", "Detalle": "PAGO", "Débito": "100"}]
