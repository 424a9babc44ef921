import datetime as dt
from decimal import Decimal

from finance_tracker.columns import (
    EXPENSE,
    INCOME,
    COLUMN_CANDIDATES,
    ColumnMapping,
    MappingStore,
    guess_column,
    guess_mapping,
    map_row,
    map_rows,
)

STATEMENT_COLUMNS = ["Fecha", "Referencia", "Descripción", "Débitos", "Créditos", "Balance"]


def test_guess_column_matches_accented_header():
    assert guess_column(["No.", "Fecha Valor", "Concepto"], ["fecha", "date"]) == "Fecha Valor"


def test_guess_column_prefers_exact_match():
    assert guess_column(["Fecha de corte", "Fecha"], ["fecha"]) == "Fecha"


def test_guess_column_candidate_order_wins():
    assert guess_column(["Monto", "Amount"], ["amount", "monto"]) == "Amount"


def test_guess_column_no_match():
    assert guess_column(["A", "B"], COLUMN_CANDIDATES["date"]) == ""


def test_guess_mapping_debit_credit_layout():
    mapping = guess_mapping(STATEMENT_COLUMNS)
    assert mapping == ColumnMapping(
        date="Fecha",
        reference="Referencia",
        detail="Descripción",
        debit="Débitos",
        credit="Créditos",
        balance="Balance",
    )
    assert mapping.is_complete


def test_guess_mapping_single_amount_layout():
    mapping = guess_mapping(["Date", "Description", "Amount", "Type"])
    assert mapping.amount == "Amount"
    assert mapping.type == "Type"
    assert not mapping.debit and not mapping.credit
    assert mapping.is_complete


def test_mapping_merge_and_dict_round_trip():
    mapping = ColumnMapping(date="Fecha", detail="Detalle").merged({"amount": "Monto", "bogus": "x", "debit": None})
    assert mapping.amount == "Monto"
    assert ColumnMapping.from_dict(mapping.to_dict()) == mapping
    assert not ColumnMapping(date="Fecha").is_complete


def test_map_row_debit_is_expense():
    mapping = guess_mapping(STATEMENT_COLUMNS)
    row = {"Fecha": "01/05", "Referencia": 1001, "Descripción": " UBER*TRIP ", "Débitos": "500.00", "Créditos": None, "Balance": "9,500.00"}
    mapped = map_row(row, mapping, 0, dt.date(2024, 5, 31))
    assert mapped.type == EXPENSE
    assert mapped.amount == Decimal("500.00")
    assert mapped.debit == Decimal("500.00")
    assert mapped.credit == Decimal("0")
    assert mapped.balance == Decimal("9500.00")
    assert mapped.date == "2024-05-01"
    assert mapped.detail == "UBER*TRIP"
    assert mapped.reference == "1001"


def test_map_row_debit_wins_over_credit():
    mapping = guess_mapping(STATEMENT_COLUMNS)
    mapped = map_row({"Fecha": "01/05/2024", "Descripción": "x", "Débitos": "10", "Créditos": "20"}, mapping, 0)
    assert mapped.type == EXPENSE
    assert mapped.amount == Decimal("10")
    assert mapped.credit == Decimal("0")


def test_map_row_credit_is_income():
    mapping = guess_mapping(STATEMENT_COLUMNS)
    mapped = map_row({"Fecha": "05/05/2024", "Descripción": "NOMINA", "Créditos": "45,000.00"}, mapping, 3)
    assert mapped.type == INCOME
    assert mapped.amount == Decimal("45000.00")
    assert mapped.index == 3


def test_map_row_amount_with_type_indicator():
    mapping = guess_mapping(["Date", "Description", "Amount", "Type"])
    income = map_row({"Date": "2024-05-01", "Description": "Refund", "Amount": "-45.00", "Type": "CR"}, mapping, 0)
    expense = map_row({"Date": "2024-05-01", "Description": "Shop", "Amount": "45.00", "Type": "DB"}, mapping, 1)
    assert income.type == INCOME and income.amount == Decimal("45.00")
    assert expense.type == EXPENSE and expense.debit == Decimal("45.00")


def test_map_rows_drops_zero_amount_rows_and_offsets_index():
    mapping = guess_mapping(STATEMENT_COLUMNS)
    rows = [
        {"Fecha": "01/05/2024", "Descripción": "Saldo anterior", "Débitos": None, "Créditos": None},
        {"Fecha": "02/05/2024", "Descripción": "Compra", "Débitos": "1.00", "Créditos": None},
    ]
    mapped = map_rows(rows, mapping, start_index=10)
    assert [m.index for m in mapped] == [11]


def test_mapped_row_to_dict_serializes_amounts():
    mapping = guess_mapping(STATEMENT_COLUMNS)
    item = map_rows([{"Fecha": "02/05/2024", "Descripción": "Compra", "Débitos": "1.50"}], mapping)[0].to_dict()
    assert item["amount"] == "1.50"
    assert item["type"] == EXPENSE
    assert item["included"] is True


def test_mapping_store_remembers_per_merchant(tmp_path):
    store = MappingStore(tmp_path / "nested" / "mappings.json")
    assert store.load(7) is None
    mapping = guess_mapping(STATEMENT_COLUMNS)
    store.save(7, mapping)
    store.save("", mapping)
    assert MappingStore(tmp_path / "nested" / "mappings.json").load("7") == mapping
    assert store.load(8) is None


def test_mapping_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "mappings.json"
    path.write_text("{not json", encoding="utf-8")
    assert MappingStore(path).load(1) is None


def test_mapping_merge_empty_string_clears_field():
    mapping = ColumnMapping(date="Fecha", reference="Ref", detail="Detalle").merged({"reference": ""})
    assert mapping.reference == ""
    assert mapping.date == "Fecha"
