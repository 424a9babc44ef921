"""Column mapping for statement rows.

Statements name their columns differently ("Fecha Valor", "Débitos",
"Withdrawal"...). ``guess_column`` picks the header that best matches an
ordered list of candidate keywords; ``ColumnMapping`` records which header
plays which role and ``map_rows`` applies it to produce typed rows.
"""

from __future__ import annotations

import datetime as dt
import json
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .data_loader import RawRow
from .logging_setup import get_logger
from .normalizer import ZERO, normalize_text, parse_amount, parse_date

logger = get_logger("finance_tracker.columns")

EXPENSE = "expense"
INCOME = "income"
TRANSACTION_TYPES = (EXPENSE, INCOME)

# Ordered candidates per field; earlier entries win.
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "date": ["fecha", "date", "fecha transaccion", "fecha posteo", "transaction date", "posted date"],
    "reference": ["referencia", "ref", "reference", "no referencia", "documento"],
    "detail": ["detalle", "descripcion", "description", "concepto", "detail", "memo", "narrative"],
    "debit": ["debito", "debitos", "debit", "cargo", "cargos", "withdrawal", "retiro"],
    "credit": ["credito", "creditos", "credit", "abono", "deposito", "deposit"],
    "balance": ["balance", "saldo"],
    "amount": ["monto", "amount", "importe"],
    "type": ["tipo", "type", "dr cr", "cr dr", "tipo transaccion"],
}

_INCOME_MARKERS = ("credit", "credito", "abono", "deposit", "deposito")
_INCOME_CODES = ("cr", "c")


def guess_column(column_names: Sequence[str], candidates: Sequence[str]) -> str:
    """Return the first column matching a candidate keyword, or ``""``.

    Exact matches on normalized text are tried before substring matches.
    """

    normalized = [(name, normalize_text(name)) for name in column_names]
    keys = [normalize_text(c) for c in candidates]
    for key in keys:
        for name, norm in normalized:
            if norm and norm == key:
                return name
    for key in keys:
        if not key:
            continue
        for name, norm in normalized:
            if key in norm:
                return name
    return ""


@dataclass(frozen=True)
class ColumnMapping:
    date: str = ""
    reference: str = ""
    detail: str = ""
    debit: str = ""
    credit: str = ""
    balance: str = ""
    amount: str = ""
    type: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ColumnMapping":
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v or "") for k, v in (data or {}).items() if k in known})

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "ColumnMapping":
        """Copy with ``overrides`` applied; an empty string clears a field, ``None`` is ignored."""
        known = {f.name for f in fields(self)}
        changes = {k: str(v) for k, v in (overrides or {}).items() if k in known and v is not None}
        return replace(self, **changes)

    @property
    def is_complete(self) -> bool:
        return bool(self.date and self.detail and (self.debit or self.credit or self.amount))


def guess_mapping(column_names: Sequence[str]) -> ColumnMapping:
    guesses = {name: guess_column(column_names, cands) for name, cands in COLUMN_CANDIDATES.items()}
    # A single amount column is only meaningful without debit/credit columns
    if guesses["debit"] or guesses["credit"]:
        guesses["amount"] = ""
    return ColumnMapping(**guesses)


@dataclass
class MappedTransactionRow:
    index: int
    date: Optional[str]
    detail: str
    amount: Decimal
    type: str = EXPENSE
    reference: Optional[str] = None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    balance: Decimal = ZERO
    included: bool = True
    category_id: Optional[int] = None
    purpose_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "date": self.date,
            "reference": self.reference,
            "detail": self.detail,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "balance": str(self.balance),
            "amount": str(self.amount),
            "type": self.type,
            "included": self.included,
        }


def _type_from_indicator(value: Any) -> str:
    norm = normalize_text(value)
    if not norm:
        return EXPENSE
    if norm in _INCOME_CODES or any(marker in norm for marker in _INCOME_MARKERS):
        return INCOME
    return EXPENSE


def _cell(row: RawRow, column: str) -> Any:
    return row.get(column) if column else None


def map_row(
    row: RawRow,
    mapping: ColumnMapping,
    index: int,
    reference_date: Optional[dt.date] = None,
) -> MappedTransactionRow:
    debit = abs(parse_amount(_cell(row, mapping.debit)))
    credit = abs(parse_amount(_cell(row, mapping.credit)))
    if debit:
        amount, tx_type, credit = debit, EXPENSE, ZERO
    elif credit:
        amount, tx_type = credit, INCOME
    else:
        raw_amount = parse_amount(_cell(row, mapping.amount))
        amount = abs(raw_amount)
        tx_type = _type_from_indicator(_cell(row, mapping.type)) if mapping.type else EXPENSE
        if tx_type == EXPENSE:
            debit = amount
        else:
            credit = amount

    ref_value = _cell(row, mapping.reference)
    reference = str(ref_value).strip() if ref_value not in (None, "") else None
    return MappedTransactionRow(
        index=index,
        date=parse_date(_cell(row, mapping.date), reference_date),
        detail=str(_cell(row, mapping.detail) or "").strip(),
        amount=amount,
        type=tx_type,
        reference=reference or None,
        debit=debit,
        credit=credit,
        balance=parse_amount(_cell(row, mapping.balance)),
    )


def map_rows(
    raw_rows: Iterable[RawRow],
    mapping: ColumnMapping,
    reference_date: Optional[dt.date] = None,
    start_index: int = 0,
) -> List[MappedTransactionRow]:
    """Apply ``mapping`` to raw rows. Rows without an amount are dropped."""
    mapped: List[MappedTransactionRow] = []
    for offset, row in enumerate(raw_rows):
        item = map_row(row, mapping, start_index + offset, reference_date)
        if not item.amount:
            continue
        mapped.append(item)
    return mapped


class MappingStore:
    """Column mappings remembered per merchant, kept in a JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable mapping store %s: %s", self.path, exc)
            return {}
        return raw if isinstance(raw, dict) else {}

    def load(self, merchant_id: Any) -> Optional[ColumnMapping]:
        if merchant_id in (None, ""):
            return None
        stored = self._read().get(str(merchant_id))
        return ColumnMapping.from_dict(stored) if isinstance(stored, dict) else None

    def save(self, merchant_id: Any, mapping: ColumnMapping) -> None:
        if merchant_id in (None, ""):
            return
        data = self._read()
        data[str(merchant_id)] = mapping.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
