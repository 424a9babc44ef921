"""Turn mapped statement rows into insertable expense and income records.

Rows are validated one at a time. A bad row never aborts the batch: it is
recorded as a ``RowValidationError`` and the next row is processed. Records
are plain dicts of model column values; the gateway attaches the owning user.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .categorizer import Classifier
from .columns import INCOME, MappedTransactionRow
from .config import BASE_CURRENCY, MAX_INTEGER_DIGITS, MAX_REPORTED_ERRORS
from .errors import RowValidationError
from .logging_setup import get_logger
from .normalizer import count_integer_digits, normalize_iso_date, parse_amount

logger = get_logger("finance_tracker.materializer")

CENT = Decimal("0.01")

MSG_DATE_INVALID = "Date is missing or invalid."
MSG_DESCRIPTION_REQUIRED = "Description is required."
MSG_AMOUNT_INVALID = "Amount must be a positive number."
MSG_AMOUNT_TOO_LARGE = "Amount is too large."
MSG_CONVERTED_TOO_LARGE = "Converted amount is too large."
MSG_CATEGORY_REQUIRED = "Category is required."
MSG_CATEGORY_MISSING = "Category not found."
MSG_MERCHANT_MISSING = "Merchant not found."
MSG_CURRENCY_INVALID = "Currency is not active."
MSG_FX_RATE_REQUIRED = "Exchange rate is required for foreign currency rows."


@dataclass
class ReferenceData:
    """Lookup tables owned by the importing user."""

    categories: Dict[int, str] = field(default_factory=dict)
    purposes: Dict[int, str] = field(default_factory=dict)
    merchants: Dict[int, str] = field(default_factory=dict)
    currencies: Set[str] = field(default_factory=set)

    @staticmethod
    def _resolve(table: Mapping[int, str], value: Any) -> Optional[int]:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        if text.isdecimal() and int(text) in table:
            return int(text)
        lowered = text.lower()
        for key, name in table.items():
            if name.lower() == lowered:
                return key
        return None

    def category_id(self, value: Any) -> Optional[int]:
        return self._resolve(self.categories, value)

    def purpose_id(self, value: Any) -> Optional[int]:
        return self._resolve(self.purposes, value)

    def merchant_id(self, value: Any) -> Optional[int]:
        return self._resolve(self.merchants, value)

    def category_name(self, category_id: Optional[int]) -> Optional[str]:
        return self.categories.get(category_id) if category_id is not None else None


@dataclass
class ImportDefaults:
    category_id: Optional[int] = None
    purpose_id: Optional[int] = None
    merchant_id: Optional[int] = None
    base_currency: str = BASE_CURRENCY
    max_integer_digits: int = MAX_INTEGER_DIGITS


@dataclass
class MaterializedBatch:
    expenses: List[Dict[str, Any]] = field(default_factory=list)
    incomes: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[RowValidationError] = field(default_factory=list)


def _capped(errors: Iterable[RowValidationError]) -> Tuple[Dict[str, Any], ...]:
    return tuple(err.to_dict() for err in list(errors)[:MAX_REPORTED_ERRORS])


@dataclass(frozen=True)
class ImportResult:
    inserted_expenses: int = 0
    inserted_incomes: int = 0
    skipped: int = 0
    errors: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def build(cls, inserted_expenses: int, inserted_incomes: int, errors: Sequence[RowValidationError]) -> "ImportResult":
        return cls(
            inserted_expenses=inserted_expenses,
            inserted_incomes=inserted_incomes,
            skipped=len(errors),
            errors=_capped(errors),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insertedExpenses": self.inserted_expenses,
            "insertedIncomes": self.inserted_incomes,
            "skipped": self.skipped,
            "errors": [dict(e) for e in self.errors],
        }


@dataclass(frozen=True)
class RowImportResult:
    inserted: int = 0
    skipped: int = 0
    errors: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def build(cls, total_rows: int, inserted: int, errors: Sequence[RowValidationError]) -> "RowImportResult":
        return cls(inserted=inserted, skipped=total_rows - inserted, errors=_capped(errors))

    def to_dict(self) -> Dict[str, Any]:
        return {"inserted": self.inserted, "skipped": self.skipped, "errors": [dict(e) for e in self.errors]}


def _check_digits(amount: Decimal, row_number: int, limit: int, message: str = MSG_AMOUNT_TOO_LARGE) -> None:
    if count_integer_digits(amount) > limit:
        raise RowValidationError(row_number, message)


def _validate_common(row: MappedTransactionRow, defaults: ImportDefaults) -> Tuple[dt.date, Decimal]:
    row_number = row.index + 1
    if not row.date:
        raise RowValidationError(row_number, MSG_DATE_INVALID)
    if not row.detail.strip():
        raise RowValidationError(row_number, MSG_DESCRIPTION_REQUIRED)
    amount = abs(row.amount)
    if not amount:
        raise RowValidationError(row_number, MSG_AMOUNT_INVALID)
    # Statement rows are in the base currency, so amount_dop == amount
    _check_digits(amount, row_number, defaults.max_integer_digits)
    return dt.date.fromisoformat(row.date), amount


def _expense_record(
    row: MappedTransactionRow,
    date: dt.date,
    amount: Decimal,
    defaults: ImportDefaults,
    references: ReferenceData,
    classifier: Classifier,
) -> Dict[str, Any]:
    row_number = row.index + 1
    detail = row.detail.strip()

    category_id = references.category_id(row.category_id)
    if category_id is None:
        category_id = references.category_id(classifier.category_for(detail))
    if category_id is None:
        category_id = defaults.category_id

    purpose_id = references.purpose_id(row.purpose_id)
    if purpose_id is None:
        purpose_name = classifier.purpose_for(detail, references.category_name(category_id))
        purpose_id = references.purpose_id(purpose_name)
    if purpose_id is None:
        purpose_id = defaults.purpose_id

    if category_id is None or purpose_id is None:
        raise RowValidationError(row_number, MSG_CATEGORY_REQUIRED)

    return {
        "amount": amount,
        "currency": defaults.base_currency,
        "fx_rate_to_dop": None,
        "amount_dop": amount,
        "expense_date": date,
        "notes": f"{detail} (Ref {row.reference})" if row.reference else detail,
        "category_id": category_id,
        "purpose_id": purpose_id,
        "merchant_id": defaults.merchant_id,
    }


def _income_record(
    row: MappedTransactionRow, date: dt.date, amount: Decimal, defaults: ImportDefaults
) -> Dict[str, Any]:
    return {
        "amount": amount,
        "currency": defaults.base_currency,
        "fx_rate_to_dop": None,
        "amount_dop": amount,
        "income_date": date,
        "source": row.detail.strip(),
        "notes": f"Ref {row.reference}" if row.reference else None,
    }


def materialize(
    rows: Iterable[MappedTransactionRow],
    defaults: ImportDefaults,
    references: ReferenceData,
    classifier: Optional[Classifier] = None,
) -> MaterializedBatch:
    """Validate and shape statement rows into expense and income records.

    Excluded rows are dropped without an error. A row's ``type`` (which may
    have been flipped by a reviewer) decides which table it goes to; explicit
    ``category_id``/``purpose_id`` on the row take precedence over the rules.
    """

    classifier = classifier or Classifier()
    batch = MaterializedBatch()
    for row in rows:
        if not row.included:
            continue
        try:
            date, amount = _validate_common(row, defaults)
            if row.type == INCOME:
                batch.incomes.append(_income_record(row, date, amount, defaults))
            else:
                batch.expenses.append(_expense_record(row, date, amount, defaults, references, classifier))
        except RowValidationError as err:
            logger.debug("row %d rejected: %s", err.row, err.message)
            batch.errors.append(err)
    return batch


def _normalized_keys(row: Any) -> Dict[str, str]:
    if not isinstance(row, Mapping):
        return {}
    return {
        str(key).strip().lower(): "" if value is None else str(value).strip()
        for key, value in row.items()
    }


def _money_fields(
    normalized: Mapping[str, str],
    row_number: int,
    references: ReferenceData,
    base_currency: str,
    max_digits: int,
) -> Tuple[Decimal, str, Optional[Decimal], Decimal]:
    amount = abs(parse_amount(normalized.get("amount", "")))
    if not amount:
        raise RowValidationError(row_number, MSG_AMOUNT_INVALID)
    _check_digits(amount, row_number, max_digits)

    currency = (normalized.get("currency") or base_currency).upper()
    if currency not in references.currencies:
        raise RowValidationError(row_number, MSG_CURRENCY_INVALID)

    fx_rate: Optional[Decimal] = None
    rate = Decimal("1")
    if currency != base_currency:
        fx_raw = normalized.get("fx_rate_to_dop") or normalized.get("fx_rate") or normalized.get("fxrate") or ""
        try:
            rate = Decimal(fx_raw)
        except InvalidOperation:
            raise RowValidationError(row_number, MSG_FX_RATE_REQUIRED) from None
        if not rate.is_finite() or rate <= 0:
            raise RowValidationError(row_number, MSG_FX_RATE_REQUIRED)
        fx_rate = rate

    amount_dop = (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
    _check_digits(amount_dop, row_number, max_digits, MSG_CONVERTED_TOO_LARGE)
    return amount, currency, fx_rate, amount_dop


def materialize_expense_rows(
    rows: Sequence[Any],
    references: ReferenceData,
    base_currency: str = BASE_CURRENCY,
    max_digits: int = MAX_INTEGER_DIGITS,
) -> Tuple[List[Dict[str, Any]], List[RowValidationError]]:
    """Validate plain expense rows (``date, amount, currency, category...``).

    Row numbers count the CSV header line, so the first data row is 2.
    """

    records: List[Dict[str, Any]] = []
    errors: List[RowValidationError] = []
    for index, row in enumerate(rows):
        row_number = index + 2
        normalized = _normalized_keys(row)
        try:
            date = normalize_iso_date(normalized.get("date") or normalized.get("expense_date") or "")
            if not date:
                raise RowValidationError(row_number, MSG_DATE_INVALID)
            amount, currency, fx_rate, amount_dop = _money_fields(
                normalized, row_number, references, base_currency, max_digits
            )

            category_raw = normalized.get("category") or normalized.get("category_name") or ""
            if not category_raw:
                raise RowValidationError(row_number, MSG_CATEGORY_REQUIRED)
            category_id = references.category_id(category_raw)
            if category_id is None:
                raise RowValidationError(row_number, MSG_CATEGORY_MISSING)

            merchant_raw = normalized.get("merchant") or normalized.get("merchant_name") or ""
            merchant_id = references.merchant_id(merchant_raw) if merchant_raw else None
            if merchant_raw and merchant_id is None:
                raise RowValidationError(row_number, MSG_MERCHANT_MISSING)
        except RowValidationError as err:
            errors.append(err)
            continue

        records.append(
            {
                "amount": amount,
                "currency": currency,
                "fx_rate_to_dop": fx_rate,
                "amount_dop": amount_dop,
                "expense_date": dt.date.fromisoformat(date),
                "notes": normalized.get("notes") or None,
                "category_id": category_id,
                "purpose_id": None,
                "merchant_id": merchant_id,
            }
        )
    return records, errors


def materialize_income_rows(
    rows: Sequence[Any],
    references: ReferenceData,
    base_currency: str = BASE_CURRENCY,
    max_digits: int = MAX_INTEGER_DIGITS,
) -> Tuple[List[Dict[str, Any]], List[RowValidationError]]:
    records: List[Dict[str, Any]] = []
    errors: List[RowValidationError] = []
    for index, row in enumerate(rows):
        row_number = index + 2
        normalized = _normalized_keys(row)
        try:
            date = normalize_iso_date(normalized.get("date") or normalized.get("income_date") or "")
            if not date:
                raise RowValidationError(row_number, MSG_DATE_INVALID)
            amount, currency, fx_rate, amount_dop = _money_fields(
                normalized, row_number, references, base_currency, max_digits
            )
        except RowValidationError as err:
            errors.append(err)
            continue

        records.append(
            {
                "amount": amount,
                "currency": currency,
                "fx_rate_to_dop": fx_rate,
                "amount_dop": amount_dop,
                "income_date": dt.date.fromisoformat(date),
                "source": normalized.get("source") or None,
                "notes": normalized.get("notes") or None,
            }
        )
    return records, errors
