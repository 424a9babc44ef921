"""Statement import workflow.

An import moves through a short linear wizard::

    IDLE -> PARSING -> MAPPED -> REVIEWING -> SUBMITTING -> DONE
                          ^                        |
                          +------- FAILED <--------+

``StatementImport`` holds one import's state: the parsed sheets, the column
mapping, and the reviewer's per-row overrides (type flips and exclusions).
Nothing is deduplicated; importing the same file twice inserts its rows twice.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .categorizer import Classifier
from .columns import (
    EXPENSE,
    INCOME,
    TRANSACTION_TYPES,
    ColumnMapping,
    MappedTransactionRow,
    MappingStore,
    guess_mapping,
    map_rows,
)
from .config import MAX_PREVIEW_ROWS, MAX_REVIEWED_ROWS, MAX_STATEMENT_ROWS
from .data_loader import SheetRows, column_names, read_statement
from .errors import InvalidTransition, ParseError
from .logging_setup import get_logger
from .materializer import ImportDefaults, ImportResult, materialize
from .normalizer import ZERO, parse_amount, parse_date

logger = get_logger("finance_tracker.importer")


class ImportState(Enum):
    IDLE = "idle"
    PARSING = "parsing"
    MAPPED = "mapped"
    REVIEWING = "reviewing"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Dict[ImportState, Set[ImportState]] = {
    ImportState.IDLE: {ImportState.PARSING},
    ImportState.PARSING: {ImportState.MAPPED, ImportState.FAILED},
    ImportState.MAPPED: {ImportState.PARSING, ImportState.REVIEWING, ImportState.SUBMITTING},
    ImportState.REVIEWING: {ImportState.PARSING, ImportState.SUBMITTING},
    ImportState.SUBMITTING: {ImportState.DONE, ImportState.FAILED},
    ImportState.DONE: {ImportState.IDLE, ImportState.PARSING},
    ImportState.FAILED: {ImportState.MAPPED, ImportState.IDLE, ImportState.PARSING},
}


class StatementImport:
    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        mapping_store: Optional[MappingStore] = None,
        max_rows: int = MAX_STATEMENT_ROWS,
    ):
        self.classifier = classifier or Classifier()
        self.mapping_store = mapping_store
        self.max_rows = max_rows
        self.state = ImportState.IDLE
        self.error: Optional[str] = None
        self.result: Optional[ImportResult] = None
        self.merchant_id: Optional[str] = None
        self.sheets: List[SheetRows] = []
        self.mapping = ColumnMapping()
        self._rows: Optional[List[MappedTransactionRow]] = None
        self._type_overrides: Dict[int, str] = {}
        self._excluded: Set[int] = set()

    def _move(self, target: ImportState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"cannot go from {self.state.value} to {target.value}")
        logger.debug("import state %s -> %s", self.state.value, target.value)
        self.state = target

    def _require(self, *states: ImportState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(f"expected state in ({allowed}), got {self.state.value}")

    def _reset_review(self) -> None:
        self._rows = None
        self._type_overrides.clear()
        self._excluded.clear()
        self.result = None
        self.error = None

    @property
    def columns(self) -> List[str]:
        return column_names(self.sheets)

    def load(self, data: bytes, file_format: str, merchant_id: Optional[Any] = None) -> ColumnMapping:
        """Parse a statement file and seed the column mapping."""
        self._move(ImportState.PARSING)
        self._reset_review()
        self.merchant_id = str(merchant_id) if merchant_id not in (None, "") else None
        try:
            self.sheets = read_statement(data, file_format)
        except ParseError as exc:
            self.sheets = []
            self.error = str(exc)
            self._move(ImportState.FAILED)
            raise

        stored = self.mapping_store.load(self.merchant_id) if self.mapping_store else None
        self.mapping = stored or guess_mapping(self.columns)
        logger.info(
            "parsed %d sheet(s), %d raw rows, mapping %s",
            len(self.sheets),
            sum(len(s.rows) for s in self.sheets),
            "restored" if stored else "guessed",
        )
        self._move(ImportState.MAPPED)
        return self.mapping

    def load_rows(self, rows: Sequence[MappedTransactionRow], merchant_id: Optional[Any] = None) -> None:
        """Start from rows that were already mapped, e.g. by a browser client."""
        self._move(ImportState.PARSING)
        self._reset_review()
        self.merchant_id = str(merchant_id) if merchant_id not in (None, "") else None
        self.sheets = []
        self._rows = list(rows)[: self.max_rows]
        self._move(ImportState.MAPPED)

    def set_mapping(self, mapping: Optional[ColumnMapping] = None, **overrides: str) -> ColumnMapping:
        self._require(ImportState.MAPPED, ImportState.REVIEWING)
        base = mapping or self.mapping
        self.mapping = base.merged(overrides)
        if self.sheets:
            self._rows = None
        return self.mapping

    def _mapped_rows(self) -> List[MappedTransactionRow]:
        if self._rows is not None:
            return self._rows
        rows: List[MappedTransactionRow] = []
        offset = 0
        for sheet in self.sheets:
            rows.extend(map_rows(sheet.rows, self.mapping, sheet.cutoff_date, start_index=offset))
            offset += len(sheet.rows)
            if len(rows) >= self.max_rows:
                break
        self._rows = rows[: self.max_rows]
        return self._rows

    def rows(self) -> List[MappedTransactionRow]:
        """Mapped rows with the reviewer's overrides applied."""
        reviewed = []
        for row in self._mapped_rows():
            changes: Dict[str, Any] = {}
            if row.index in self._type_overrides:
                changes["type"] = self._type_overrides[row.index]
            if row.index in self._excluded:
                changes["included"] = False
            reviewed.append(dataclasses.replace(row, **changes) if changes else row)
        return reviewed

    def preview(self, limit: int = MAX_PREVIEW_ROWS) -> List[Dict[str, Any]]:
        items = []
        for row in self.rows()[:limit]:
            item = row.to_dict()
            if row.type == EXPENSE:
                classification = self.classifier.classify(row.detail)
                item["category"] = classification.category
                item["purpose"] = classification.purpose
            items.append(item)
        return items

    def set_type(self, index: int, tx_type: str) -> None:
        if tx_type not in TRANSACTION_TYPES:
            raise ValueError(f"unknown transaction type: {tx_type!r}")
        self._begin_review()
        self._type_overrides[index] = tx_type

    def exclude(self, index: int, excluded: bool = True) -> None:
        self._begin_review()
        if excluded:
            self._excluded.add(index)
        else:
            self._excluded.discard(index)

    def _begin_review(self) -> None:
        if self.state == ImportState.MAPPED:
            self._move(ImportState.REVIEWING)
        self._require(ImportState.REVIEWING)

    def submit(self, gateway, defaults: ImportDefaults) -> ImportResult:
        """Materialize the reviewed rows and insert them.

        Expenses are inserted before incomes. Any failure leaves the
        wizard in FAILED with the error message; batches already written
        stay written.
        """

        self._move(ImportState.SUBMITTING)
        try:
            if self.sheets and not self.mapping.is_complete:
                raise ParseError("Map the date, description and amount columns before importing.")
            batch = materialize(self.rows(), defaults, gateway.references(), self.classifier)
            inserted_expenses = gateway.insert_expenses(batch.expenses)
            inserted_incomes = gateway.insert_incomes(batch.incomes)
        except Exception as exc:
            self.error = str(exc)
            self._move(ImportState.FAILED)
            raise

        self.result = ImportResult.build(inserted_expenses, inserted_incomes, batch.errors)
        logger.info(
            "statement import: %d expenses, %d incomes, %d skipped",
            self.result.inserted_expenses,
            self.result.inserted_incomes,
            self.result.skipped,
        )
        if self.mapping_store and self.merchant_id and self.sheets:
            self.mapping_store.save(self.merchant_id, self.mapping)
        self._move(ImportState.DONE)
        return self.result

    def recover(self) -> ImportState:
        """Leave FAILED: back to MAPPED when rows exist, else IDLE."""
        self._require(ImportState.FAILED)
        has_rows = bool(self.sheets) or bool(self._rows)
        self._move(ImportState.MAPPED if has_rows else ImportState.IDLE)
        return self.state


def import_statement(
    data: bytes,
    file_format: str,
    gateway,
    defaults: ImportDefaults,
    classifier: Optional[Classifier] = None,
    max_rows: int = MAX_STATEMENT_ROWS,
) -> ImportResult:
    """One-shot import: detect headers, guess the mapping, classify, insert."""
    wizard = StatementImport(classifier=classifier, max_rows=max_rows)
    wizard.load(data, file_format)
    if not wizard.rows():
        raise ParseError("No transactions found in the statement.")
    return wizard.submit(gateway, defaults)


def reviewed_row(index: int, raw: Mapping[str, Any]) -> MappedTransactionRow:
    """Build a row from a client-reviewed ``{date, description, amount, type}``."""
    amount = abs(parse_amount(raw.get("amount")))
    tx_type = INCOME if str(raw.get("type") or "").lower() == INCOME else EXPENSE
    reference = raw.get("reference")
    return MappedTransactionRow(
        index=index,
        date=parse_date(raw.get("date")),
        detail=str(raw.get("description") or raw.get("detail") or "").strip(),
        amount=amount,
        type=tx_type,
        reference=str(reference).strip() if reference else None,
        debit=amount if tx_type == EXPENSE else ZERO,
        credit=amount if tx_type == INCOME else ZERO,
        included=raw.get("included", True) is not False,
        category_id=raw.get("categoryId") or None,
        purpose_id=raw.get("purposeId") or None,
    )


def import_reviewed_rows(
    rows: Iterable[Any],
    gateway,
    defaults: ImportDefaults,
    classifier: Optional[Classifier] = None,
    merchant_id: Optional[Any] = None,
    max_rows: int = MAX_REVIEWED_ROWS,
) -> ImportResult:
    mapped = [reviewed_row(i, r) for i, r in enumerate(rows) if isinstance(r, Mapping)]
    if not mapped:
        raise ParseError("No transactions found in the statement.")
    wizard = StatementImport(classifier=classifier, max_rows=max_rows)
    wizard.load_rows(mapped, merchant_id=merchant_id)
    return wizard.submit(gateway, defaults)
