"""Exception types raised by the import pipeline."""

from __future__ import annotations


class ParseError(ValueError):
    """The uploaded file could not be read; the whole import is aborted."""


class RowValidationError(ValueError):
    """A single row was rejected. The import skips it and continues."""

    def __init__(self, row: int, message: str):
        super().__init__(message)
        self.row = row
        self.message = message

    def to_dict(self) -> dict:
        return {"row": self.row, "message": self.message}


class PersistenceError(RuntimeError):
    """The database rejected an insert batch."""


class InvalidTransition(RuntimeError):
    """A statement import step was requested from the wrong state."""
