"""
Error types raised across ingestion, storage and persistence.
"""


class ReplayTraderError(Exception):
    """Base class for all application errors."""


class FormatError(ReplayTraderError):
    """No column mapping could be detected for the input text."""


class RowParseError(ReplayTraderError):
    """A single row failed numeric or timestamp parsing."""

    def __init__(self, line_number: int, reason: str):
        super().__init__(f"line {line_number}: {reason}")
        self.line_number = line_number
        self.reason = reason


class StoreError(ReplayTraderError):
    """The tabular store rejected an insert or query."""


class PersistenceError(ReplayTraderError):
    """The key-value persistence layer is full or unavailable."""
