"""
Exception types raised by the Microfiche core.

Validation findings are not exceptions; see microfiche.validation.
"""
from typing import Optional


class MicroficheError(Exception):
    """Base class for every error raised by the core."""
    pass


class MalformedRecordError(MicroficheError, ValueError):
    """
    A record lacks a key needed to place it in the tree.
    `line` is set when the record came from a file; `report` carries the
    validation report of a failed file load.
    """

    def __init__(self, message: str, index: int = 0, field: Optional[str] = None,
                 line: Optional[int] = None):
        self.index = index
        self.field = field
        self.line = line
        self.report = None
        where = f"line {line}" if line is not None else f"record {index}"
        super().__init__(f"{where}: {message}")


class QueryError(MicroficheError, ValueError):
    """A structurally invalid query (never raised for an empty result)."""
    pass


class SchemaError(MicroficheError):
    """A CSV header that matches neither the 4- nor the 5-field schema."""

    def __init__(self, header: list):
        self.header = header
        super().__init__(f"unrecognised header: {header!r}")
