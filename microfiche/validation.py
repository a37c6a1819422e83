"""
Row Validator
=============
Checks raw CSV rows before they are trusted to build a store.

Three findings are reported, all collected in a single pass:
  FieldCountError    the row is not as wide as the active schema
  EmptyFieldError    category, subcategory or concept is blank
  DuplicateRowError  the row repeats an earlier row exactly

Validation never changes the rows and never raises for bad data.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from microfiche.shared import DEFAULT_SCHEMA_WIDTH, REQUIRED_FIELDS


# ─────────────────────────────────────────────────────────────
#  Findings
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ValidationFinding:
    line: int

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return f"line {self.line}: {self.kind}"


@dataclass(frozen=True)
class FieldCountError(ValidationFinding):
    expected: int
    actual: int

    @property
    def message(self) -> str:
        return f"line {self.line}: expected {self.expected} fields, found {self.actual}"


@dataclass(frozen=True)
class EmptyFieldError(ValidationFinding):
    field_index: int

    @property
    def message(self) -> str:
        return f"line {self.line}: {REQUIRED_FIELDS[self.field_index]} is empty"


@dataclass(frozen=True)
class DuplicateRowError(ValidationFinding):
    first_seen_line: int

    @property
    def message(self) -> str:
        return f"line {self.line}: duplicate of line {self.first_seen_line}"


@dataclass
class ValidationReport:
    width: int
    rows_checked: int = 0
    errors: List[ValidationFinding] = field(default_factory=list)

    @property
    def total_error_count(self) -> int:
        return len(self.errors)

    @property
    def passed(self) -> bool:
        return not self.errors

    def by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for error in self.errors:
            counts[error.kind] = counts.get(error.kind, 0) + 1
        return counts


# ─────────────────────────────────────────────────────────────
#  Public API: validate()
# ─────────────────────────────────────────────────────────────

def validate(
    rows: Sequence[Sequence[str]], width: int = DEFAULT_SCHEMA_WIDTH, start_line: int = 1
) -> ValidationReport:
    """
    Check every row and aggregate the findings.

    Args:
        rows: Raw rows, header excluded.
        width: Expected number of fields (4 or 5).
        start_line: Line number of the first row (2 when a header precedes it).
    """
    report = ValidationReport(width=width)
    first_seen: Dict[Tuple[str, ...], int] = {}

    for offset, row in enumerate(rows):
        line = start_line + offset
        report.rows_checked += 1

        if len(row) != width:
            report.errors.append(FieldCountError(line=line, expected=width, actual=len(row)))

        # Only the required fields the row actually has; missing ones are
        # already covered by the field-count finding
        for index in range(min(len(REQUIRED_FIELDS), len(row))):
            if not row[index].strip():
                report.errors.append(EmptyFieldError(line=line, field_index=index))

        key = tuple(row)
        if key in first_seen:
            report.errors.append(DuplicateRowError(line=line, first_seen_line=first_seen[key]))
        else:
            first_seen[key] = line

    return report
