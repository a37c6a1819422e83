# Shared Data Structures and Constants for Microfiche
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import List, Dict, Optional, Sequence, Tuple
import logging
import os

from rich.logging import RichHandler

from microfiche.errors import MalformedRecordError

# ─────────────────────────────────────────────
# Paths
# ─────────────────────────────────────────────
BASE_DIR = Path(os.environ.get("MICROFICHE_HOME", Path.home() / ".microfiche"))
KB_FILE = Path(os.environ.get("MICROFICHE_FILE", BASE_DIR / "microfiche.csv"))

# ─────────────────────────────────────────────
# Tuning Constants
# ─────────────────────────────────────────────
DISPLAY_LIMIT = 10              # Matches shown per page of results
TOP_TERMS_PER_CATEGORY = 12     # Terms listed per category in the term report
MIN_TERM_LENGTH = 3             # Shorter words are ignored by the term analysis
DEFAULT_SCHEMA_WIDTH = 5        # Width used for a brand-new, empty store
LOG_LEVEL = os.environ.get("MICROFICHE_LOG_LEVEL", "INFO")

# ─────────────────────────────────────────────
# CSV Schemas
# ─────────────────────────────────────────────
FIVE_FIELD_HEADER = ["Category", "Subcategory", "Concept", "KeyDetail", "Note"]
FOUR_FIELD_HEADER = ["Category", "Subcategory", "Concept", "Note"]
HEADERS: Dict[int, List[str]] = {5: FIVE_FIELD_HEADER, 4: FOUR_FIELD_HEADER}

FIELD_NAMES: Dict[int, Tuple[str, ...]] = {
    5: ("category", "subcategory", "concept", "key_detail", "note"),
    4: ("category", "subcategory", "concept", "note"),
}
REQUIRED_FIELDS = ("category", "subcategory", "concept")

# Header names are accepted wherever a field name is expected
FIELD_ALIASES = {
    header.lower(): name
    for width in (5, 4)
    for header, name in zip(HEADERS[width], FIELD_NAMES[width])
}


def tree_depth(width: int) -> int:
    """Number of key levels above the notes (3 for 4-field rows, 4 for 5-field rows)."""
    return width - 1


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────
@dataclass(frozen=True)
class Record:
    """
    One flat row of the knowledge base.
    key_detail is None for records of the 4-field schema.
    """
    category: str
    subcategory: str
    concept: str
    note: str
    key_detail: Optional[str] = None

    def path(self, width: int) -> Tuple[str, ...]:
        """Ancestor keys of this record's note, most general first."""
        if width == 5:
            return (self.category, self.subcategory, self.concept, self.key_detail or "")
        return (self.category, self.subcategory, self.concept)

    def to_row(self, width: int) -> List[str]:
        return [getattr(self, name) or "" for name in FIELD_NAMES[width]]

    @classmethod
    def from_row(cls, row: Sequence[str], width: int, index: int = 0,
                 line: Optional[int] = None) -> "Record":
        if len(row) != width:
            raise MalformedRecordError(
                f"expected {width} fields, got {len(row)}", index=index, line=line
            )
        return cls(**dict(zip(FIELD_NAMES[width], row)))

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def check_record(record: Record, width: int, index: int = 0,
                 line: Optional[int] = None) -> Record:
    """
    Make sure a record can be placed in a tree of the given width.
    Returns the record normalised for that width (missing key detail becomes "").
    Only the placement keys are checked; empty notes and key details pass.
    """
    for name in REQUIRED_FIELDS:
        value = getattr(record, name)
        if value is None or not str(value).strip():
            raise MalformedRecordError(f"empty {name}", index=index, field=name, line=line)
    if width == 5 and record.key_detail is None:
        return replace(record, key_detail="")
    if width == 4 and record.key_detail is not None:
        raise MalformedRecordError(
            "4-field store cannot hold a key detail", index=index, field="key_detail",
            line=line,
        )
    return record


# ─────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────
def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Route the front ends' logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    return logging.getLogger("microfiche")
