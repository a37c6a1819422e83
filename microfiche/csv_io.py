# Standard Library Imports
import csv        # Quoting of commas, quotes and embedded newlines
import os         # Atomic replace on save
from pathlib import Path
from typing import List, Tuple

from microfiche.errors import SchemaError
from microfiche.shared import HEADERS, Record, check_record
from microfiche.store import RecordStore


##  ##                                                           ##  ##  --  --  Reading  --  --  ##  ##
def detect_width(header: List[str]) -> int:
    """Pick the schema from the header row (case and padding are ignored)."""
    cleaned = [h.strip().lower() for h in header]
    for width, names in HEADERS.items():
        if cleaned == [n.lower() for n in names]:
            return width
    raise SchemaError(header)


def read_rows(path: Path) -> Tuple[int, List[List[str]]]:
    """
    Read a knowledge-base CSV.
    Returns (schema width, data rows). Rows come back exactly as stored, so the
    validator can still see short, long or duplicated ones.
    OS and decoding errors propagate unchanged.
    """
    # utf-8-sig drops the BOM some spreadsheet exports prepend
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None:
            raise SchemaError([])
        width = detect_width(header)
        rows = [row for row in reader]
    return width, rows


def rows_to_records(rows: List[List[str]], width: int, start_line: int = 2) -> List[Record]:
    """
    Turn data rows into checked records.
    Errors name the file line of the bad row; the header is line 1.
    """
    records = []
    for i, row in enumerate(rows):
        line = start_line + i
        record = Record.from_row(row, width, index=i, line=line)
        records.append(check_record(record, width, index=i, line=line))
    return records


def load(path: Path) -> RecordStore:
    """Read and build in one step; raises MalformedRecordError on unusable rows."""
    width, rows = read_rows(path)
    return RecordStore.build(rows_to_records(rows, width), width=width)


##  ##                                                           ##  ##  --  --  Writing  --  --  ##  ##
def save(store: RecordStore, path: Path):
    """
    Write the store in canonical order, header first.
    The rows go to a sibling temp file that replaces `path` only once it is
    complete, so a failed write leaves the previous file untouched.
    """
    snapshot = store.snapshot()
    records = [record for _, record in snapshot.entries()]
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS[snapshot.width])
            writer.writerows(record.to_row(snapshot.width) for record in records)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
