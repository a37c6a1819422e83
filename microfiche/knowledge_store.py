"""
KnowledgeStore: the one object every front end talks to.

Bundles a RecordStore with the query, validation and CSV functions so the
REPL and the HTTP service share a single implementation.
"""
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from microfiche import csv_io, query, term_analysis
from microfiche.errors import MalformedRecordError
from microfiche.query import QueryResult, Stats
from microfiche.shared import DEFAULT_SCHEMA_WIDTH, DISPLAY_LIMIT, Record
from microfiche.store import RecordStore, StoreSnapshot
from microfiche.validation import ValidationReport, validate


@dataclass
class LoadOutcome:
    path: Path
    report: ValidationReport
    record_count: int


class KnowledgeStore:
    def __init__(self, store: Optional[RecordStore] = None, path: Optional[Path] = None):
        self.store = store or RecordStore(DEFAULT_SCHEMA_WIDTH)
        self.path = Path(path) if path else None

    @property
    def snapshot(self) -> StoreSnapshot:
        return self.store.snapshot()

    # ==================== Files ====================

    def load(self, path: Path) -> LoadOutcome:
        """
        Read `path`, validate the raw rows, then build a new store from them.
        The current store is only replaced once the build has succeeded; a
        failing validation report alone does not stop the load. When the build
        fails, the raised MalformedRecordError carries the full report.
        """
        path = Path(path)
        width, rows = csv_io.read_rows(path)
        report = validate(rows, width=width, start_line=2)
        try:
            store = RecordStore.build(csv_io.rows_to_records(rows, width, start_line=2), width=width)
        except MalformedRecordError as e:
            e.report = report
            raise
        self.store, self.path = store, path
        return LoadOutcome(path=path, report=report, record_count=len(store))

    def save(self, path: Optional[Path] = None) -> Path:
        target = Path(path) if path else self.path
        if target is None:
            raise ValueError("no file to save to; pass a path")
        csv_io.save(self.store, target)
        self.path = target
        return target

    # ==================== Queries ====================

    def search(self, text: str, offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT) -> QueryResult:
        return query.search_single_term(self.snapshot, text, offset, limit)

    def search_all(self, terms: Sequence[str], offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT) -> QueryResult:
        return query.search_all_terms(self.snapshot, terms, offset, limit)

    def filter_by_category(self, text: str, offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT) -> QueryResult:
        return query.filter_by_category_prefix(self.snapshot, text, offset, limit)

    def filter_by_subcategory(self, text: str, offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT) -> QueryResult:
        return query.filter_by_subcategory_prefix(self.snapshot, text, offset, limit)

    def stats(self) -> Stats:
        return query.stats(self.snapshot)

    def unique_values(self, field_name: str) -> List[str]:
        return query.unique_values(self.snapshot, field_name)

    def random_sample(self, n: int, rng: Optional[random.Random] = None) -> List[Record]:
        return query.random_sample(self.snapshot, n, rng)

    def list_structure(self) -> Dict[str, Dict[str, List[str]]]:
        return query.list_structure(self.snapshot)

    def analyze_terms(self) -> term_analysis.TermReport:
        return term_analysis.analyze_terms(self.snapshot)

    def validate(
        self, rows: Sequence[Sequence[str]], width: Optional[int] = None, start_line: int = 1
    ) -> ValidationReport:
        return validate(rows, width=width or self.store.width, start_line=start_line)

    # ==================== Mutations ====================

    def add(self, record: Record) -> Record:
        return self.store.insert(record)

    def delete_note(self, path: Sequence[str], note: str) -> bool:
        return self.store.delete_note(path, note)

    def delete_subtree(self, partial_path: Sequence[str]) -> int:
        return self.store.delete_subtree(partial_path)

    def update(self, old: Record, new: Record) -> Optional[Record]:
        return self.store.update(old, new)
