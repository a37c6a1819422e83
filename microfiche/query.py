"""
Query Engine
============
Pure functions over a StoreSnapshot. Nothing here mutates the store, logs,
or keeps state between calls.

Every search compares lower-cased copies of the stored values; the stored
keys themselves keep their original case for display and export.

Search results come back in canonical tree order, paged by `offset`/`limit`
(limit defaults to DISPLAY_LIMIT; pass None for everything).
"""

import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from microfiche.errors import QueryError
from microfiche.shared import DISPLAY_LIMIT, FIELD_ALIASES, FIELD_NAMES, Record
from microfiche.store import StoreSnapshot


# ─────────────────────────────────────────────────────────────
#  Result types
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Match:
    """A matching record and the tree path it was found under."""
    record: Record
    path: Tuple[str, ...]


@dataclass
class QueryResult:
    matches: List[Match] = field(default_factory=list)
    total: int = 0          # Matches before paging
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.matches) < self.total

    @property
    def records(self) -> List[Record]:
        return [m.record for m in self.matches]

    def __len__(self) -> int:
        return len(self.matches)


@dataclass
class Stats:
    total_records: int
    category_count: int
    subcategory_count: int
    concept_count: int
    per_category_counts: List[Tuple[str, int]]
    key_detail_count: Optional[int] = None  # None for the 4-field schema


# ─────────────────────────────────────────────────────────────
#  Internal helpers
# ─────────────────────────────────────────────────────────────

def _normalise(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _haystack(record: Record) -> List[str]:
    return [
        value.lower()
        for value in (record.category, record.subcategory, record.concept,
                      record.key_detail, record.note)
        if value
    ]


def _collect(
    snapshot: StoreSnapshot,
    predicate: Callable[[Tuple[str, ...], Record], bool],
    offset: int = 0,
    limit: Optional[int] = DISPLAY_LIMIT,
) -> QueryResult:
    if offset < 0 or (limit is not None and limit < 0):
        raise QueryError("offset and limit must not be negative")
    matches = [Match(record, path) for path, record in snapshot.entries() if predicate(path, record)]
    end = None if limit is None else offset + limit
    return QueryResult(matches=matches[offset:end], total=len(matches), offset=offset)


# ─────────────────────────────────────────────────────────────
#  Searches
# ─────────────────────────────────────────────────────────────

def search_single_term(
    snapshot: StoreSnapshot, term: str, offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT
) -> QueryResult:
    """
    A term naming a category returns that whole category; failing that, a
    term naming a subcategory returns that subcategory under every parent.
    Otherwise the term is matched as a substring of any field.
    """
    needle = _normalise(term)
    if not needle:
        return QueryResult(offset=offset)

    if any(cat.lower() == needle for cat in snapshot.categories()):
        return _collect(snapshot, lambda path, _: path[0].lower() == needle, offset, limit)

    if any(sub.lower() == needle for _, sub in snapshot.subcategories()):
        return _collect(snapshot, lambda path, _: path[1].lower() == needle, offset, limit)

    return _collect(
        snapshot,
        lambda _, record: any(needle in value for value in _haystack(record)),
        offset,
        limit,
    )


def search_all_terms(
    snapshot: StoreSnapshot, terms: Sequence[str], offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT
) -> QueryResult:
    """AND search: every term must appear in some field, not necessarily the same one."""
    needles = [n for n in (_normalise(t) for t in terms) if n]
    if not needles:
        return QueryResult(offset=offset)

    def matches(_, record: Record) -> bool:
        haystack = _haystack(record)
        return all(any(needle in value for value in haystack) for needle in needles)

    return _collect(snapshot, matches, offset, limit)


def filter_by_category_prefix(
    snapshot: StoreSnapshot, text: str, offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT
) -> QueryResult:
    """Substring match against the category key only."""
    needle = _normalise(text)
    if not needle:
        return QueryResult(offset=offset)
    return _collect(snapshot, lambda path, _: needle in path[0].lower(), offset, limit)


def filter_by_subcategory_prefix(
    snapshot: StoreSnapshot, text: str, offset: int = 0, limit: Optional[int] = DISPLAY_LIMIT
) -> QueryResult:
    """Substring match against the subcategory key only."""
    needle = _normalise(text)
    if not needle:
        return QueryResult(offset=offset)
    return _collect(snapshot, lambda path, _: needle in path[1].lower(), offset, limit)


# ─────────────────────────────────────────────────────────────
#  Aggregates
# ─────────────────────────────────────────────────────────────

def stats(snapshot: StoreSnapshot) -> Stats:
    counts: Dict[str, int] = Counter()
    for path, _ in snapshot.entries():
        counts[path[0]] += 1

    # sorted() is stable, so equal counts keep the categories' first-seen order
    per_category = sorted(
        ((cat, counts[cat]) for cat in snapshot.categories()),
        key=lambda item: item[1],
        reverse=True,
    )
    key_details = None
    if snapshot.width == 5:
        key_details = len({path for path, _ in snapshot.entries()})

    return Stats(
        total_records=len(snapshot),
        category_count=len(snapshot.categories()),
        subcategory_count=len(snapshot.subcategories()),
        concept_count=len(snapshot.concepts()),
        per_category_counts=per_category,
        key_detail_count=key_details,
    )


def resolve_field(snapshot: StoreSnapshot, name: str) -> str:
    """Map a field or header name onto a Record attribute of the active schema."""
    key = _normalise(name)
    if not key:
        raise QueryError("field name must not be empty")
    attribute = key if key in FIELD_NAMES[5] else FIELD_ALIASES.get(key)
    if attribute is None:
        raise QueryError(f"unknown field: {name!r}")
    if attribute not in FIELD_NAMES[snapshot.width]:
        raise QueryError(f"field {name!r} is not part of the {snapshot.width}-field schema")
    return attribute


def unique_values(snapshot: StoreSnapshot, field_name: str) -> List[str]:
    """Distinct values of one field, in order of first appearance in the flat record list."""
    attribute = resolve_field(snapshot, field_name)
    # dict keys double as an insertion-ordered set
    seen = dict.fromkeys(getattr(record, attribute) for record in snapshot.records)
    return list(seen)


def random_sample(snapshot: StoreSnapshot, n: int, rng: Optional[random.Random] = None) -> List[Record]:
    """
    n distinct records drawn without replacement.
    Asking for more than the store holds returns every record, shuffled.
    """
    if n < 0:
        raise QueryError("sample size must not be negative")
    rng = rng or random.Random()
    records = list(snapshot.records)
    return rng.sample(records, min(n, len(records)))


def list_structure(snapshot: StoreSnapshot) -> Dict[str, Dict[str, List[str]]]:
    return snapshot.structure()
