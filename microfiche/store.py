# Standard Library Imports
import threading  # Serialises writers; readers never take the lock

# Data Structure Helpers
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from microfiche.errors import QueryError
from microfiche.shared import DEFAULT_SCHEMA_WIDTH, Record, check_record, tree_depth

# A tree level maps a key to the next level; the last level maps a key to the
# positions of its notes in the flat record tuple.
Tree = Dict[str, object]


##  ##                                                           ##  ##  --  --  Tree Builder  --  --  ##  ##
def build_tree(records: Sequence[Record], width: int) -> Tree:
    """
    Derive the hierarchy from the flat records.
    Nodes hold positions into `records`, never copies of them, so the flat
    tuple stays the single source of truth.
    Keys keep their original case; dicts keep first-seen order.
    """
    depth = tree_depth(width)
    root: Tree = {}
    for position, record in enumerate(records):
        keys = record.path(width)
        node = root
        # Walk (and create) every level except the last
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        # The last level holds the note positions, in insertion order
        node.setdefault(keys[depth - 1], []).append(position)
    return root


def _walk(node: Tree, depth: int, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], int]]:
    """Yield (path, position) pairs in canonical order."""
    for key, child in node.items():
        path = prefix + (key,)
        if len(path) == depth:
            for position in child:
                yield path, position
        else:
            yield from _walk(child, depth, path)


##  ##                                                           ##  ##  --  --  Snapshot  --  --  ##  ##
@dataclass(frozen=True)
class StoreSnapshot:
    """
    Read-only view handed to the query functions.
    A snapshot is never modified after creation: every mutation of the store
    publishes a new one, so a reader holding an old snapshot keeps a consistent
    (if stale) picture.
    """
    records: Tuple[Record, ...]
    width: int
    _tree: Tree = field(repr=False, compare=False)

    @classmethod
    def create(cls, records: Iterable[Record], width: int) -> "StoreSnapshot":
        records = tuple(records)
        return cls(records=records, width=width, _tree=build_tree(records, width))

    @property
    def depth(self) -> int:
        return tree_depth(self.width)

    def __len__(self) -> int:
        return len(self.records)

    def entries(self) -> Iterator[Tuple[Tuple[str, ...], Record]]:
        """Every (path, record) pair, category first, then subcategory, and so on."""
        for path, position in _walk(self._tree, self.depth):
            yield path, self.records[position]

    def categories(self) -> List[str]:
        return list(self._tree)

    def subcategories(self) -> List[Tuple[str, str]]:
        """(category, subcategory) pairs in first-seen order."""
        return [(cat, sub) for cat, subs in self._tree.items() for sub in subs]

    def concepts(self) -> List[Tuple[str, str, str]]:
        return [
            (cat, sub, concept)
            for cat, subs in self._tree.items()
            for sub, concepts in subs.items()
            for concept in concepts
        ]

    def positions_at(self, path: Sequence[str]) -> List[int]:
        """Positions of every record under `path` (which may be partial)."""
        node = self._tree
        for key in path:
            if key not in node:
                return []
            node = node[key]
        if len(path) == self.depth:
            return list(node)
        return [position for _, position in _walk(node, self.depth, tuple(path))]

    def structure(self) -> Dict[str, Dict[str, List[str]]]:
        """Category -> subcategory -> concept names, without notes."""
        return {
            cat: {sub: list(concepts) for sub, concepts in subs.items()}
            for cat, subs in self._tree.items()
        }


##  ##                                                           ##  ##  --  --  Record Store  --  --  ##  ##
class RecordStore:
    """
    Owns the flat record list and its derived tree.

    Writers build a complete new snapshot and publish it with a single
    assignment, so readers observe a mutation either fully or not at all.
    Duplicate records are kept; spotting them is the validator's job.
    """

    def __init__(self, width: int = DEFAULT_SCHEMA_WIDTH):
        if width not in (4, 5):
            raise ValueError(f"schema width must be 4 or 5, not {width}")
        self._lock = threading.Lock()
        self._snapshot = StoreSnapshot.create((), width)

    @classmethod
    def build(cls, records: Iterable[Record], width: Optional[int] = None) -> "RecordStore":
        """
        Build a store by inserting `records` in order.
        Without an explicit width, a record carrying a key detail selects the
        5-field schema; otherwise the 4-field one is used (5 for no records).
        Raises MalformedRecordError before anything is stored.
        """
        records = list(records)
        if width is None:
            if not records:
                width = DEFAULT_SCHEMA_WIDTH
            else:
                width = 5 if any(r.key_detail is not None for r in records) else 4
        store = cls(width)
        checked = [check_record(r, width, index=i) for i, r in enumerate(records)]
        store._snapshot = StoreSnapshot.create(checked, width)
        return store

    @property
    def width(self) -> int:
        return self._snapshot.width

    def __len__(self) -> int:
        return len(self._snapshot)

    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    def to_records(self) -> List[Record]:
        """Flatten the tree back into rows, in canonical export order."""
        return [record for _, record in self._snapshot.entries()]

    def _publish(self, records: Iterable[Record]):
        self._snapshot = StoreSnapshot.create(records, self._snapshot.width)

    # ==================== Mutations ====================

    def insert(self, record: Record) -> Record:
        """Append a record, creating intermediate tree nodes as needed."""
        with self._lock:
            current = self._snapshot
            record = check_record(record, current.width, index=len(current))
            self._publish(current.records + (record,))
        return record

    def delete_note(self, path: Sequence[str], note: str) -> bool:
        """Remove exactly one note at the full `path`; False if nothing matched."""
        with self._lock:
            current = self._snapshot
            if len(path) != current.depth:
                raise QueryError(f"note path needs {current.depth} keys, got {len(path)}")
            for position in current.positions_at(path):
                if current.records[position].note == note:
                    records = list(current.records)
                    del records[position]
                    self._publish(records)
                    return True
        return False

    def delete_subtree(self, partial_path: Sequence[str]) -> int:
        """Remove every record below `partial_path`; returns how many went."""
        with self._lock:
            current = self._snapshot
            if not 1 <= len(partial_path) <= current.depth:
                raise QueryError(
                    f"subtree path needs 1 to {current.depth} keys, got {len(partial_path)}"
                )
            doomed = set(current.positions_at(partial_path))
            if doomed:
                self._publish(r for i, r in enumerate(current.records) if i not in doomed)
        return len(doomed)

    def update(self, old: Record, new: Record) -> Optional[Record]:
        """
        Replace the first record equal to `old` with `new`, keeping its place
        in the flat list. Delete-then-insert in one step, with no visible gap.
        Returns the record as stored, or None when `old` is not present.
        """
        with self._lock:
            current = self._snapshot
            if current.width == 5 and old.key_detail is None:
                old = replace(old, key_detail="")
            try:
                position = current.records.index(old)
            except ValueError:
                return None
            new = check_record(new, current.width, index=position)
            records = list(current.records)
            records[position] = new
            self._publish(records)
        return new
