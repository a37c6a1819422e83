"""Tests for the record store and its derived tree."""
import threading
from collections import Counter

import pytest

from conftest import five, four
from microfiche.errors import MalformedRecordError, QueryError
from microfiche.shared import Record
from microfiche.store import RecordStore


class TestBuild:
    def test_width_is_inferred_from_key_details(self, store, four_field_store):
        assert store.width == 5
        assert four_field_store.width == 4
        assert RecordStore.build([]).width == 5

    def test_tree_keeps_first_seen_order(self, store):
        snapshot = store.snapshot()
        assert snapshot.categories() == ["Math", "Physics", "Mathematics"]
        assert snapshot.structure()["Math"] == {
            "Algebra": ["Quadratic Formula"],
            "Calculus": ["Derivative"],
        }

    def test_empty_required_field_is_rejected(self, math_records):
        bad = math_records + [five("Math", "", "Orphan", "x", "note")]
        with pytest.raises(MalformedRecordError) as info:
            RecordStore.build(bad)
        assert info.value.index == len(math_records)
        assert info.value.field == "subcategory"

    def test_empty_note_and_key_detail_are_accepted(self):
        store = RecordStore.build([five("A", "B", "C", "", "")])
        assert len(store) == 1

    def test_four_field_store_rejects_key_detail(self, four_field_store):
        with pytest.raises(MalformedRecordError):
            four_field_store.insert(five("A", "B", "C", "detail", "note"))


class TestRoundTrip:
    def test_to_records_groups_by_tree_path(self, store):
        paths = [(r.category, r.subcategory) for r in store.to_records()]
        assert paths == [
            ("Math", "Algebra"), ("Math", "Algebra"), ("Math", "Calculus"),
            ("Physics", "Mechanics"), ("Physics", "Algebra"),
            ("Mathematics", "Geometry"),
        ]

    def test_rebuild_preserves_leaf_multiset(self, store, math_records):
        rebuilt = RecordStore.build(store.to_records())
        assert Counter(rebuilt.to_records()) == Counter(math_records)
        assert rebuilt.to_records() == store.to_records()

    def test_sibling_notes_keep_insertion_order(self):
        store = RecordStore.build([
            four("A", "B", "C", "first"),
            four("X", "Y", "Z", "other"),
            four("A", "B", "C", "second"),
        ])
        assert [r.note for r in store.to_records()] == ["first", "second", "other"]


class TestMutations:
    def test_insert_creates_intermediate_nodes(self, store):
        store.insert(five("Chemistry", "Organic", "Benzene", "Structure", "C6H6 ring"))
        assert store.snapshot().structure()["Chemistry"] == {"Organic": ["Benzene"]}
        assert len(store) == 7

    def test_insert_keeps_duplicates(self, store, math_records):
        store.insert(math_records[0])
        assert store.to_records().count(math_records[0]) == 2

    def test_insert_normalises_missing_key_detail(self, store):
        record = store.insert(Record("A", "B", "C", "note"))
        assert record.key_detail == ""

    def test_failed_insert_leaves_store_unchanged(self, store):
        before = store.snapshot()
        with pytest.raises(MalformedRecordError):
            store.insert(five("", "B", "C", "D", "E"))
        assert store.snapshot() is before

    def test_delete_note_removes_exactly_one(self, store):
        store.insert(five("Physics", "Mechanics", "Newton's Second Law", "Formula", "F = ma"))
        removed = store.delete_note(("Physics", "Mechanics", "Newton's Second Law", "Formula"), "F = ma")
        assert removed
        assert [r.note for r in store.to_records()].count("F = ma") == 1

    def test_delete_note_missing_returns_false(self, store):
        assert not store.delete_note(("Math", "Algebra", "Quadratic Formula", "Definition"), "nope")
        assert not store.delete_note(("Nope", "Algebra", "Quadratic Formula", "Definition"), "x")
        assert len(store) == 6

    def test_delete_note_requires_full_path(self, store):
        with pytest.raises(QueryError):
            store.delete_note(("Math", "Algebra"), "x")

    def test_delete_last_note_prunes_empty_branches(self, store):
        store.delete_note(("Mathematics", "Geometry", "Pythagoras", "Theorem"), "a^2 + b^2 = c^2")
        assert "Mathematics" not in store.snapshot().categories()

    def test_delete_subtree(self, store):
        original = len(store)
        removed = store.delete_subtree(("Math", "Algebra"))
        assert removed == 2
        assert len(store.to_records()) == original - removed
        assert not any(
            r.category == "Math" and r.subcategory == "Algebra" for r in store.to_records()
        )
        # Same subcategory under another category survives
        assert any(r.subcategory == "Algebra" for r in store.to_records())

    def test_delete_subtree_whole_category(self, store):
        assert store.delete_subtree(("Physics",)) == 2
        assert store.snapshot().categories() == ["Math", "Mathematics"]

    def test_delete_subtree_path_length(self, store):
        with pytest.raises(QueryError):
            store.delete_subtree(())
        with pytest.raises(QueryError):
            store.delete_subtree(("a", "b", "c", "d", "e"))

    def test_update_replaces_in_place(self, store, math_records):
        new = five("Math", "Algebra", "Quadratic Formula", "Definition", "roots of ax^2 + bx + c")
        assert store.update(math_records[0], new) == new
        records = store.to_records()
        assert new in records
        assert math_records[0] not in records
        assert len(records) == 6

    def test_update_missing_or_invalid(self, store, math_records):
        assert store.update(five("No", "Such", "Record", "x", "y"), math_records[0]) is None
        with pytest.raises(MalformedRecordError):
            store.update(math_records[0], five("Math", "", "C", "D", "E"))
        assert math_records[0] in store.to_records()

    def test_update_returns_the_stored_record(self, store, math_records):
        new = Record(category="Math", subcategory="Algebra", concept="Quadratic Formula",
                     note="roots of ax^2 + bx + c")
        stored = store.update(math_records[0], new)
        assert stored.key_detail == ""
        assert stored in store.to_records()


class TestSnapshots:
    def test_snapshot_is_unaffected_by_later_mutations(self, store):
        snapshot = store.snapshot()
        store.delete_subtree(("Math",))
        store.insert(five("New", "Sub", "Concept", "Detail", "Note"))
        assert len(snapshot) == 6
        assert "Math" in snapshot.categories()
        assert "New" not in snapshot.categories()

    def test_concurrent_inserts_are_not_lost(self):
        store = RecordStore(width=4)

        def worker(n):
            for i in range(50):
                store.insert(four(f"Cat{n}", "Sub", "Concept", f"note {i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store) == 200
        snapshot = store.snapshot()
        assert sum(1 for _ in snapshot.entries()) == 200
