"""Tests for the KnowledgeStore facade shared by the front ends."""
import pytest

from conftest import five, write_csv
from microfiche.errors import MalformedRecordError
from microfiche.knowledge_store import KnowledgeStore
from microfiche.shared import Record
from microfiche.validation import DuplicateRowError, EmptyFieldError, FieldCountError


def test_load_reports_validation_findings(tmp_path):
    path = write_csv(
        tmp_path / "kb.csv",
        ["Category", "Subcategory", "Concept", "KeyDetail", "Note"],
        [
            ["Math", "Algebra", "Quadratic", "Definition", "x=..."],
            ["Math", "Algebra", "Quadratic", "Definition", "x=..."],
        ],
    )
    kb = KnowledgeStore()
    outcome = kb.load(path)
    assert outcome.record_count == 2
    assert outcome.report.total_error_count == 1
    # Line 1 is the header
    assert outcome.report.errors[0].line == 3
    assert kb.path == path


def test_failed_load_keeps_previous_store(tmp_path, csv_file):
    kb = KnowledgeStore()
    kb.load(csv_file)
    bad = write_csv(tmp_path / "bad.csv", ["Category", "Subcategory", "Concept", "Note"],
                    [["", "Sub", "Concept", "Note"]])
    with pytest.raises(MalformedRecordError):
        kb.load(bad)
    assert len(kb.store) == 6
    assert kb.path == csv_file


def test_failed_load_carries_the_whole_report(tmp_path, csv_file):
    rows = [["Cat", "Sub", f"Concept {i}", "Detail", f"Note {i}"] for i in range(7)]
    rows.insert(2, ["Cat", "Sub", "Concept", "Note only"])        # line 4
    rows.insert(5, ["Cat", "Sub", "", "Detail", "No concept"])     # line 7
    rows.append(list(rows[0]))                                     # line 11
    bad = write_csv(tmp_path / "bad.csv", ["Category", "Subcategory", "Concept", "KeyDetail", "Note"], rows)

    kb = KnowledgeStore()
    kb.load(csv_file)
    with pytest.raises(MalformedRecordError) as info:
        kb.load(bad)

    report = info.value.report
    assert report.total_error_count == 3
    assert report.errors == [
        FieldCountError(line=4, expected=5, actual=4),
        EmptyFieldError(line=7, field_index=2),
        DuplicateRowError(line=11, first_seen_line=2),
    ]
    assert info.value.line == 4
    assert len(kb.store) == 6
    assert kb.path == csv_file


def test_update_returns_normalised_record(store):
    kb = KnowledgeStore(store)
    old = store.to_records()[0]
    new = Record(category=old.category, subcategory=old.subcategory, concept=old.concept, note="changed")
    assert kb.update(old, new).key_detail == ""


def test_save_without_path_fails():
    with pytest.raises(ValueError):
        KnowledgeStore().save()


def test_edit_and_save_round_trip(tmp_path, csv_file):
    kb = KnowledgeStore()
    kb.load(csv_file)
    kb.add(five("Chemistry", "Organic", "Benzene", "Structure", "C6H6"))
    assert kb.delete_subtree(["Physics"]) == 2
    target = kb.save(tmp_path / "copy.csv")

    reloaded = KnowledgeStore()
    reloaded.load(target)
    assert reloaded.stats().per_category_counts == [("Math", 3), ("Mathematics", 1), ("Chemistry", 1)]
    assert reloaded.search("benzene").total == 1
    assert reloaded.filter_by_category("chem").total == 1
    assert reloaded.search_all(["math", "definition"]).total == 2


def test_validate_uses_store_width(store):
    kb = KnowledgeStore(store)
    report = kb.validate([["a", "b", "c", "d"]])
    assert report.errors[0].expected == 5
