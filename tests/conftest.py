"""Shared fixtures: small five- and four-field knowledge bases."""
import csv
from pathlib import Path
from typing import List

import pytest

from microfiche.shared import Record
from microfiche.store import RecordStore


def five(cat, sub, concept, detail, note) -> Record:
    return Record(category=cat, subcategory=sub, concept=concept, key_detail=detail, note=note)


def four(cat, sub, concept, note) -> Record:
    return Record(category=cat, subcategory=sub, concept=concept, note=note)


@pytest.fixture
def math_records() -> List[Record]:
    return [
        five("Math", "Algebra", "Quadratic Formula", "Definition", "x = (-b ± sqrt(b^2 - 4ac)) / 2a"),
        five("Math", "Calculus", "Derivative", "Definition", "d/dx of f is the limit of the difference quotient"),
        five("Physics", "Mechanics", "Newton's Second Law", "Formula", "F = ma"),
        five("Math", "Algebra", "Quadratic Formula", "Example", "x^2 - 5x + 6 = 0 gives x = 2, 3"),
        five("Physics", "Algebra", "Vector Spaces", "Definition", "Linear algebra underpins mechanics"),
        five("Mathematics", "Geometry", "Pythagoras", "Theorem", "a^2 + b^2 = c^2"),
    ]


@pytest.fixture
def store(math_records) -> RecordStore:
    return RecordStore.build(math_records)


@pytest.fixture
def four_field_store() -> RecordStore:
    return RecordStore.build([
        four("Programming", "Python", "Decorators", "Functions that wrap functions"),
        four("Programming", "Python", "Generators", "Lazy iterators built with yield"),
        four("Programming", "Rust", "Ownership", "Each value has a single owner"),
        four("Cooking", "Baking", "Bread", "Knead the dough for ten minutes"),
    ])


def write_csv(path: Path, header: List[str], rows: List[List[str]]) -> Path:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


@pytest.fixture
def csv_file(tmp_path, math_records) -> Path:
    rows = [r.to_row(5) for r in math_records]
    return write_csv(tmp_path / "microfiche.csv", ["Category", "Subcategory", "Concept", "KeyDetail", "Note"], rows)
