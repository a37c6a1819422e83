"""
Term Association Layer
======================
Word statistics over concept names and notes.
Uses regex tokenisation only; no external NLP.

Each note is tokenised into lower-case terms. Terms appearing in the same
note are counted as co-occurring pairs; every term is also attributed to the
category it was found in.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from microfiche.shared import MIN_TERM_LENGTH, TOP_TERMS_PER_CATEGORY
from microfiche.store import StoreSnapshot

# ─────────────────────────────────────────────────────────────
#  Stop Words
# ─────────────────────────────────────────────────────────────
# English function words plus link noise that clutters pasted notes.

STOP_WORDS: Set[str] = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "should", "could", "may", "might", "must", "can", "this",
    "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
    "what", "which", "who", "when", "where", "why", "how", "all", "each",
    "every", "both", "few", "more", "most", "other", "some", "such", "no",
    "not", "only", "own", "same", "so", "than", "too", "very", "just",
    "www", "youtube", "https", "com", "github", "http", "watch", "conference",
    "commit", "src", "main",
}

_SPLIT = re.compile(r"[^\w]+|_")


# ─────────────────────────────────────────────────────────────
#  TermReport (structured result)
# ─────────────────────────────────────────────────────────────

@dataclass
class TermReport:
    word_freq: Dict[str, int] = field(default_factory=dict)
    # ((term_a, term_b), count, categories) with term_a < term_b
    cooccurrences: List[Tuple[Tuple[str, str], int, List[str]]] = field(default_factory=list)
    # category -> [(term, global frequency), ...]
    category_terms: Dict[str, List[Tuple[str, int]]] = field(default_factory=dict)
    category_term_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def unique_terms(self) -> int:
        return len(self.word_freq)


# ─────────────────────────────────────────────────────────────
#  Public API
# ─────────────────────────────────────────────────────────────

def extract_words(text: str) -> List[str]:
    """Lower-cased terms of `text`, minus stop words and short fragments."""
    return [
        w for w in _SPLIT.split(text.lower())
        if len(w) >= MIN_TERM_LENGTH and w not in STOP_WORDS
    ]


def analyze_terms(snapshot: StoreSnapshot, top_per_category: int = TOP_TERMS_PER_CATEGORY) -> TermReport:
    word_freq: Counter = Counter()
    category_words: Dict[str, Set[str]] = {}
    pair_counts: Counter = Counter()
    pair_categories: Dict[Tuple[str, str], Set[str]] = {}
    seen_concepts: Set[Tuple[str, ...]] = set()

    for path, record in snapshot.entries():
        category = path[0]
        cat_words = category_words.setdefault(category, set())

        # Concept names count once per concept, not once per note
        concept_key = path[:3]
        if concept_key not in seen_concepts:
            seen_concepts.add(concept_key)
            for word in extract_words(record.concept):
                word_freq[word] += 1
                cat_words.add(word)

        words = extract_words(record.note)
        word_freq.update(words)
        cat_words.update(words)

        # Every ordered position pair within the note, identical words skipped
        for i in range(len(words)):
            for j in range(i + 1, len(words)):
                if words[i] == words[j]:
                    continue
                pair = tuple(sorted((words[i], words[j])))
                pair_counts[pair] += 1
                pair_categories.setdefault(pair, set()).add(category)

    cooccurrences = sorted(
        ((pair, count, sorted(pair_categories[pair])) for pair, count in pair_counts.items()),
        key=lambda item: (-item[1], item[0]),
    )

    category_terms = {}
    for category, terms in category_words.items():
        ranked = sorted(((t, word_freq[t]) for t in terms), key=lambda item: (-item[1], item[0]))
        category_terms[category] = ranked[:top_per_category]

    return TermReport(
        word_freq=dict(word_freq),
        cooccurrences=cooccurrences,
        category_terms=category_terms,
        category_term_counts={c: len(t) for c, t in category_words.items()},
    )
