"""Duplicate consolidation for validated candidates and engine items.

Two entries describe the same physical item when their normalized names are
near-identical (similarity >= 0.95, any price) or similar (>= 0.8) with an
identical price. The highest-confidence member of each cluster survives.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal
from typing import Protocol, TypeVar

from rapidfuzz.distance import Levenshtein

from receiptlens.domain.receipt import Candidate, Item

NEAR_IDENTICAL_SIMILARITY = 0.95
SAME_PRICE_SIMILARITY = 0.8

# Whitespace and hyphen-like characters; the katakana long vowel mark is part of the word
KEY_STRIP_PATTERN = re.compile(r"[\s\-‐‑‒–—―－]+")


class _Priced(Protocol):
    name: str
    confidence: float
    source_line_indices: tuple[int, ...]

    @property
    def price(self) -> Decimal | None: ...


T = TypeVar("T", Candidate, Item)


def normalize_name_key(name: str) -> str:
    """Lowercase and strip whitespace/hyphens."""
    return KEY_STRIP_PATTERN.sub("", name.lower())


def name_similarity(first: str, second: str) -> float:
    """Normalized Levenshtein similarity: (maxLen - distance) / maxLen."""
    a, b = normalize_name_key(first), normalize_name_key(second)
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - Levenshtein.distance(a, b)) / max_len


def is_same_item(first: _Priced, second: _Priced) -> bool:
    similarity = name_similarity(first.name, second.name)
    if similarity >= NEAR_IDENTICAL_SIMILARITY:
        return True
    return similarity >= SAME_PRICE_SIMILARITY and first.price == second.price


def _sort_key(entry: _Priced) -> tuple[float, int]:
    first_line = entry.source_line_indices[0] if entry.source_line_indices else 0
    return (-entry.confidence, first_line)


def consolidate_entries(entries: Iterable[T]) -> list[T]:
    """Cluster duplicates and keep the highest-confidence member of each.

    Entries are visited by descending confidence (ties: earlier source line),
    so each kept entry is the best of its cluster and no two kept entries
    satisfy ``is_same_item``.

    Returns:
        Survivors ordered by descending confidence.
    """
    kept: list[T] = []
    for entry in sorted(entries, key=_sort_key):
        if any(is_same_item(entry, survivor) for survivor in kept):
            continue
        kept.append(entry)
    return kept


def consolidate(
    candidates: Sequence[Candidate],
    *,
    categorize: Callable[[str], str],
    engine: str = "",
) -> list[Item]:
    """Merge validated candidates into final items and tag their categories.

    Candidates must already carry a normalized price and currency. A category
    preset on the candidate wins over the categorizer.
    """
    items: list[Item] = []
    for candidate in consolidate_entries(candidates):
        if candidate.price is None or candidate.currency is None:
            continue
        items.append(
            Item(
                name=candidate.name,
                price=candidate.price,
                quantity=max(1, candidate.quantity),
                category=candidate.category or categorize(candidate.name),
                confidence=candidate.confidence,
                currency=candidate.currency,
                detection_method=candidate.detection_method,
                source_line_indices=candidate.source_line_indices,
                engine=engine,
            )
        )
    return items


def merge_items(item_groups: Sequence[Sequence[Item]]) -> list[Item]:
    """Union items from several engines, consolidated with the same rule."""
    return consolidate_entries(item for group in item_groups for item in group)
