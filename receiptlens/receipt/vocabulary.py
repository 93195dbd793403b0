"""Keyword dictionaries shared by the classifier and the name validator."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from receiptlens.receipt.format_profiles import RuleConfigError, compile_rule_regex

DEFAULT_MULTI_UNIT_PATTERN = r"\d+(?:個|缶|パック|本|袋|枚|P)"


@dataclass(frozen=True)
class Vocabulary:
    """Immutable keyword and pattern sets."""

    food_keywords: tuple[str, ...] = ()
    metadata_keywords: tuple[str, ...] = ()
    total_keywords: tuple[str, ...] = ()
    non_food_patterns: tuple[re.Pattern[str], ...] = ()
    non_food_items: frozenset[str] = frozenset()
    noise_literals: frozenset[str] = frozenset()
    noise_patterns: tuple[re.Pattern[str], ...] = ()
    corrections: tuple[tuple[str, str], ...] = ()
    multi_unit_pattern: re.Pattern[str] = re.compile(DEFAULT_MULTI_UNIT_PATTERN)

    def find_metadata_keyword(self, text: str) -> str | None:
        """Return the first metadata/total keyword contained in text (case-insensitive)."""
        lowered = text.lower()
        for keyword in self.total_keywords + self.metadata_keywords:
            if keyword.lower() in lowered:
                return keyword
        return None

    def is_total_keyword(self, keyword: str) -> bool:
        return keyword in self.total_keywords

    def has_food_keyword(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword.lower() in lowered for keyword in self.food_keywords)

    def is_non_food(self, name: str) -> bool:
        if name.strip().upper() in self.non_food_items:
            return True
        return any(pattern.search(name) for pattern in self.non_food_patterns)

    def is_noise(self, name: str) -> bool:
        if name in self.noise_literals:
            return True
        return any(pattern.match(name) for pattern in self.noise_patterns)


def _merge_unique(target: list[str], raw: Any) -> None:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return
    for value in raw:
        text = str(value).strip()
        if text and text not in target:
            target.append(text)


def build_vocabulary(vocabulary_configs: Sequence[Mapping[str, Any]] | None = None) -> Vocabulary:
    """Merge vocabulary layers; keyword lists are unioned in layer order."""
    food: list[str] = []
    metadata: list[str] = []
    totals: list[str] = []
    non_food_patterns: list[str] = []
    non_food_items: list[str] = []
    noise_literals: list[str] = []
    noise_patterns: list[str] = []
    corrections: dict[str, str] = {}
    multi_unit = DEFAULT_MULTI_UNIT_PATTERN

    for config in vocabulary_configs or ():
        _merge_unique(food, config.get("food_keywords", []))
        _merge_unique(metadata, config.get("metadata_keywords", []))
        _merge_unique(totals, config.get("total_keywords", []))
        _merge_unique(non_food_patterns, config.get("non_food_patterns", []))
        _merge_unique(non_food_items, config.get("non_food_items", []))
        _merge_unique(noise_literals, config.get("noise_literals", []))
        _merge_unique(noise_patterns, config.get("noise_patterns", []))

        raw_corrections = config.get("corrections", {})
        if not isinstance(raw_corrections, Mapping):
            raise RuleConfigError("[corrections] must be a table of misread = corrected")
        for wrong, right in raw_corrections.items():
            if not str(wrong):
                raise RuleConfigError("[corrections] keys must be non-empty")
            corrections[str(wrong)] = str(right)

        if "multi_unit_pattern" in config:
            multi_unit = str(config["multi_unit_pattern"])

    return Vocabulary(
        food_keywords=tuple(food),
        metadata_keywords=tuple(metadata),
        total_keywords=tuple(totals),
        non_food_patterns=tuple(
            compile_rule_regex(pattern, "vocabulary.non_food_patterns") for pattern in non_food_patterns
        ),
        non_food_items=frozenset(item.upper() for item in non_food_items),
        noise_literals=frozenset(noise_literals),
        noise_patterns=tuple(compile_rule_regex(pattern, "vocabulary.noise_patterns") for pattern in noise_patterns),
        # Longest misread first so overlapping entries apply deterministically
        corrections=tuple(sorted(corrections.items(), key=lambda pair: (-len(pair[0]), pair[0]))),
        multi_unit_pattern=compile_rule_regex(multi_unit, "vocabulary.multi_unit_pattern"),
    )
