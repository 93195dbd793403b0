"""Item categorization rules for receipt line items.

This module maps cleaned item names to a closed set of display categories.
Matching is a plain ordered lookup: the first rule with a keyword that is a
case-insensitive substring of the name wins. Rules are loaded in layers
(bundled defaults, then user configuration); later layers are consulted
first so users can override a default.

To add new rules, edit receipt/rules/default_item_classifier.toml or the
user-level item_classifier.toml:

    [[rules]]
    key = "vegetable"
    keywords = ["キャベツ", "にんじん"]
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

DEFAULT_CATEGORY = "その他"

# Category key -> display label. TOML [labels] tables extend or override this.
DEFAULT_CATEGORY_LABELS: dict[str, str] = {
    "vegetable": "野菜",
    "fruit": "果物",
    "meat": "肉類",
    "fish": "魚類",
    "dairy": "乳製品",
    "bread_grain": "パン・穀物",
    "seasoning": "調味料",
    "drink": "飲料",
    "frozen": "冷凍食品",
    "tofu_soy": "豆腐・大豆製品",
    "other_food": "その他食品",
}

# (keywords, category key, priority, declaration order)
RuleEntry = tuple[tuple[str, ...], str, int, int]


@dataclass(frozen=True)
class ItemCategoryRuleLayers:
    """In-memory categorization rules, label mapping and default category."""

    rules: tuple[RuleEntry, ...]
    labels: Mapping[str, str]
    default_category: str = DEFAULT_CATEGORY

    @property
    def categories(self) -> frozenset[str]:
        """The closed set of categories an item can receive."""
        return frozenset(self.labels.values()) | {self.default_category}


def _normalize_keywords(raw: Any) -> tuple[str, ...]:
    """Normalize keywords value from TOML into a non-empty tuple."""
    if isinstance(raw, str):
        value = raw.strip()
        return (value,) if value else tuple()
    if isinstance(raw, list):
        values = [str(v).strip() for v in raw if str(v).strip()]
        return tuple(values)
    return tuple()


def build_item_category_rule_layers(
    classifier_configs: Sequence[Mapping[str, Any]] | None = None,
) -> ItemCategoryRuleLayers:
    """Build ordered rules and the label mapping from in-memory configs."""
    rules: list[RuleEntry] = []
    labels = dict(DEFAULT_CATEGORY_LABELS)
    default_category = DEFAULT_CATEGORY
    order = 0

    classifier_configs = classifier_configs or ()
    for idx, config in enumerate(classifier_configs, start=1):
        layer_priority = idx * 100
        for rule in config.get("rules", []):
            if not isinstance(rule, Mapping):
                continue

            keywords = _normalize_keywords(rule.get("keywords"))
            if not keywords:
                continue

            target = str(rule.get("key") or rule.get("category") or "").strip()
            if not target:
                continue

            priority = int(rule.get("priority", 0)) + layer_priority
            rules.append((keywords, target, priority, order))
            order += 1

        raw_labels = config.get("labels", {})
        if isinstance(raw_labels, Mapping):
            for key, value in raw_labels.items():
                key_str = str(key).strip()
                value_str = str(value).strip()
                if key_str and value_str:
                    labels[key_str] = value_str

        if str(config.get("default_category", "")).strip():
            default_category = str(config["default_category"]).strip()

    rules.sort(key=lambda entry: (-entry[2], entry[3]))
    return ItemCategoryRuleLayers(
        rules=tuple(rules),
        labels=labels,
        default_category=default_category,
    )


@lru_cache(maxsize=1)
def _get_default_rule_layers() -> ItemCategoryRuleLayers:
    """Built-in labels only (no file I/O, no runtime deps)."""
    return build_item_category_rule_layers()


def _find_matches(name: str, rules: Sequence[RuleEntry]) -> list[tuple[str, str]]:
    """Return (category key, matched keyword) for every matching rule, in rule order."""
    lowered = name.lower()
    matches = []
    for keywords, key, _, _ in rules:
        for keyword in keywords:
            if keyword.lower() in lowered:
                matches.append((key, keyword))
                break
    return matches


def _resolve_label(key: str, labels: Mapping[str, str]) -> str:
    """Resolve an internal key to its display label; unknown keys are labels already."""
    return labels.get(key, key)


def classify_item_key(
    name: str,
    default: str | None = None,
    rule_layers: ItemCategoryRuleLayers | None = None,
) -> str | None:
    """Classify an item to its internal category key."""
    layers = rule_layers or _get_default_rule_layers()
    matches = _find_matches(name, layers.rules)
    if not matches:
        return default
    return matches[0][0]


def categorize_item(
    name: str,
    rule_layers: ItemCategoryRuleLayers | None = None,
) -> str:
    """
    Return the display category for an item name.

    Args:
        name: Cleaned item name (e.g., "国産にんじん")
        rule_layers: Preloaded in-memory rules (typically from runtime loader).

    Returns:
        Category label (e.g., "野菜"), or the default category if nothing matches.

    When rule_layers is omitted, no keyword rules apply and every item gets the default.
    """
    layers = rule_layers or _get_default_rule_layers()
    key = classify_item_key(name, rule_layers=layers)
    if key is None:
        return layers.default_category
    return _resolve_label(key, layers.labels)


def categorize_item_debug(
    name: str,
    rule_layers: ItemCategoryRuleLayers | None = None,
) -> list[tuple[str, str]]:
    """Debug version that returns every matching rule in precedence order.

    Returns:
        List of (category label, matched keyword) tuples; the first one wins.
    """
    layers = rule_layers or _get_default_rule_layers()
    return [(_resolve_label(key, layers.labels), keyword) for key, keyword in _find_matches(name, layers.rules)]
