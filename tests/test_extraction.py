"""Tests for candidate extraction phases and variants."""

from __future__ import annotations

from typing import Any

from receiptlens.domain.receipt import LineRecord, ParseDiagnostic
from receiptlens.receipt.extraction import EXTRACTION_VARIANTS, MAX_QUANTITY, _parse_quantity, extract_candidates
from receiptlens.receipt.format_profiles import FormatProfile, build_format_profiles
from receiptlens.receipt.line_classifier import classify_lines
from receiptlens.receipt.pipeline import normalize_lines
from receiptlens.receipt.rule_set import ParserRuleSet

FIVE_LINE_WINDOW = {
    "name": "five_line",
    "lines": [r"^(.+)$", r"^(\d{5,7})$", r"^(\d+)[⚫°.]?$", r"^([\d,]+)$", r"^([\d,.]+)\s*([TER])$"],
    "confidence": 0.8,
    "extract": {"name": "line0.group1", "price": "line4.group1", "quantity": "line2.group1"},
}
INLINE = {
    "name": "inline",
    "regex": r"^(.+?)\s+(\d+)$",
    "groups": {"name": 1, "price": 2},
    "confidence": 0.6,
}


def _profile(**extra: Any) -> FormatProfile:
    raw = {"name": "test", "price_range": {"min": 1, "max": 99999}, **extra}
    return build_format_profiles([{"profiles": [raw]}], known_variants=EXTRACTION_VARIANTS.keys())["test"]


def _records(text: str, rule_set: ParserRuleSet) -> list[LineRecord]:
    return classify_lines(normalize_lines(text), rule_set.vocabulary)


def test_special_case_emits_authored_items_and_consumes_lines(rule_set: ParserRuleSet) -> None:
    profile = _profile(
        special_cases=[
            {
                "name": "block",
                "trigger": "BUNDLE A",
                "skip_lines": 3,
                "confidence": 0.8,
                "items": [
                    {"name": "X ITEM", "price": 100, "quantity": 2, "category": "果物"},
                    {"name": "Y ITEM", "price": 200},
                ],
            }
        ],
        single_line_patterns=[INLINE],
    )
    candidates = extract_candidates(_records("BUNDLE A\nfoo 100\nbar 200\nりんご 180", rule_set), profile)

    assert [candidate.name for candidate in candidates] == ["X ITEM", "Y ITEM", "りんご"]
    first = candidates[0]
    assert first.raw_price == "100"
    assert first.quantity == 2
    assert first.category == "果物"
    assert first.detection_method == "special:block"
    assert first.source_line_indices == (0, 1, 2)
    assert candidates[2].source_line_indices == (3,)


def test_multi_line_window_extracts_fields(rule_set: ParserRuleSet) -> None:
    profile = _profile(multi_line_patterns=[FIVE_LINE_WINDOW])
    candidates = extract_candidates(_records("PRODUCT A\n1234567\n2\n500\n1,000 T", rule_set), profile)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.name == "PRODUCT A"
    assert candidate.raw_price == "1,000"
    assert candidate.quantity == 2
    assert candidate.source_line_indices == (0, 1, 2, 3, 4)
    assert candidate.detection_method == "multi_line:five_line"


def test_window_anchor_may_sit_after_leading_lines(rule_set: ParserRuleSet) -> None:
    profile = _profile(
        multi_line_patterns=[
            {
                "name": "code_name_price",
                "lines": [r"^(\d{4})軽?$", "@item_name", r"^¥(\d+)$"],
                "anchor": 1,
                "extract": {"name": "line0", "price": "line1.group1"},
            }
        ]
    )
    candidates = extract_candidates(_records("1234軽\nりんご\n¥180", rule_set), profile)

    assert [(c.name, c.raw_price, c.source_line_indices) for c in candidates] == [("りんご", "180", (0, 1, 2))]


def test_single_line_can_borrow_name_from_previous_line(rule_set: ParserRuleSet) -> None:
    profile = _profile(
        single_line_patterns=[
            {
                "name": "price_after_name",
                "regex": r"^¥(\d+)$",
                "groups": {"price": 1},
                "requires_previous_line": True,
            }
        ]
    )
    candidates = extract_candidates(_records("バナナ\n¥98", rule_set), profile)

    assert [(c.name, c.raw_price, c.source_line_indices) for c in candidates] == [("バナナ", "98", (0, 1))]


def test_first_matching_single_line_rule_wins(rule_set: ParserRuleSet) -> None:
    preferred = {**INLINE, "name": "preferred", "confidence": 0.9}
    profile = _profile(single_line_patterns=[preferred, INLINE])
    candidates = extract_candidates(_records("りんご 180", rule_set), profile)

    assert [candidate.detection_method for candidate in candidates] == ["single_line:preferred"]


def test_exclude_patterns_skip_a_rule(rule_set: ParserRuleSet) -> None:
    guarded = {**INLINE, "name": "guarded", "exclude_patterns": ["合計"]}
    profile = _profile(single_line_patterns=[guarded])
    candidates = extract_candidates(_records("合計 1000\nりんご 180", rule_set), profile)

    assert [candidate.name for candidate in candidates] == ["りんご"]


def test_phases_never_share_lines(rule_set: ParserRuleSet) -> None:
    profile = _profile(multi_line_patterns=[FIVE_LINE_WINDOW], single_line_patterns=[INLINE])
    text = "PRODUCT A\n1234567\n2\n500\n1,000 T\nりんご 180\nバナナ 98"
    candidates = extract_candidates(_records(text, rule_set), profile)

    seen: set[int] = set()
    for candidate in candidates:
        indices = set(candidate.source_line_indices)
        assert not indices & seen
        seen |= indices
    assert [candidate.name for candidate in candidates] == ["PRODUCT A", "りんご", "バナナ"]


def test_name_then_price_variant(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["name_then_price"])
    candidates = extract_candidates(_records("りんご\n¥180\nバナナ\n98", rule_set), profile)

    assert [(c.name, c.raw_price) for c in candidates] == [("りんご", "180"), ("バナナ", "98")]
    assert all(c.detection_method == "variant:name_then_price" for c in candidates)


def test_warehouse_flexible_scan_variant(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["warehouse_flexible_scan"])
    candidates = extract_candidates(_records("ITEM X\n123456\n2 500\n1,000 T", rule_set), profile)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert (candidate.name, candidate.raw_price, candidate.quantity) == ("ITEM X", "1,000", 2)
    assert candidate.source_line_indices == (0, 1, 2, 3)


def test_warehouse_name_is_the_nearest_line_above_the_code(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["warehouse_flexible_scan"])
    candidates = extract_candidates(_records("COSTCO\nKIRKLAND NUTS\n1234567\n980\n980 T", rule_set), profile)

    assert [(c.name, c.raw_price, c.quantity) for c in candidates] == [("KIRKLAND NUTS", "980", 1)]
    assert candidates[0].source_line_indices == (1, 2, 3, 4)


def test_warehouse_bare_number_is_quantity_only_before_another_price(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["warehouse_flexible_scan"])
    candidates = extract_candidates(_records("ITEM X\n123456\n2\n980\n1,960 T", rule_set), profile)

    assert [(c.name, c.raw_price, c.quantity) for c in candidates] == [("ITEM X", "1,960", 2)]


def test_warehouse_reduced_tax_variant(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["warehouse_reduced_tax"])
    candidates = extract_candidates(_records("※ロティサリーチキン\n2\n798\n798 E", rule_set), profile)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert (candidate.name, candidate.raw_price) == ("※ロティサリーチキン", "798")
    assert candidate.source_line_indices == (0, 1, 2, 3)
    assert candidate.detection_method == "variant:warehouse_reduced_tax"


def test_warehouse_reduced_tax_total_belongs_to_the_closest_marked_name(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["warehouse_reduced_tax"])
    candidates = extract_candidates(_records("※ぎゅうにゅう\n※ヨーグルト\n500 E", rule_set), profile)

    assert [(c.name, c.raw_price) for c in candidates] == [("※ヨーグルト", "500")]


def test_warehouse_price_lookback_variant(rule_set: ParserRuleSet) -> None:
    profile = _profile(variants=["warehouse_price_lookback"])
    candidates = extract_candidates(_records("ITEM NAME\n2\n598 T", rule_set), profile)

    assert [(c.name, c.raw_price) for c in candidates] == [("ITEM NAME", "598")]
    assert candidates[0].source_line_indices == (0, 2)
    assert candidates[0].detection_method == "variant:warehouse_price_lookback"


def test_window_scan_limit_is_reported(rule_set: ParserRuleSet) -> None:
    profile = _profile(multi_line_patterns=[FIVE_LINE_WINDOW])
    diagnostics: list[ParseDiagnostic] = []
    extract_candidates(
        _records("a\nb\nc\nd\ne\nf", rule_set),
        profile,
        max_window_scans=1,
        engine="test",
        diagnostic_sink=diagnostics,
    )

    assert any("limit 1 reached" in diagnostic.message for diagnostic in diagnostics)
    assert {diagnostic.stage for diagnostic in diagnostics} >= {"special_cases", "multi_line", "single_line"}
    assert all(diagnostic.engine == "test" for diagnostic in diagnostics)


def test_unmatched_lines_produce_nothing(rule_set: ParserRuleSet) -> None:
    profile = _profile(multi_line_patterns=[FIVE_LINE_WINDOW], single_line_patterns=[INLINE])
    assert extract_candidates(_records("ありがとうございました\n----", rule_set), profile) == []


def test_quantity_parsing_clamps_long_digit_runs() -> None:
    assert _parse_quantity("2コ") == 2
    assert _parse_quantity("0") == 1
    assert _parse_quantity("9" * 5000) == MAX_QUANTITY
    assert _parse_quantity("0" * 5000 + "3") == 3
