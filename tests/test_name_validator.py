"""Tests for item name cleaning and validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from receiptlens.domain.receipt import Candidate
from receiptlens.receipt.format_profiles import FormatProfile, build_format_profiles
from receiptlens.receipt.name_validator import check_semantics, check_structure, clean_name, find_exclude_keyword
from receiptlens.receipt.rule_set import ParserRuleSet


def _candidate(name: str, raw_price: str = "100", quantity: int = 1) -> Candidate:
    return Candidate(
        name=name,
        raw_price=raw_price,
        confidence=0.8,
        detection_method="test",
        source_line_indices=(0,),
        quantity=quantity,
    )


def _profile(food_domain: bool = True) -> FormatProfile:
    raw = {
        "name": "p",
        "price_range": {"min": 1, "max": 99999},
        "food_domain": food_domain,
        "single_item_price_max": 20000,
        "bulk_item_price_max": 50000,
        "exclude_keywords": ["Points"],
    }
    return build_format_profiles([{"profiles": [raw]}])["p"]


@pytest.mark.parametrize(
    ("raw_name", "expected"),
    [
        ("*りんご", "りんご"),
        ("※ バナナ", "バナナ"),
        ("トマト  バラ", "トマト"),
        ("KS グレープフルーツカップ", "グレープフルーツカップ"),
        ("PROSCIUTTO CRUDO", "PROSCIUTTO CRUDO"),
        ("りんご 100", "りんご"),
        ("たまご  10個", "たまご 10個"),
    ],
)
def test_clean_name(raw_name: str, expected: str, rule_set: ParserRuleSet) -> None:
    name, factor = clean_name(_candidate(raw_name), rule_set.vocabulary)
    assert name == expected
    assert factor == 1.0


def test_duplicated_quantity_tail_is_dropped(rule_set: ParserRuleSet) -> None:
    name, _ = clean_name(_candidate("たまご 2個", quantity=2), rule_set.vocabulary)
    assert name == "たまご"


def test_ocr_correction_lowers_confidence(rule_set: ParserRuleSet) -> None:
    name, factor = clean_name(_candidate("うずらの虜"), rule_set.vocabulary)
    assert name == "うずらの卵"
    assert factor == 0.95


def test_correction_is_not_reapplied_to_corrected_text(rule_set: ParserRuleSet) -> None:
    name, factor = clean_name(_candidate("ももから揚げ"), rule_set.vocabulary)
    assert name == "ももから揚げ"
    assert factor == 1.0


@pytest.mark.parametrize(
    ("name", "reason_fragment"),
    [
        ("り", "length"),
        ("あ" * 51, "length"),
        ("1,280", "digits only"),
        ("-*-", "punctuation only"),
        ("2コX98", "noise"),
        ("1234軽", "noise"),
        ("バラ", "noise"),
        ("りんご¥", "currency"),
    ],
)
def test_structure_rejections(name: str, reason_fragment: str, rule_set: ParserRuleSet) -> None:
    reason = check_structure(name, rule_set.vocabulary)
    assert reason is not None
    assert reason_fragment in reason


def test_structure_accepts_plain_names(rule_set: ParserRuleSet) -> None:
    assert check_structure("りんご", rule_set.vocabulary) is None
    assert check_structure("PRODUCT A", rule_set.vocabulary) is None


def test_exclude_keywords_from_vocabulary_and_profile(rule_set: ParserRuleSet) -> None:
    profile = _profile()
    assert find_exclude_keyword("小計", profile, rule_set.vocabulary) == "小計"
    assert find_exclude_keyword("クレジット支払", profile, rule_set.vocabulary) is not None
    assert find_exclude_keyword("BONUS POINTS", profile, rule_set.vocabulary) == "Points"
    assert find_exclude_keyword("りんご", profile, rule_set.vocabulary) is None


def test_non_food_only_rejected_in_food_domain(rule_set: ParserRuleSet) -> None:
    assert check_semantics("レジ袋", Decimal("5"), _profile(), rule_set.vocabulary) == "non-food item"
    assert check_semantics("ボディソープ", Decimal("398"), _profile(), rule_set.vocabulary) == "non-food item"
    assert check_semantics("レジ袋", Decimal("5"), _profile(food_domain=False), rule_set.vocabulary) is None


def test_price_limits_depend_on_multi_unit_names(rule_set: ParserRuleSet) -> None:
    profile = _profile()
    vocabulary = rule_set.vocabulary

    assert check_semantics("りんご", Decimal("19800"), profile, vocabulary) is None
    single = check_semantics("りんご", Decimal("25000"), profile, vocabulary)
    assert single is not None and "single-item" in single

    assert check_semantics("りんご 6個", Decimal("25000"), profile, vocabulary) is None
    bulk = check_semantics("りんご 6個", Decimal("60000"), profile, vocabulary)
    assert bulk is not None and "multi-unit" in bulk
