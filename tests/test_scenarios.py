"""End-to-end parsing of representative OCR snippets."""

from __future__ import annotations

from decimal import Decimal

import pytest

from receiptlens.domain.receipt import LineType
from receiptlens.receipt.consolidation import is_same_item
from receiptlens.receipt.name_validator import find_exclude_keyword
from receiptlens.receipt.orchestrator import ReceiptParser
from receiptlens.receipt.rule_set import ParserRuleSet

SAMPLES = [
    "*りんご ¥180\n*バナナ ¥98",
    "PRODUCT A\n1234567\n2\n500\n1,000 T",
    "りんご 180\nりんご 180",
    "1234",
    "ライフ\n*国産にんじん ¥198\n*うずらの虜 ¥158\n小計 ¥356\n合計 ¥356\nお預り ¥1000\nお釣り ¥644",
    "WALMART\n123456789012 BANANAS 0.58 F\n987654321098 WHOLE MILK 3.49 N\nSUBTOTAL 4.07\nTOTAL 4.07",
    "COSTCO\nKIRKLAND NUTS\n1234567\n980\n980 T",
    "COSTCO\n※ロティサリーチキン\n2\n798\n798 E",
]


def test_asterisk_lines(parser: ReceiptParser) -> None:
    result = parser.parse("*りんご ¥180\n*バナナ ¥98")
    assert [(item.name, item.price) for item in result.items] == [
        ("りんご", Decimal("180")),
        ("バナナ", Decimal("98")),
    ]
    assert {item.category for item in result.items} == {"果物"}
    assert {item.currency for item in result.items} == {"JPY"}


def test_warehouse_five_line_window(parser: ReceiptParser) -> None:
    result = parser.parse("PRODUCT A\n1234567\n2\n500\n1,000 T")
    assert len(result.items) == 1
    item = result.items[0]
    assert (item.name, item.price, item.quantity) == ("PRODUCT A", Decimal("1000"), 2)
    assert result.selection == "best_of"
    assert result.format_detected == "costco_warehouse"


def test_duplicate_lines_consolidate(parser: ReceiptParser) -> None:
    explanation = parser.explain("りんご 180\nりんご 180")
    result = explanation.result
    assert len(result.items) == 1
    assert result.items[0].name == "りんご"
    assert result.items[0].price == Decimal("180")

    source_confidences = [item.confidence for trace in explanation.engines for item in trace.result.items]
    assert result.items[0].confidence == max(source_confidences)


def test_register_code_alone_is_not_an_item(parser: ReceiptParser) -> None:
    explanation = parser.explain("1234")
    assert explanation.result.items == ()
    assert explanation.result.confidence == 0.0
    for trace in explanation.engines:
        assert trace.lines[0].classified_type in {LineType.METADATA, LineType.PRODUCT_CODE}


def test_warehouse_name_comes_from_the_line_above_the_code(parser: ReceiptParser) -> None:
    result = parser.parse("COSTCO\nKIRKLAND NUTS\n1234567\n980\n980 T")
    assert [(item.name, item.price, item.quantity) for item in result.items] == [
        ("KIRKLAND NUTS", Decimal("980"), 1),
    ]


def test_warehouse_reduced_tax_item_without_code(parser: ReceiptParser) -> None:
    result = parser.parse("COSTCO\n※ロティサリーチキン\n2\n798\n798 E")
    assert [(item.name, item.price) for item in result.items] == [("ロティサリーチキン", Decimal("798"))]
    assert result.format_detected == "costco_warehouse"


def test_long_digit_line_does_not_sink_the_receipt(parser: ReceiptParser) -> None:
    result = parser.parse("*りんご ¥180\n*バナナ ¥98\n" + "1" * 5000)
    assert [item.name for item in result.items] == ["りんご", "バナナ"]
    assert all(engine.items for engine in result.engine_results)


def test_totals_and_payment_lines_are_excluded(parser: ReceiptParser) -> None:
    result = parser.parse(SAMPLES[4])
    names = [item.name for item in result.items]
    assert names == ["国産にんじん", "うずらの卵"]
    assert result.format_detected == "life_supermarket"
    assert [item.category for item in result.items] == ["野菜", "その他食品"]


@pytest.mark.parametrize("text", SAMPLES)
def test_parsing_is_idempotent(text: str, parser: ReceiptParser) -> None:
    assert parser.parse(text) == parser.parse(text)


@pytest.mark.parametrize("text", SAMPLES)
def test_prices_stay_within_profile_range(text: str, parser: ReceiptParser, rule_set: ParserRuleSet) -> None:
    for trace in parser.explain(text).engines:
        engine = rule_set.engine(trace.engine)
        assert engine is not None
        profile = engine.profile(trace.format_detected)
        assert profile is not None
        for item in trace.result.items:
            assert profile.price_range.contains(item.price)


@pytest.mark.parametrize("text", SAMPLES)
def test_no_duplicate_survivors(text: str, parser: ReceiptParser) -> None:
    items = parser.parse(text).items
    for index, first in enumerate(items):
        for second in items[index + 1 :]:
            assert not is_same_item(first, second)


@pytest.mark.parametrize("text", SAMPLES)
def test_items_never_gain_confidence(text: str, parser: ReceiptParser) -> None:
    for trace in parser.explain(text).engines:
        for item in trace.result.items:
            sources = [c for c in trace.candidates if c.source_line_indices == item.source_line_indices]
            assert sources
            assert item.confidence <= max(candidate.confidence for candidate in sources)


@pytest.mark.parametrize("text", SAMPLES)
def test_excluded_keywords_never_become_items(text: str, parser: ReceiptParser, rule_set: ParserRuleSet) -> None:
    explanation = parser.explain(text)
    for trace in explanation.engines:
        engine = rule_set.engine(trace.engine)
        assert engine is not None
        profile = engine.profile(trace.format_detected)
        assert profile is not None
        for item in trace.result.items:
            assert find_exclude_keyword(item.name, profile, rule_set.vocabulary) is None
    for item in explanation.result.items:
        assert rule_set.vocabulary.find_metadata_keyword(item.name) is None
